"""Optional LLM clean-up of OCR Markdown through the provider's chat endpoint."""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Protocol

from legal_ocr.errors import OcrProviderError
from legal_ocr.utils.logging_utils import stage_marker, structured_log

LOG = logging.getLogger("refine")

MAX_CHUNK_CHARS = 12000
MAX_CONCURRENCY = 5

SYSTEM_PROMPT = """You are a legal document assistant. Your task is to refine OCR output.

### CRITICAL INSTRUCTION (STRICT FAITHFULNESS)
1. **DO NOT SUMMARIZE**: You must preserve EVERY SINGLE WORD from the input.
2. **DO NOT OMIT**: Never skip any sections, paragraphs, or small details.
3. **DO NOT PARAPHRASE**: Keep the original legal wording exactly as is.
4. **WRITTEN REPRODUCTION**: Your output should be a word-for-word reproduction of the input, with only the specific formatting and tag replacements allowed below.

1. **Image Descriptions**: Analyze text around ![...] placeholders.
    - **Legal Elements**: If context suggests a signature or seal (e.g., "签字", "盖章", "Signed by"), rewrite as `![Signature/Seal]`.
    - **Evidence**: If context implies an ID card or license (e.g., "身份证", "营业执照"), rewrite as `![ID Card]` or `![Business License]`.
    - **Decorative**: If no semantic reference, REMOVE the placeholder line.
    - Otherwise, keep the generic placeholder.

2. **Formatting**:
    - Merge paragraph lines that were incorrectly split by OCR.
    - Ensure strictly ONE empty line between paragraphs.
    - Do NOT merge headers or list items into paragraphs.

3. **Cleanup**:
    - Remove residual headers/footers (e.g., repeating page numbers).

Output ONLY the refined markdown. Do not add any conversational text."""


class ChatGateway(Protocol):
    def chat_completion(
        self,
        messages: List[dict],
        credential: str,
        *,
        temperature: float = 0.1,
        max_tokens: int = 8000,
    ) -> str: ...


def chunk_markdown(text: str, max_chars: int = MAX_CHUNK_CHARS) -> List[str]:
    """Split on blank-line paragraphs; oversized paragraphs are split by line."""
    chunks: List[str] = []
    current = ""

    def flush() -> None:
        nonlocal current
        if current.strip():
            chunks.append(current.strip())
        current = ""

    for paragraph in text.split("\n\n"):
        if len(current) + len(paragraph) > max_chars and current:
            flush()
        if len(paragraph) > max_chars:
            for line in paragraph.split("\n"):
                if len(current) + len(line) > max_chars and current:
                    flush()
                current += line + "\n"
        else:
            current += paragraph + "\n\n"
    flush()
    return chunks


class MarkdownRefiner:
    def __init__(
        self,
        gateway: ChatGateway,
        *,
        max_chunk_chars: int = MAX_CHUNK_CHARS,
        max_concurrency: int = MAX_CONCURRENCY,
    ) -> None:
        self.gateway = gateway
        self.max_chunk_chars = max_chunk_chars
        self.max_concurrency = max_concurrency

    def _refine_chunk(self, chunk: str, credential: str) -> str:
        messages = [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": chunk},
        ]
        try:
            refined = self.gateway.chat_completion(messages, credential, temperature=0.1, max_tokens=8000)
        except OcrProviderError as exc:
            structured_log(LOG, logging.WARNING, "refine_chunk_failed", error_type=type(exc).__name__)
            return chunk
        return refined or chunk

    def refine(self, markdown: str, credential: str) -> str:
        if not markdown or not markdown.strip():
            return markdown
        chunks = chunk_markdown(markdown, self.max_chunk_chars)
        with stage_marker(LOG, stage="refine", text_length=len(markdown)) as marker:
            if len(chunks) == 1:
                refined = [self._refine_chunk(chunks[0], credential)]
            else:
                workers = min(self.max_concurrency, len(chunks))
                with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="refine") as pool:
                    refined = list(pool.map(lambda chunk: self._refine_chunk(chunk, credential), chunks))
            marker.add_completion_fields(result_count=len(refined))
        return "\n\n".join(refined)


def refine_markdown(gateway: ChatGateway, markdown: str, credential: str) -> str:
    return MarkdownRefiner(gateway).refine(markdown, credential)


__all__ = [
    "MAX_CHUNK_CHARS",
    "MAX_CONCURRENCY",
    "MarkdownRefiner",
    "SYSTEM_PROMPT",
    "chunk_markdown",
    "refine_markdown",
]
