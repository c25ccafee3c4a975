"""Command line entrypoint: ``legal-ocr <command>``."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import Iterable, List, Optional

from legal_ocr.client import BatchServiceClient, ServiceClientError
from legal_ocr.config import get_config
from legal_ocr.errors import OcrProviderError, PollTimeoutError, ValidationError
from legal_ocr.logging_setup import configure_logging
from legal_ocr.models.batch import UploadedFile
from legal_ocr.services.history_cache import LocalHistoryCache
from legal_ocr.services.identity import generate_access_code
from legal_ocr.services.ocr_gateway import build_gateway_from_config
from legal_ocr.services.redaction import RedactionSession
from legal_ocr.services.redaction_rules import DEFAULT_RULES, blacklist_rule, load_rules
from legal_ocr.services.sequential import QueueItem, build_queue, process_files_sequentially
from legal_ocr.utils.pdf_splitter import split_pdf_by_size

_LOG = logging.getLogger("legal_ocr.cli")

DEFAULT_SERVICE_URL = "http://localhost:8080"


def _api_key(args: argparse.Namespace) -> str:
    key = args.api_key or os.getenv("OCR_API_KEY") or os.getenv("MISTRAL_API_KEY")
    if not key:
        raise ValidationError("An API key is required (--api-key or OCR_API_KEY).")
    return key


def _read_document(path: str) -> UploadedFile:
    source = Path(path)
    return UploadedFile(name=source.name, mime_type="application/pdf", data=source.read_bytes())


def _service_client(args: argparse.Namespace) -> BatchServiceClient:
    access_code = args.access_code or os.getenv("LEGAL_OCR_ACCESS_CODE")
    if not access_code:
        raise ValidationError("An access code is required (--access-code or LEGAL_OCR_ACCESS_CODE).")
    cfg = get_config()
    return BatchServiceClient(
        args.service_url,
        api_key=_api_key(args),
        access_code=access_code,
        history=LocalHistoryCache(cfg.history_dir, max_entries=cfg.history_max_entries),
    )


def _print_json(payload: object) -> None:
    print(json.dumps(payload, indent=2, ensure_ascii=False))


def _cmd_serve(args: argparse.Namespace) -> int:
    from legal_ocr.runtime_server import main as serve

    serve(host=args.host, port=args.port, workers=args.workers)
    return 0


def _cmd_redact(args: argparse.Namespace) -> int:
    text = Path(args.file).read_text(encoding="utf-8")
    rules = load_rules(args.rules) if args.rules else list(DEFAULT_RULES)
    extra = blacklist_rule(args.blacklist or [])
    if extra is not None:
        rules.insert(0, extra)
    session = RedactionSession(text, rules)
    redacted = session.redacted_text()
    if args.output:
        Path(args.output).write_text(redacted, encoding="utf-8")
    else:
        sys.stdout.write(redacted)
    if args.report:
        Path(args.report).write_text(session.report(), encoding="utf-8")
    return 0


def _cmd_split(args: argparse.Namespace) -> int:
    document = _read_document(args.pdf)
    parts = split_pdf_by_size(document, int(args.max_mb * 1024 * 1024))
    out_dir = Path(args.out_dir or Path(args.pdf).parent)
    out_dir.mkdir(parents=True, exist_ok=True)
    for part in parts:
        (out_dir / part.name).write_bytes(part.data)
        print(out_dir / part.name)
    return 0


def _cmd_ocr(args: argparse.Namespace) -> int:
    credential = _api_key(args)
    cfg = get_config()
    documents: List[UploadedFile] = []
    for path in args.pdf:
        documents.extend(split_pdf_by_size(_read_document(path), cfg.max_upload_bytes))
    out_dir = Path(args.output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)

    def _report(item: QueueItem) -> None:
        print(f"{item.file.name}: {item.status.value}" + (f" ({item.error})" if item.error else ""), file=sys.stderr)

    gateway = build_gateway_from_config(cfg)
    try:
        items = process_files_sequentially(build_queue(documents), gateway, credential, on_update=_report)
    finally:
        gateway.close()
    for item in items:
        if item.markdown:
            (out_dir / f"{Path(item.file.name).stem}.md").write_text(item.markdown, encoding="utf-8")
    return 0 if all(item.markdown for item in items) else 1


def _cmd_jobs(args: argparse.Namespace) -> int:
    client = _service_client(args)
    try:
        _print_json(client.list_jobs())
    finally:
        client.close()
    return 0


def _cmd_wait(args: argparse.Namespace) -> int:
    cfg = get_config()
    client = _service_client(args)
    try:
        status = client.poll_status(
            args.job_id,
            interval=args.interval or cfg.poll_interval_seconds,
            max_attempts=args.max_attempts or cfg.poll_max_attempts,
            on_status=lambda snapshot: print(
                f"{snapshot.get('job_id')}: {snapshot.get('status')}", file=sys.stderr
            ),
        )
        if status.get("status") != "completed":
            _print_json(status)
            return 1
        results = client.get_results(args.job_id)
    finally:
        client.close()
    if args.output_dir:
        out_dir = Path(args.output_dir)
        out_dir.mkdir(parents=True, exist_ok=True)
        for entry in results.get("results", []):
            if entry.get("markdown"):
                (out_dir / f"{Path(entry['file_name']).stem}.md").write_text(entry["markdown"], encoding="utf-8")
    else:
        _print_json(results)
    return 0


def _cmd_access_code(_args: argparse.Namespace) -> int:
    print(generate_access_code())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="legal-ocr", description="Legal document OCR and redaction tools.")
    parser.add_argument("--debug", action="store_true", help="Verbose logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP API.")
    serve.add_argument("--host", default=None)
    serve.add_argument("--port", type=int, default=None)
    serve.add_argument("--workers", type=int, default=None)
    serve.set_defaults(func=_cmd_serve)

    redact = sub.add_parser("redact", help="Redact sensitive information from a Markdown/text file.")
    redact.add_argument("file")
    redact.add_argument("--output", help="Write redacted text here instead of stdout.")
    redact.add_argument("--report", help="Write the comparison table to this path.")
    redact.add_argument("--rules", help="JSON file with a custom rule list.")
    redact.add_argument("--blacklist", nargs="*", help="Extra literal terms to redact.")
    redact.set_defaults(func=_cmd_redact)

    split = sub.add_parser("split", help="Split a PDF into parts below a size limit.")
    split.add_argument("pdf")
    split.add_argument("--max-mb", type=float, default=50.0)
    split.add_argument("--out-dir")
    split.set_defaults(func=_cmd_split)

    ocr = sub.add_parser("ocr", help="OCR PDFs one at a time directly against the provider.")
    ocr.add_argument("pdf", nargs="+")
    ocr.add_argument("--api-key")
    ocr.add_argument("--output-dir", default=".")
    ocr.set_defaults(func=_cmd_ocr)

    for name, func, help_text in (
        ("jobs", _cmd_jobs, "List batch jobs for an access code."),
        ("wait", _cmd_wait, "Poll a batch job until it finishes and fetch its results."),
    ):
        command = sub.add_parser(name, help=help_text)
        command.add_argument("--service-url", default=os.getenv("LEGAL_OCR_SERVICE_URL", DEFAULT_SERVICE_URL))
        command.add_argument("--access-code")
        command.add_argument("--api-key")
        command.set_defaults(func=func)
        if name == "wait":
            command.add_argument("job_id")
            command.add_argument("--interval", type=float)
            command.add_argument("--max-attempts", type=int)
            command.add_argument("--output-dir")

    code = sub.add_parser("access-code", help="Generate a new pickup code.")
    code.set_defaults(func=_cmd_access_code)
    return parser


def main(argv: Optional[Iterable[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    configure_logging(level=logging.DEBUG if args.debug else logging.WARNING)
    try:
        return args.func(args)
    except (ServiceClientError, OcrProviderError, ValidationError, PollTimeoutError, OSError) as exc:
        _LOG.debug("cli_command_failed", exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
