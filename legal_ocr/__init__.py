"""Legal document OCR service: PDF to Markdown, batch jobs and redaction."""

__version__ = "1.0.0"
