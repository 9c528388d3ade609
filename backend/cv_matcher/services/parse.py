from __future__ import annotations
import io
import logging
import re
from pathlib import Path
from typing import Optional
import fitz  # pymupdf
from docx import Document

from cv_matcher.errors import ExtractionError

logger = logging.getLogger(__name__)

DOCX_MIME = "application/vnd.openxmlformats-officedocument.wordprocessingml.document"
UNSUPPORTED_EXT = {".doc"}

def _clean_text(t: str) -> str:
    t = t.replace("\x00", " ")
    t = re.sub(r"[ \t]+", " ", t)
    t = re.sub(r"\n{3,}", "\n\n", t)
    return t.strip()

def extract_text_from_pdf(content: bytes) -> str:
    with fitz.open(stream=content, filetype="pdf") as doc:
        # mupdf repairs some garbage into an empty document instead of failing
        if doc.page_count == 0:
            raise ValueError("PDF has no pages")
        chunks = [page.get_text("text") for page in doc]
    return _clean_text("\n".join(chunks))

def extract_text_from_docx(content: bytes) -> str:
    doc = Document(io.BytesIO(content))
    parts = []
    for p in doc.paragraphs:
        parts.append(p.text)
    # include tables (basic)
    for table in doc.tables:
        for row in table.rows:
            parts.append(" | ".join(cell.text.strip() for cell in row.cells))
    return _clean_text("\n".join(parts))

def extract_text_from_txt(content: bytes) -> str:
    return _clean_text(content.decode("utf-8", errors="ignore"))

def _kind(filename: Optional[str], mime_type: Optional[str]) -> str:
    ext = Path(filename or "").suffix.lower()
    if ext in UNSUPPORTED_EXT or mime_type == "application/msword":
        return "unsupported"
    if ext == ".docx" or mime_type == DOCX_MIME:
        return "docx"
    if ext == ".txt" or mime_type == "text/plain":
        return "txt"
    # everything else goes through the PDF parser
    return "pdf"

def extract_text(content: bytes, filename: Optional[str] = None, mime_type: Optional[str] = None) -> str:
    """
    Convert an uploaded document to plain text.

    Layout is whatever the parser yields; only whitespace is normalised.
    Raises ExtractionError when the bytes cannot be parsed.
    """
    kind = _kind(filename, mime_type)
    if kind == "unsupported":
        raise ExtractionError(f"Unsupported file type: {filename}")

    try:
        if kind == "docx":
            text = extract_text_from_docx(content)
        elif kind == "txt":
            text = extract_text_from_txt(content)
        else:
            text = extract_text_from_pdf(content)
    except Exception as e:
        raise ExtractionError(f"Could not read {filename or 'document'}: {e}") from e

    logger.debug("Extracted %d chars from %s (%s)", len(text), filename, kind)
    return text
