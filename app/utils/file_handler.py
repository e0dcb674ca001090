"""
File Handler Utility
Lab Report Analyzer

MIME-type checks, upload reading and text normalization shared by the
upload route and the text extractor.
"""

import re
import logging
from typing import Optional

from fastapi import UploadFile

from app.schemas.report import FileKind

logger = logging.getLogger(__name__)

PDF_MIME_TYPE = "application/pdf"
NON_RASTER_IMAGE_TYPES = frozenset({"image/svg+xml"})

# Everything outside word chars, whitespace and basic punctuation is dropped
_DISALLOWED_CHARS = re.compile(r"[^\w\s.,;:()/<>=-]")
_WHITESPACE_RUN = re.compile(r"\s+")


def normalize_text(text: str) -> str:
    """
    Normalize extracted text for AI processing.
    - Collapse whitespace runs to a single space
    - Strip characters outside the safe allow-list
    - Trim
    """
    text = _WHITESPACE_RUN.sub(" ", text or "")
    text = _DISALLOWED_CHARS.sub("", text)
    return text.strip()


def detect_file_kind(mime_type: Optional[str]) -> Optional[FileKind]:
    """Map a MIME type to the kind of extraction it needs, or None if unsupported."""
    if not mime_type:
        return None
    mime = mime_type.split(";", 1)[0].strip().lower()
    if mime == PDF_MIME_TYPE:
        return FileKind.PDF
    if mime.startswith("image/") and mime not in NON_RASTER_IMAGE_TYPES:
        return FileKind.IMAGE
    return None


def is_allowed_mime_type(mime_type: Optional[str], allowed: list[str]) -> bool:
    if not mime_type:
        return False
    return mime_type.split(";", 1)[0].strip().lower() in allowed


async def read_upload(file: UploadFile, max_bytes: int) -> bytes:
    """
    Read an uploaded file fully, refusing anything over max_bytes.

    Raises:
        ValueError: if the file exceeds the size ceiling
    """
    content = await file.read(max_bytes + 1)
    if len(content) > max_bytes:
        raise ValueError(f"File too large. Maximum size is {max_bytes // (1024 * 1024)}MB.")
    logger.debug("Read upload '%s' (%d bytes)", file.filename, len(content))
    return content
