"""
Extraction Service
Lab Report Analyzer

Turns an uploaded PDF or raster image into normalized plain text:
  - PDF   -> selectable text layer via PyMuPDF
  - image -> OCR via Tesseract (pytesseract + Pillow)
No retries: a failed extraction is terminal for the current attempt.
"""

import io
import time
import asyncio
import logging
from typing import Callable, Optional, Tuple

import fitz  # PyMuPDF
import pytesseract
from PIL import Image, UnidentifiedImageError

from app.core.config import settings
from app.core.errors import ExtractionFailed, UnsupportedFileType
from app.schemas.report import FileKind
from app.utils.file_handler import detect_file_kind, normalize_text

logger = logging.getLogger(__name__)

OcrFunc = Callable[[bytes, str], str]


def tesseract_ocr(content: bytes, language: str) -> str:
    """Run Tesseract over a raster image held in memory."""
    with Image.open(io.BytesIO(content)) as img:
        img.load()
        if img.mode not in ("RGB", "L"):
            img = img.convert("RGB")
        return pytesseract.image_to_string(img, lang=language) or ""


def pdf_text_layer(content: bytes) -> Tuple[str, int]:
    """Return (text, page_count) from the PDF's embedded text layer."""
    with fitz.open(stream=content, filetype="pdf") as doc:
        pages_text = [page.get_text("text") for page in doc]
        return "\n".join(pages_text), len(pages_text)


class TextExtractor:
    """Converts PDF/image bytes into normalized text."""

    def __init__(
        self,
        ocr: Optional[OcrFunc] = None,
        min_text_length: Optional[int] = None,
        ocr_language: Optional[str] = None,
    ):
        self._ocr = ocr or tesseract_ocr
        self.min_text_length = (
            settings.min_extracted_text_length if min_text_length is None else min_text_length
        )
        self.ocr_language = (
            settings.ocr_language if ocr_language is None else ocr_language
        )
        if settings.tesseract_cmd:
            pytesseract.pytesseract.tesseract_cmd = settings.tesseract_cmd

    async def extract(self, content: bytes, mime_type: Optional[str]) -> Tuple[str, FileKind]:
        """
        Extract normalized text from a document.

        Returns:
            Tuple of (text, file kind)

        Raises:
            UnsupportedFileType: MIME type is neither PDF nor a raster image
            ExtractionFailed: file unreadable or too little text recovered
        """
        kind = detect_file_kind(mime_type)
        if kind is None:
            raise UnsupportedFileType(
                f"Unsupported file type '{mime_type}'. Please upload a PDF or "
                "image file (PNG, JPG, JPEG, WEBP)."
            )

        start = time.monotonic()
        if kind is FileKind.PDF:
            text = await asyncio.to_thread(self._extract_pdf, content)
        else:
            text = await asyncio.to_thread(self._extract_image, content)

        logger.info(
            "Extracted %d characters from %s in %.0fms",
            len(text), kind.value, (time.monotonic() - start) * 1000,
        )
        return text, kind

    def _extract_pdf(self, content: bytes) -> str:
        try:
            raw, pages = pdf_text_layer(content)
        except (RuntimeError, ValueError) as e:
            raise ExtractionFailed(f"PDF text extraction failed: {e}")

        text = normalize_text(raw)
        if len(text) < self.min_text_length:
            raise ExtractionFailed(
                "Could not extract text from PDF. The PDF might be scanned or "
                "image-based. Please try uploading images of each page instead."
            )
        logger.debug("PDF text layer: %d page(s)", pages)
        return text

    def _extract_image(self, content: bytes) -> str:
        try:
            raw = self._ocr(content, self.ocr_language)
        except UnidentifiedImageError:
            raise ExtractionFailed(
                "Image text extraction failed: the file is not a readable image."
            )
        except (pytesseract.TesseractError, OSError) as e:
            raise ExtractionFailed(f"Image text extraction failed: {e}")

        text = normalize_text(raw)
        if len(text) < self.min_text_length:
            raise ExtractionFailed(
                "Could not extract meaningful text from the image. Please ensure "
                "the image is clear and contains readable text."
            )
        return text
