"""
Document perception: extracts text from uploaded PDF files.

The embedded text layer is read with pypdf. Scanned PDFs have no text
layer; when a TextractService is supplied they are rasterised and OCR'd
instead.
"""
import asyncio
import logging
import time
from pathlib import Path
from typing import Any, Dict, Optional

from prompt_refinery.errors import PerceptionError
from prompt_refinery.services.textract_service import TextractService
from prompt_refinery.utils.pdf_handler import PDFHandler, describe_info
from .base import Modality, PerceptionAdapter, PerceptionUnit

logger = logging.getLogger(__name__)


class DocumentPerception(PerceptionAdapter):
    """Reduces a PDF on disk to its text."""

    modality = Modality.DOCUMENT
    sublayer = "document-perception"

    MIN_TEXT_LENGTH = 10
    TEXT_LAYER_CONFIDENCE = 0.95

    def __init__(self, textract_service: Optional[TextractService] = None):
        """
        Args:
            textract_service: Optional OCR fallback for PDFs without a text layer
        """
        self.pdf_handler = PDFHandler()
        self.textract_service = textract_service

    async def process(self, file_path: str) -> PerceptionUnit:
        start_time = time.time()
        logger.info(f"[Perception Layer] Processing PDF: {file_path}")

        try:
            pdf_bytes = await asyncio.to_thread(self.pdf_handler.read_pdf, file_path)
        except OSError as e:
            raise PerceptionError(
                "PDF file could not be read",
                sublayer=self.sublayer,
                details={'file_path': str(file_path), 'original_error': str(e)}
            ) from e

        if not pdf_bytes:
            raise PerceptionError(
                "PDF file is empty",
                sublayer=self.sublayer,
                details={'file_path': str(file_path)}
            )

        try:
            extracted = await asyncio.to_thread(self.pdf_handler.extract_text, pdf_bytes)
        except Exception as e:
            logger.error(f"[Perception Layer] PDF parsing failed: {e}")
            raise PerceptionError(
                "Failed to process PDF document",
                sublayer=self.sublayer,
                details={'file_path': str(file_path), 'original_error': str(e)}
            ) from e

        text = extracted.text.strip()
        pages = extracted.pages
        confidence = self.TEXT_LAYER_CONFIDENCE
        method = 'pypdf'

        if len(text) < self.MIN_TEXT_LENGTH and self.textract_service is not None:
            logger.info("[Perception Layer] No usable text layer, falling back to Textract OCR")
            ocr = await asyncio.to_thread(self.textract_service.extract_text, pdf_bytes)
            if ocr.get('success') and len(ocr.get('text', '').strip()) >= self.MIN_TEXT_LENGTH:
                text = ocr['text'].strip()
                confidence = min(max(ocr.get('confidence', 0.0) / 100.0, 0.0), 1.0)
                method = 'textract'
            else:
                logger.warning(f"[Perception Layer] Textract fallback failed: {ocr.get('error', 'no text')}")

        if len(text) < self.MIN_TEXT_LENGTH:
            raise PerceptionError(
                "PDF appears to be empty or contains no extractable text",
                sublayer=self.sublayer,
                details={'file_path': str(file_path), 'pages': pages}
            )

        processing_time = self._elapsed_ms(start_time)
        logger.info(
            f"[Perception Layer] PDF processed in {processing_time}ms "
            f"({pages} pages, {len(text)} characters, method={method})"
        )

        return PerceptionUnit(
            modality=self.modality,
            content=text,
            source=Path(file_path).name,
            confidence=confidence,
            processing_time_ms=processing_time,
            details={
                'pages': pages,
                'text_length': len(text),
                'extraction_method': method,
                'info': describe_info(extracted.info)
            }
        )

    async def health_check(self) -> Dict[str, Any]:
        return {
            'status': 'healthy',
            'parser': 'pypdf',
            'ocr_fallback': 'textract' if self.textract_service else 'disabled'
        }
