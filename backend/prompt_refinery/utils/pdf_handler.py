"""
PDF handling utilities for document perception.
Reads uploaded PDFs, extracts their text layer and rasterises pages for OCR.
"""
import logging
from dataclasses import dataclass, field
from io import BytesIO
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pdf2image import convert_from_bytes
from PIL import Image
from pypdf import PdfReader

logger = logging.getLogger(__name__)


@dataclass
class PDFText:
    """Text layer extracted from a PDF."""
    text: str
    pages: int
    info: Dict[str, str] = field(default_factory=dict)


class PDFHandler:
    """Stateless helpers for reading, text extraction and rasterisation."""

    @staticmethod
    def read_pdf(file_path: Union[str, Path]) -> bytes:
        """
        Read a PDF from disk.

        Args:
            file_path: Path to the PDF file

        Returns:
            PDF file as bytes (may be empty; callers decide what empty means)
        """
        path = Path(file_path)
        pdf_bytes = path.read_bytes()
        logger.info(f"Read PDF {path.name}: {len(pdf_bytes)} bytes")
        return pdf_bytes

    @staticmethod
    def extract_text(pdf_bytes: bytes) -> PDFText:
        """
        Extract the embedded text layer of a PDF with pypdf.

        Args:
            pdf_bytes: Raw document content

        Returns:
            PDFText with page texts joined by blank lines

        Raises:
            pypdf.errors.PdfReadError: if the bytes are not a readable PDF
        """
        reader = PdfReader(BytesIO(pdf_bytes))
        page_texts = []
        for page in reader.pages:
            page_text = page.extract_text() or ''
            if page_text.strip():
                page_texts.append(page_text.strip())

        info: Dict[str, str] = {}
        if reader.metadata:
            info = {
                str(key).lstrip('/'): str(value)
                for key, value in reader.metadata.items()
                if value is not None
            }

        text = '\n\n'.join(page_texts)
        logger.info(f"Extracted {len(text)} characters from {len(reader.pages)} page(s)")
        return PDFText(text=text, pages=len(reader.pages), info=info)

    @staticmethod
    def pdf_to_images(pdf_bytes: bytes, max_pages: Optional[int] = None) -> List[Image.Image]:
        """
        Rasterise PDF pages for OCR (requires poppler).

        Args:
            pdf_bytes: Raw document content
            max_pages: If set, only convert the first ``max_pages`` pages

        Returns:
            List of PIL Image objects (empty if conversion is unavailable)
        """
        page_range = {'first_page': 1, 'last_page': max_pages} if max_pages else {}
        try:
            images = convert_from_bytes(pdf_bytes, **page_range)
            logger.info(f"Rasterised {len(images)} page(s)")
            return images

        except Exception as e:
            logger.error(f"Error converting PDF to images (is poppler installed?): {e}")
            return []

    @staticmethod
    def image_to_bytes(image: Image.Image, format: str = 'PNG') -> bytes:
        """Encode a rendered page for upload."""
        buffer = BytesIO()
        image.save(buffer, format)
        return buffer.getvalue()

    @staticmethod
    def is_pdf(data: bytes) -> bool:
        """Check the PDF magic bytes."""
        return data.startswith(b'%PDF')


def describe_info(info: Dict[str, Any]) -> Dict[str, str]:
    """Keep only the common document-information keys for response metadata."""
    keys = ('Title', 'Author', 'Subject', 'Creator', 'Producer')
    return {key: info[key] for key in keys if key in info}
