"""
AWS Textract OCR for scanned PDFs that carry no text layer.
"""
import logging
from typing import Any, Dict, List, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from prompt_refinery.config import Config
from prompt_refinery.utils.call_tracker import CallTracker
from prompt_refinery.utils.pdf_handler import PDFHandler

logger = logging.getLogger(__name__)

SERVICE_NAME = 'textract'


def build_textract_client() -> Any:
    """Create a Textract client from a named profile or static keys."""
    kwargs = Config.get_boto3_config()
    profile = kwargs.pop('profile_name', None)
    try:
        factory = boto3.Session(profile_name=profile) if profile else boto3
        client = factory.client('textract', **kwargs)
    except (BotoCoreError, ClientError) as e:
        logger.error(f"Textract client could not be created: {e}")
        raise
    logger.info(f"Textract client ready (region={kwargs['region_name']})")
    return client


class TextractService:
    """Service for extracting text from rasterised PDF pages with AWS Textract."""

    def __init__(
        self,
        call_tracker: Optional[CallTracker] = None,
        client: Any = None,
        max_pages: int = 5
    ):
        """
        Set up the OCR fallback.

        Args:
            call_tracker: Optional call tracker instance
            client: Optional pre-built boto3 Textract client
            max_pages: Maximum number of pages to OCR per document
        """
        self.call_tracker = call_tracker
        self.service_name = SERVICE_NAME
        self.max_pages = max_pages
        self.pdf_handler = PDFHandler()
        self.client = client if client is not None else build_textract_client()

    def extract_text(self, pdf_bytes: bytes) -> Dict[str, Any]:
        """
        OCR the first pages of a PDF.

        Args:
            pdf_bytes: Raw document content

        Returns:
            Dictionary with 'success', 'text', 'pages' and 'confidence' (0-100),
            or 'error' when nothing could be processed
        """
        images = self.pdf_handler.pdf_to_images(pdf_bytes, max_pages=self.max_pages)
        if not images:
            return {'success': False, 'error': 'PDF could not be rasterised', 'text': ''}

        lines: List[str] = []
        confidences: List[float] = []

        for page_number, image in enumerate(images, 1):
            image_bytes = self.pdf_handler.image_to_bytes(image, format='PNG')
            try:
                logger.info(f"Running Textract on page {page_number} ({len(image_bytes)} bytes)")
                response = self.client.detect_document_text(Document={'Bytes': image_bytes})
            except (ClientError, BotoCoreError) as e:
                self._record(False)
                error_msg = str(e)
                code = e.response.get('Error', {}).get('Code', '') if isinstance(e, ClientError) else ''
                if code == 'ExpiredTokenException' or 'expired' in error_msg.lower():
                    error_msg = f"AWS credentials have expired. {error_msg}"
                elif code == 'InvalidClientTokenId':
                    error_msg = f"AWS credentials are invalid. {error_msg}"
                logger.error(f"Textract error on page {page_number}: {error_msg}")
                return {'success': False, 'error': error_msg, 'text': ''}

            self._record(True)

            line_blocks = [b for b in response.get('Blocks', []) if b.get('BlockType') == 'LINE' and b.get('Text')]
            lines.extend(b['Text'] for b in line_blocks)
            confidences.extend(b.get('Confidence', 0) for b in line_blocks)

        avg_confidence = (sum(confidences) / len(confidences)) if confidences else 0.0
        logger.info(
            f"Textract OCR complete: {len(lines)} lines over {len(images)} page(s), "
            f"confidence: {avg_confidence:.2f}%"
        )

        return {
            'success': True,
            'text': '\n'.join(lines),
            'pages': len(images),
            'confidence': avg_confidence
        }

    def _record(self, success: bool):
        if self.call_tracker:
            self.call_tracker.record_call(self.service_name, success=success)
