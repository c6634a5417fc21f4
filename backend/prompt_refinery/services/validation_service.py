"""
Request validation at the pipeline boundary.

Everything here runs before any perception call is made, so a malformed
request never costs a model call.
"""
import logging
from typing import List, Optional, Sequence
from urllib.parse import urlparse

from prompt_refinery.config import Config
from prompt_refinery.errors import ValidationError

logger = logging.getLogger(__name__)


class ValidationService:
    """Validates pipeline requests and uploaded files against configured limits."""

    def __init__(
        self,
        min_prompt_length: Optional[int] = None,
        max_prompt_length: Optional[int] = None,
        max_documents: Optional[int] = None,
        max_file_size: Optional[int] = None,
        allowed_image_types: Optional[List[str]] = None,
        allowed_doc_types: Optional[List[str]] = None
    ):
        self.min_prompt_length = Config.MIN_PROMPT_LENGTH if min_prompt_length is None else min_prompt_length
        self.max_prompt_length = Config.MAX_PROMPT_LENGTH if max_prompt_length is None else max_prompt_length
        self.max_documents = Config.MAX_DOCUMENTS if max_documents is None else max_documents
        self.max_file_size = Config.MAX_FILE_SIZE if max_file_size is None else max_file_size
        self.allowed_types = {
            'image': list(allowed_image_types if allowed_image_types is not None else Config.ALLOWED_IMAGE_TYPES),
            'document': list(allowed_doc_types if allowed_doc_types is not None else Config.ALLOWED_DOC_TYPES),
        }

    def validate_pipeline_request(self, request) -> bool:
        """
        Validate a PipelineRequest before any processing starts.

        Args:
            request: Object with ``text_inputs``, ``image_urls`` and ``document_paths``

        Returns:
            True when the request is acceptable

        Raises:
            ValidationError: naming the first offending input (1-based)
        """
        text_inputs = request.text_inputs or []
        image_urls = request.image_urls or []
        document_paths = request.document_paths or []

        if not (text_inputs or image_urls or document_paths):
            raise ValidationError('No inputs provided', {
                'text_inputs': 0,
                'image_urls': 0,
                'document_paths': 0
            })

        for idx, text in enumerate(text_inputs):
            try:
                self.validate_text_input(text)
            except ValidationError as e:
                raise ValidationError(
                    f"Text input {idx + 1} validation failed: {e.message}",
                    {'input_index': idx, 'original_error': e.details}
                ) from e

        for idx, url in enumerate(image_urls):
            try:
                self.validate_image_url(url)
            except ValidationError as e:
                raise ValidationError(
                    f"Image URL {idx + 1} validation failed: {e.message}",
                    {'input_index': idx, 'original_error': e.details}
                ) from e

        if len(document_paths) > self.max_documents:
            raise ValidationError(
                f"Too many documents (maximum {self.max_documents})",
                {'documents': len(document_paths), 'max_documents': self.max_documents}
            )

        logger.info(
            f"[Validation] Pipeline request validated (text_inputs={len(text_inputs)}, "
            f"image_urls={len(image_urls)}, document_paths={len(document_paths)})"
        )
        return True

    def validate_text_input(self, text) -> bool:
        if not isinstance(text, str) or not text:
            raise ValidationError('Invalid text input', {'received': type(text).__name__})

        length = len(text.strip())
        if length < self.min_prompt_length:
            raise ValidationError(
                f"Text input too short (minimum {self.min_prompt_length} characters)",
                {'length': length, 'min_length': self.min_prompt_length}
            )
        if length > self.max_prompt_length:
            raise ValidationError(
                f"Text input too long (maximum {self.max_prompt_length} characters)",
                {'length': length, 'max_length': self.max_prompt_length}
            )
        return True

    def validate_image_url(self, url) -> bool:
        if not isinstance(url, str) or not url:
            raise ValidationError('Invalid image URL', {'received': type(url).__name__})

        try:
            parsed = urlparse(url)
            hostname = parsed.hostname
        except ValueError as e:
            raise ValidationError('Malformed image URL', {'url': url, 'error': str(e)}) from e

        if parsed.scheme != 'https':
            raise ValidationError('Image URL must use HTTPS', {'url': url, 'scheme': parsed.scheme})
        if not hostname:
            raise ValidationError('Invalid image URL hostname', {'url': url})
        return True

    def validate_file_upload(
        self,
        filename: Optional[str],
        content_type: Optional[str],
        size: int,
        expected_type: str
    ) -> bool:
        """
        Validate one uploaded file.

        Args:
            filename: Client-supplied file name
            content_type: Declared MIME type
            size: Size in bytes
            expected_type: 'image' or 'document'

        Raises:
            ValidationError: if the file is missing, empty, too large or of the wrong type
        """
        if not filename:
            raise ValidationError('No file provided', {'expected_type': expected_type})

        if size <= 0:
            raise ValidationError('Uploaded file is empty', {'filename': filename})

        if size > self.max_file_size:
            raise ValidationError(
                f"File size exceeds maximum allowed size of {self.max_file_size / 1024 / 1024:g}MB",
                {'filename': filename, 'file_size': size, 'max_size': self.max_file_size}
            )

        allowed: Sequence[str] = self.allowed_types.get(expected_type, [])
        if content_type not in allowed:
            raise ValidationError(
                f"Invalid {expected_type} file type",
                {'filename': filename, 'received': content_type, 'allowed': list(allowed)}
            )
        return True
