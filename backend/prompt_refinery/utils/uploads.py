"""
Staging of uploaded documents on local disk for the duration of one request.
"""
import logging
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, List, Optional, Sequence

from fastapi import UploadFile

from prompt_refinery.config import Config
from prompt_refinery.errors import ValidationError
from prompt_refinery.services.validation_service import ValidationService
from prompt_refinery.utils.pdf_handler import PDFHandler

logger = logging.getLogger(__name__)


@asynccontextmanager
async def staged_documents(
    uploads: Optional[Sequence[UploadFile]],
    validation_service: ValidationService,
    upload_dir: Optional[str] = None
) -> AsyncIterator[List[str]]:
    """
    Validate and write uploaded PDFs to disk, yielding their paths.

    Every staged file is deleted on exit, whether the body succeeded or
    raised, including files staged before a later upload failed validation.

    Raises:
        ValidationError: if an upload is empty, too large, not a PDF or too many were sent
    """
    uploads = [upload for upload in (uploads or []) if upload.filename]
    staged: List[Path] = []

    try:
        if len(uploads) > validation_service.max_documents:
            raise ValidationError(
                f"Too many documents (maximum {validation_service.max_documents})",
                {'documents': len(uploads), 'max_documents': validation_service.max_documents}
            )

        target_dir = Path(upload_dir or Config.UPLOAD_DIR)
        if uploads:
            target_dir.mkdir(parents=True, exist_ok=True)

        for upload in uploads:
            if upload.size is not None:
                validation_service.validate_file_upload(
                    upload.filename, upload.content_type, upload.size, 'document'
                )
            # Reads at most one byte past the limit
            content = await upload.read(validation_service.max_file_size + 1)
            validation_service.validate_file_upload(
                upload.filename, upload.content_type, len(content), 'document'
            )
            if not PDFHandler.is_pdf(content):
                raise ValidationError('Invalid PDF format', {'filename': upload.filename})

            path = target_dir / f"{uuid.uuid4().hex}{Path(upload.filename).suffix.lower() or '.pdf'}"
            path.write_bytes(content)
            staged.append(path)
            logger.debug(f"Staged upload {upload.filename} -> {path}")

        yield [str(path) for path in staged]
    finally:
        for path in staged:
            try:
                path.unlink()
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Failed to delete temporary file {path}: {e}")
