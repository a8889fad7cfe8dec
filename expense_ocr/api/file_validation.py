"""File upload validation utilities.

Content type allow-list, size limit and magic byte detection for receipt
uploads.
"""

import logging
import os

from fastapi import UploadFile

from expense_ocr.core.settings import get_app_settings
from expense_ocr.pipeline.core.config import ALLOWED_CONTENT_TYPES
from expense_ocr.pipeline.core.exceptions import PayloadTooLargeError, ValidationError
from expense_ocr.pipeline.utils.file_detection import detect_file_type_from_bytes

logger = logging.getLogger(__name__)

HEADER_BYTES = 16


def _get_file_size(file: UploadFile) -> int:
    file.file.seek(0, os.SEEK_END)
    size = file.file.tell()
    file.file.seek(0)
    return size


def _validate_file_size(size: int, max_size_mb: int) -> None:
    if size == 0:
        raise ValidationError(
            message="File is empty (0 bytes)",
            field="file",
            details={"file_size": 0},
        )

    if size > max_size_mb * 1024 * 1024:
        raise PayloadTooLargeError(
            max_size_mb=max_size_mb,
            actual_size_mb=size / (1024 * 1024),
        )


async def validate_upload_file(file: UploadFile) -> str:
    """Validate uploaded file for content type, size, and magic bytes.

    Args:
        file: FastAPI UploadFile object

    Returns:
        MIME type detected from the file's leading bytes

    Raises:
        ValidationError: If file fails validation checks
        PayloadTooLargeError: If file exceeds size limit
    """
    if file.content_type not in ALLOWED_CONTENT_TYPES:
        raise ValidationError(
            message=f"Invalid content type: {file.content_type}",
            field="file",
            details={"allowed_types": sorted(ALLOWED_CONTENT_TYPES)},
        )

    file_size = _get_file_size(file)
    _validate_file_size(file_size, get_app_settings().MAX_FILE_SIZE_MB)

    header = file.file.read(HEADER_BYTES)
    file.file.seek(0)

    result = detect_file_type_from_bytes(header)
    if result is None:
        raise ValidationError(
            message="Unsupported file type (invalid magic bytes)",
            field="file",
            details={
                "magic_bytes": header[:8].hex(),
                "expected_types": ["pdf", "jpeg", "png", "tiff", "webp"],
            },
        )

    detected_type, detected_content_type = result

    if file.content_type != detected_content_type:
        logger.warning(
            "Content-Type mismatch: header=%s detected=%s",
            file.content_type,
            detected_content_type,
        )

    logger.info(
        "File validated: type=%s size=%d content_type=%s",
        detected_type,
        file_size,
        detected_content_type,
    )
    return detected_content_type
