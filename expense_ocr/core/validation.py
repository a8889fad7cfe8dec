"""Application startup validation checks.

Infrastructure is optional (missing DB or S3 settings select the local
fallbacks), but settings that are present must be usable. Fails fast on
contradictions instead of on the first request.
"""

import logging
import re

from expense_ocr.core.settings import (
    get_app_settings,
    get_db_settings,
    get_llm_settings,
    get_ocr_settings,
    get_s3_settings,
)
from expense_ocr.pipeline.providers import ProviderName

logger = logging.getLogger(__name__)

_URL_RE = re.compile(r"^https?://.+")


def validate_all_settings() -> None:
    """Validate settings at startup.

    Raises:
        RuntimeError: If a configured setting is invalid
    """
    db_settings = get_db_settings()
    s3_settings = get_s3_settings()
    ocr_settings = get_ocr_settings()
    llm_settings = get_llm_settings()
    app_settings = get_app_settings()

    problems = []

    if db_settings.enabled:
        if not (1 <= db_settings.DB_PORT <= 65535):
            problems.append(f"  - DB_PORT must be 1-65535, got {db_settings.DB_PORT}")
        if db_settings.DB_POOL_MIN_SIZE > db_settings.DB_POOL_MAX_SIZE:
            problems.append(
                f"  - DB_POOL_MIN_SIZE ({db_settings.DB_POOL_MIN_SIZE}) "
                f"cannot exceed DB_POOL_MAX_SIZE ({db_settings.DB_POOL_MAX_SIZE})"
            )

    if s3_settings.enabled and not s3_settings.S3_ACCESS_KEY:
        problems.append("  - S3_ACCESS_KEY is required when S3_ENDPOINT is set")

    url_checks = [
        (ocr_settings.AZURE_FORM_RECOGNIZER_ENDPOINT, "AZURE_FORM_RECOGNIZER_ENDPOINT"),
        (llm_settings.OPENAI_BASE_URL, "OPENAI_BASE_URL"),
        (s3_settings.S3_PUBLIC_BASE_URL, "S3_PUBLIC_BASE_URL"),
    ]
    for url, name in url_checks:
        if url and not _URL_RE.match(url):
            problems.append(f"  - {name}={url} (must start with http:// or https://)")

    if not (1 <= ocr_settings.OCR_MAX_PDF_PAGES <= 50):
        problems.append(f"  - OCR_MAX_PDF_PAGES must be 1-50, got {ocr_settings.OCR_MAX_PDF_PAGES}")
    if ocr_settings.OCR_PROVIDER_MAX_ATTEMPTS < 1:
        problems.append("  - OCR_PROVIDER_MAX_ATTEMPTS must be at least 1")
    if app_settings.MAX_FILE_SIZE_MB < 1:
        problems.append("  - MAX_FILE_SIZE_MB must be at least 1")

    try:
        ocr_settings.google_credentials_json()
    except ValueError as e:
        problems.append(f"  - {e}")

    if problems:
        error_msg = "Invalid configuration:\n" + "\n".join(problems)
        logger.error(error_msg)
        raise RuntimeError(error_msg)

    provider = ProviderName.parse(ocr_settings.OCR_PROVIDER)
    known = {"mock"} | {name.value for name in ProviderName}
    if ocr_settings.OCR_PROVIDER.strip().lower() not in known:
        logger.warning(f"Unknown OCR_PROVIDER={ocr_settings.OCR_PROVIDER!r}, using local extraction")

    logger.info("Settings validated")
    logger.info(f"  - Database: {db_settings.DB_HOST or 'in-memory'}")
    logger.info(f"  - Storage: {s3_settings.S3_ENDPOINT or s3_settings.LOCAL_STORAGE_DIR}")
    logger.info(f"  - OCR provider: {provider.value}")
    logger.info(f"  - AI categories: {'enabled' if llm_settings.OPENAI_API_KEY else 'disabled'}")
