"""
Builds the object graph from settings.

Shared by the API lifespan and the Celery worker process so both sides run
against the same storage, stores and pipeline configuration.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from expense_ocr.core.settings import (
    AppSettings,
    DatabaseSettings,
    LLMSettings,
    OCRSettings,
    S3Settings,
    get_app_settings,
    get_db_settings,
    get_llm_settings,
    get_ocr_settings,
    get_s3_settings,
)
from expense_ocr.pipeline.clients.llm_client import AiCategoryClassifier, OpenAIClient
from expense_ocr.pipeline.core.config import INITIAL_BACKOFF
from expense_ocr.pipeline.orchestrator import DocumentPipeline
from expense_ocr.pipeline.processors.category_suggestor import CategorySuggestor
from expense_ocr.pipeline.providers import OcrProvider, OcrProviderAdapter, ProviderName
from expense_ocr.pipeline.rasterizer import DocumentRasterizer, PdfiumStrategy, PopplerStrategy
from expense_ocr.pipeline.resilience import RetryConfig
from expense_ocr.services.category_store import (
    CategoryStore,
    PostgresCategoryStore,
    StaticCategoryStore,
)
from expense_ocr.services.database import DatabaseManager, create_database_manager
from expense_ocr.services.job_store import InMemoryJobStore, JobStore, PostgresJobStore
from expense_ocr.services.storage.artifacts import LocalArtifactStore
from expense_ocr.services.storage.base import StoragePort
from expense_ocr.services.storage.local_disk import LocalDiskStorage
from expense_ocr.services.storage.s3 import S3Storage
from expense_ocr.services.worker import OcrWorker

logger = logging.getLogger(__name__)


def create_storage(settings: S3Settings) -> StoragePort:
    if not settings.enabled:
        logger.warning(f"S3_ENDPOINT not set, storing uploads in {settings.LOCAL_STORAGE_DIR}")
        return LocalDiskStorage(settings.LOCAL_STORAGE_DIR)

    return S3Storage(
        endpoint=settings.S3_ENDPOINT,
        access_key=settings.S3_ACCESS_KEY,
        secret_key=settings.S3_SECRET_KEY.get_secret_value(),
        bucket=settings.S3_BUCKET,
        secure=settings.S3_SECURE,
        region=settings.S3_REGION,
        public_base_url=settings.S3_PUBLIC_BASE_URL,
    )


def create_provider(settings: OCRSettings) -> Optional[OcrProvider]:
    """Provider named by OCR_PROVIDER; None means the local extractor only."""
    name = ProviderName.parse(settings.OCR_PROVIDER)

    if name is ProviderName.GOOGLE:
        from expense_ocr.pipeline.providers.google_vision import GoogleVisionProvider

        return GoogleVisionProvider(
            credentials_json=settings.google_credentials_json(),
            credentials_path=settings.GOOGLE_APPLICATION_CREDENTIALS,
            timeout=settings.OCR_PROVIDER_TIMEOUT_SECONDS,
        )
    if name is ProviderName.AZURE:
        from expense_ocr.pipeline.providers.azure_document import AzureDocumentProvider

        key = settings.AZURE_FORM_RECOGNIZER_KEY
        return AzureDocumentProvider(
            endpoint=settings.AZURE_FORM_RECOGNIZER_ENDPOINT,
            api_key=key.get_secret_value() if key else None,
            model_id=settings.AZURE_FORM_RECOGNIZER_MODEL,
            timeout=settings.OCR_PROVIDER_TIMEOUT_SECONDS,
        )
    if name is ProviderName.TESSERACT:
        from expense_ocr.pipeline.providers.tesseract import TesseractProvider

        return TesseractProvider(
            lang=settings.TESSERACT_LANG,
            tesseract_cmd=settings.TESSERACT_CMD,
            timeout=settings.OCR_PROVIDER_TIMEOUT_SECONDS,
        )
    return None


def create_provider_adapter(settings: OCRSettings) -> OcrProviderAdapter:
    provider = create_provider(settings)
    logger.info(f"OCR provider: {provider.name if provider else 'local'}")
    return OcrProviderAdapter(
        provider=provider,
        retry_config=RetryConfig(
            max_attempts=settings.OCR_PROVIDER_MAX_ATTEMPTS,
            initial_delay_seconds=INITIAL_BACKOFF,
            max_delay_seconds=8.0,
        ),
    )


def create_category_suggestor(settings: LLMSettings) -> CategorySuggestor:
    if settings.OPENAI_API_KEY is None:
        return CategorySuggestor()
    client = OpenAIClient(
        api_key=settings.OPENAI_API_KEY.get_secret_value(),
        model=settings.OPENAI_MODEL,
        base_url=settings.OPENAI_BASE_URL,
    )
    return CategorySuggestor(AiCategoryClassifier(client))


def create_pipeline(
    ocr_settings: OCRSettings,
    llm_settings: LLMSettings,
    app_settings: AppSettings,
) -> DocumentPipeline:
    rasterizer = DocumentRasterizer(
        strategies=[PopplerStrategy(poppler_path=ocr_settings.POPPLER_PATH), PdfiumStrategy()],
        max_pages=ocr_settings.OCR_MAX_PDF_PAGES,
    )
    return DocumentPipeline(
        adapter=create_provider_adapter(ocr_settings),
        rasterizer=rasterizer,
        suggestor=create_category_suggestor(llm_settings),
        artifacts=LocalArtifactStore(app_settings.runs_dir),
    )


def create_job_store(db: Optional[DatabaseManager]) -> JobStore:
    if db is None:
        logger.warning("DB_HOST not set, using in-memory job store")
        return InMemoryJobStore()
    return PostgresJobStore(db)


def create_category_store(db: Optional[DatabaseManager]) -> CategoryStore:
    if db is None:
        return StaticCategoryStore()
    return PostgresCategoryStore(db)


@dataclass
class WorkerRuntime:
    """Everything a worker process holds for its lifetime."""

    db: Optional[DatabaseManager]
    worker: OcrWorker

    async def close(self) -> None:
        if self.db is not None:
            await self.db.disconnect()


async def create_worker_runtime(
    db_settings: Optional[DatabaseSettings] = None,
    s3_settings: Optional[S3Settings] = None,
    ocr_settings: Optional[OCRSettings] = None,
    llm_settings: Optional[LLMSettings] = None,
    app_settings: Optional[AppSettings] = None,
) -> WorkerRuntime:
    app_settings = app_settings or get_app_settings()
    db = create_database_manager(db_settings or get_db_settings())
    if db is not None:
        await db.connect()

    worker = OcrWorker(
        job_store=create_job_store(db),
        storage=create_storage(s3_settings or get_s3_settings()),
        category_store=create_category_store(db),
        pipeline=create_pipeline(
            ocr_settings or get_ocr_settings(),
            llm_settings or get_llm_settings(),
            app_settings,
        ),
        artifacts=LocalArtifactStore(app_settings.runs_dir),
    )
    return WorkerRuntime(db=db, worker=worker)
