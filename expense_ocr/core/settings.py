"""
Centralized application settings using Pydantic.

All environment variables are read once and validated. Every group is
optional enough to boot a developer instance with no infrastructure: no
DB_HOST means in-memory job and category stores, no S3_ENDPOINT means local
disk storage, no OCR credentials means the local extractor.
"""

import base64
import binascii
from functools import lru_cache
from pathlib import Path
from typing import Optional

from pydantic import SecretStr
from pydantic_settings import BaseSettings

from expense_ocr.pipeline.core import config


class DatabaseSettings(BaseSettings):
    """Database connection and pool configuration."""

    DB_HOST: Optional[str] = None
    DB_PORT: int = 5432
    DB_NAME: str = "expense_ocr"
    DB_USER: str = "postgres"
    DB_PASSWORD: SecretStr = SecretStr("")
    DB_POOL_MIN_SIZE: int = 2
    DB_POOL_MAX_SIZE: int = 10
    DB_POOL_TIMEOUT: float = 10.0
    DB_COMMAND_TIMEOUT: float = 10.0

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}

    @property
    def enabled(self) -> bool:
        return bool(self.DB_HOST)


class S3Settings(BaseSettings):
    """S3/MinIO storage configuration."""

    S3_ENDPOINT: Optional[str] = None
    S3_ACCESS_KEY: str = ""
    S3_SECRET_KEY: SecretStr = SecretStr("")
    S3_BUCKET: str = "expense-attachments"
    S3_SECURE: bool = True
    S3_REGION: Optional[str] = None
    S3_PUBLIC_BASE_URL: Optional[str] = None
    LOCAL_STORAGE_DIR: str = "./storage"

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}

    @property
    def enabled(self) -> bool:
        return bool(self.S3_ENDPOINT)


class RedisSettings(BaseSettings):
    """Celery broker and result backend."""

    REDIS_URL: Optional[str] = None
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 0
    REDIS_PASSWORD: Optional[SecretStr] = None
    CELERY_QUEUE: str = "ocr-processing"

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}

    @property
    def CELERY_BROKER_URL(self) -> str:
        if self.REDIS_URL:
            return self.REDIS_URL
        auth = f":{self.REDIS_PASSWORD.get_secret_value()}@" if self.REDIS_PASSWORD else ""
        return f"redis://{auth}{self.REDIS_HOST}:{self.REDIS_PORT}/{self.REDIS_DB}"

    @property
    def CELERY_RESULT_BACKEND(self) -> str:
        return self.CELERY_BROKER_URL


class OCRSettings(BaseSettings):
    """OCR provider selection and credentials."""

    OCR_PROVIDER: str = "mock"
    GOOGLE_CREDENTIALS_JSON: Optional[SecretStr] = None
    GOOGLE_CREDENTIALS_BASE64: Optional[SecretStr] = None
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None
    AZURE_FORM_RECOGNIZER_ENDPOINT: Optional[str] = None
    AZURE_FORM_RECOGNIZER_KEY: Optional[SecretStr] = None
    AZURE_FORM_RECOGNIZER_MODEL: str = "prebuilt-read"
    TESSERACT_LANG: str = "eng+ara"
    TESSERACT_CMD: Optional[str] = None
    OCR_MAX_PDF_PAGES: int = config.MAX_PDF_PAGES
    OCR_PROVIDER_TIMEOUT_SECONDS: float = config.PROVIDER_TIMEOUT_SECONDS
    OCR_PROVIDER_MAX_ATTEMPTS: int = config.PROVIDER_MAX_ATTEMPTS
    POPPLER_PATH: Optional[str] = None

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}

    def google_credentials_json(self) -> Optional[str]:
        """Service-account JSON from the plain or base64 variable."""
        if self.GOOGLE_CREDENTIALS_JSON:
            return self.GOOGLE_CREDENTIALS_JSON.get_secret_value()
        if self.GOOGLE_CREDENTIALS_BASE64:
            try:
                raw = base64.b64decode(self.GOOGLE_CREDENTIALS_BASE64.get_secret_value())
                return raw.decode("utf-8")
            except (binascii.Error, UnicodeDecodeError) as e:
                raise ValueError(f"GOOGLE_CREDENTIALS_BASE64 is not valid base64: {e}") from e
        return None


class LLMSettings(BaseSettings):
    """OpenAI configuration for AI category detection."""

    OPENAI_API_KEY: Optional[SecretStr] = None
    OPENAI_MODEL: str = "gpt-3.5-turbo"
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}


class AppSettings(BaseSettings):
    """General application settings."""

    LOG_LEVEL: str = "INFO"
    LOG_JSON: bool = True
    RUNS_DIR: str = "./runs"
    BROKER_REPROBE_SECONDS: float = config.BROKER_REPROBE_SECONDS
    MAX_FILE_SIZE_MB: int = config.MAX_FILE_SIZE_MB

    model_config = {"case_sensitive": True, "env_file": ".env", "extra": "ignore"}

    @property
    def runs_dir(self) -> Path:
        env_runs_dir = self.RUNS_DIR.strip()
        if env_runs_dir:
            return Path(env_runs_dir).resolve()
        return Path(__file__).resolve().parents[2] / "runs"


@lru_cache
def get_db_settings() -> DatabaseSettings:
    return DatabaseSettings()


@lru_cache
def get_s3_settings() -> S3Settings:
    return S3Settings()


@lru_cache
def get_redis_settings() -> RedisSettings:
    return RedisSettings()


@lru_cache
def get_ocr_settings() -> OCRSettings:
    return OCRSettings()


@lru_cache
def get_llm_settings() -> LLMSettings:
    return LLMSettings()


@lru_cache
def get_app_settings() -> AppSettings:
    return AppSettings()
