"""FastAPI application entry point."""

from dotenv import load_dotenv

load_dotenv()

import logging

import urllib3
from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from pydantic_core import ValidationError as PydanticCoreValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from expense_ocr import __version__
from expense_ocr.api.routes import health, ocr
from expense_ocr.core.error_handlers import (
    handle_app_error,
    handle_http_error,
    handle_pydantic_error,
    handle_unknown_error,
    handle_validation_error,
)
from expense_ocr.core.lifespan import lifespan
from expense_ocr.core.middleware import trace_id_middleware
from expense_ocr.core.settings import get_app_settings
from expense_ocr.core.validation import validate_all_settings
from expense_ocr.pipeline.core.exceptions import BaseError
from expense_ocr.pipeline.core.logging_config import configure_structured_logging

app_settings = get_app_settings()
configure_structured_logging(level=app_settings.LOG_LEVEL, json_format=app_settings.LOG_JSON)
logger = logging.getLogger(__name__)

validate_all_settings()

# S3 uses self-signed certs in dev
urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)


def create_app() -> FastAPI:
    app = FastAPI(
        title="Expense OCR API",
        version=__version__,
        description="Receipt and invoice OCR with structured field extraction",
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # 1. Register Middleware
    app.middleware("http")(trace_id_middleware)

    # 2. Register Exception Handlers
    app.add_exception_handler(RequestValidationError, handle_validation_error)
    app.add_exception_handler(PydanticCoreValidationError, handle_pydantic_error)
    app.add_exception_handler(StarletteHTTPException, handle_http_error)
    app.add_exception_handler(BaseError, handle_app_error)
    app.add_exception_handler(Exception, handle_unknown_error)

    # Routes
    app.include_router(health.router)
    app.include_router(ocr.router)
    return app


app = create_app()
