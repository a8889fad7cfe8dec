import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from expense_ocr.core.settings import (
    get_app_settings,
    get_db_settings,
    get_redis_settings,
    get_s3_settings,
)
from expense_ocr.services.broker import BrokerMonitor
from expense_ocr.services.celery_app import celery_app
from expense_ocr.services.database import create_database_manager
from expense_ocr.services.factory import create_job_store, create_storage
from expense_ocr.services.publisher import CeleryPublisher
from expense_ocr.services.queue import OcrQueueService
from expense_ocr.services.storage.s3 import S3Storage

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown tasks."""

    db_manager = create_database_manager(get_db_settings())
    if db_manager is not None:
        logger.info("Initializing database connection pool...")
        try:
            await db_manager.connect()
            await db_manager.ensure_schema()
            logger.info("Database pool ready")
        except Exception as e:
            logger.error(f"Database pool initialization failed: {e}", exc_info=True)
            logger.warning("Application will continue without database connectivity")
            db_manager = None
    app.state.db_manager = db_manager

    try:
        storage = create_storage(get_s3_settings())
        if isinstance(storage, S3Storage):
            await asyncio.to_thread(storage.ensure_bucket)
    except Exception as e:
        logger.error(f"Storage initialization failed: {e}", exc_info=True)
        storage = None

    publisher = CeleryPublisher(celery_app, get_redis_settings().CELERY_QUEUE)
    broker = BrokerMonitor(publisher.ping, get_app_settings().BROKER_REPROBE_SECONDS)
    await broker.start()
    app.state.broker_monitor = broker

    if storage is None or (get_db_settings().enabled and db_manager is None):
        app.state.queue_service = None
    else:
        app.state.queue_service = OcrQueueService(
            job_store=create_job_store(db_manager),
            storage=storage,
            publisher=publisher,
            broker=broker,
        )

    yield

    await broker.stop()
    if db_manager is not None:
        logger.info("Closing database connection pool...")
        await db_manager.disconnect()
