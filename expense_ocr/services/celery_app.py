from celery import Celery
from celery.signals import setup_logging

from expense_ocr.core.settings import get_app_settings, get_redis_settings
from expense_ocr.pipeline.core.logging_config import configure_structured_logging

PROCESS_OCR_TASK = "expense_ocr.services.tasks.process_ocr_job"

redis_settings = get_redis_settings()

celery_app = Celery(
    "expense_ocr",
    broker=redis_settings.CELERY_BROKER_URL,
    backend=redis_settings.CELERY_RESULT_BACKEND,
)

celery_app.conf.update(
    worker_pool="prefork",            # processes; Tesseract and pdftoppm are not thread-safe
    worker_concurrency=4,
    worker_prefetch_multiplier=1,     # one job per worker process at a time
    worker_max_tasks_per_child=50,    # recycle to avoid leaks
    worker_max_memory_per_child=800000,  # ~800 MB in KB
    task_acks_late=True,              # at-least-once: redelivered if the worker dies
    task_reject_on_worker_lost=True,
    task_soft_time_limit=600,
    task_time_limit=900,
    task_serializer="json",
    accept_content=["json"],
    result_expires=3600,
    broker_connection_retry_on_startup=True,
    broker_transport_options={"visibility_timeout": 3600},
)

celery_app.conf.task_routes = {PROCESS_OCR_TASK: {"queue": redis_settings.CELERY_QUEUE}}
celery_app.autodiscover_tasks(["expense_ocr.services"])


@setup_logging.connect
def _configure_worker_logging(**kwargs):
    settings = get_app_settings()
    configure_structured_logging(level=settings.LOG_LEVEL, json_format=settings.LOG_JSON)
