"""Publishes OCR jobs to the Celery queue."""

import logging
from typing import Any

from celery import Celery
from kombu.exceptions import OperationalError

from expense_ocr.pipeline.core.config import BROKER_PING_TIMEOUT_SECONDS
from expense_ocr.pipeline.core.exceptions import BrokerUnavailableError
from expense_ocr.services.celery_app import PROCESS_OCR_TASK

logger = logging.getLogger(__name__)


class CeleryPublisher:
    """
    Args:
        app: Celery application bound to the broker
        queue: Queue the OCR task is routed to
    """

    def __init__(self, app: Celery, queue: str):
        self.app = app
        self.queue = queue

    def publish(self, payload: dict[str, Any], task_id: str) -> None:
        """
        Send one job. The task id is the job id, so a revoke can target it.

        Raises:
            BrokerUnavailableError: The broker connection failed
        """
        try:
            self.app.send_task(
                PROCESS_OCR_TASK,
                kwargs={"payload": payload},
                task_id=task_id,
                queue=self.queue,
            )
        except (OperationalError, OSError) as e:
            raise BrokerUnavailableError(str(e)) from e
        logger.info("Job published", extra={"job_id": task_id})

    def ping(self) -> bool:
        """True when a broker connection can be opened."""
        try:
            with self.app.connection_for_write() as conn:
                conn.ensure_connection(max_retries=1, timeout=BROKER_PING_TIMEOUT_SECONDS)
            return True
        except (OperationalError, OSError) as e:
            logger.warning(f"Broker ping failed: {e}", extra={"service": "QUEUE"})
            return False

    def revoke(self, task_id: str) -> None:
        try:
            self.app.control.revoke(task_id)
        except (OperationalError, OSError) as e:
            raise BrokerUnavailableError(str(e)) from e
