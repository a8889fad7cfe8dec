"""FastAPI dependency injection functions.

Every service lives on ``app.state``; a missing one means startup could not
build it and the endpoint answers 503.
"""

from typing import Optional

from fastapi import Header, HTTPException, Request, status

from expense_ocr.pipeline.core.exceptions import ValidationError
from expense_ocr.services.broker import BrokerMonitor
from expense_ocr.services.database import DatabaseManager
from expense_ocr.services.queue import OcrQueueService


async def get_queue_service(request: Request) -> OcrQueueService:
    """Get the OCR queue service from app state.

    Raises:
        HTTPException: 503 if the queue service is unavailable
    """
    queue_service = getattr(request.app.state, "queue_service", None)

    if queue_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="OCR queue unavailable",
        )

    return queue_service


async def get_broker_monitor(request: Request) -> BrokerMonitor:
    broker = getattr(request.app.state, "broker_monitor", None)

    if broker is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Broker monitor unavailable",
        )

    return broker


async def get_optional_db_manager(request: Request) -> Optional[DatabaseManager]:
    """Database manager or None; the service also runs on in-memory stores."""
    return getattr(request.app.state, "db_manager", None)


async def get_organization_id(
    x_organization_id: Optional[str] = Header(default=None, alias="X-Organization-ID"),
) -> str:
    """Tenant of the request, set by the gateway after authentication.

    Raises:
        ValidationError: If the header is missing or blank
    """
    if not x_organization_id or not x_organization_id.strip():
        raise ValidationError(
            message="X-Organization-ID header is required",
            field="X-Organization-ID",
        )
    return x_organization_id.strip()


async def get_user_id(
    x_user_id: Optional[str] = Header(default=None, alias="X-User-ID"),
) -> Optional[str]:
    return x_user_id.strip() if x_user_id and x_user_id.strip() else None
