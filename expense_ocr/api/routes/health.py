from typing import Optional

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from expense_ocr import __version__
from expense_ocr.api.schemas import HealthResponse
from expense_ocr.core.dependencies import get_broker_monitor, get_optional_db_manager
from expense_ocr.services.broker import BrokerMonitor
from expense_ocr.services.database import DatabaseManager

router = APIRouter()


@router.get("/health", response_model=HealthResponse, tags=["health"])
async def health_check(
    broker: BrokerMonitor = Depends(get_broker_monitor),
    db: Optional[DatabaseManager] = Depends(get_optional_db_manager),
):
    if db is None:
        database = {"status": "in-memory", "latency_ms": None, "error": None}
        db_ok = True
    else:
        db_health = await db.health_check()
        db_ok = db_health["healthy"]
        database = {
            "status": "connected" if db_ok else "disconnected",
            "latency_ms": db_health.get("latency_ms"),
            "error": db_health.get("error"),
        }

    healthy = db_ok and broker.reachable
    return JSONResponse(
        status_code=200 if healthy else 503,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "service": "expense-ocr",
            "version": __version__,
            "broker": {"status": "reachable" if broker.reachable else "unreachable"},
            "database": database,
        },
    )
