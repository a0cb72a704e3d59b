"""Health check endpoints"""

import logging

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from datetime import datetime, timezone

from schoolfocus.api.deps import get_services
from schoolfocus.services import Services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check():
    """Basic health check"""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


@router.get("/ready")
async def readiness_check(services: Services = Depends(get_services)):
    """
    Readiness check - verifies the database is reachable
    """
    try:
        await services.store.ping()
    except SQLAlchemyError as exc:
        logger.warning("Readiness check failed: %s", exc)
        return JSONResponse(
            status_code=503,
            content={"status": "not_ready", "checks": {"database": "unavailable"}},
        )

    return {
        "status": "ready",
        "checks": {
            "database": "ok",
        }
    }
