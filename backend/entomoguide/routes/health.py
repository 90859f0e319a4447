"""
EntomoGuide Backend: Health Check Route
========================================

What:  Dependency probe for Docker health checks and load balancers.
How:   `SELECT 1` against the database, a writability check on the upload
       root, and the notification dispatcher's configuration state.

Status levels:
    - healthy:   database and storage usable, mail configured (HTTP 200)
    - degraded:  mail not configured; registrations still work (HTTP 200)
    - unhealthy: database or storage unusable (HTTP 503)
"""

import logging
import time

from fastapi import APIRouter, Request, Response
from pydantic import BaseModel
from sqlalchemy import text

from entomoguide import __version__

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

_start_time = time.time()


class HealthResponse(BaseModel):
    status: str
    version: str
    database: str
    storage: str
    mail: str
    uptime_seconds: float


@router.get("/health", response_model=HealthResponse, summary="Service health check")
async def health_check(request: Request, response: Response) -> HealthResponse:
    state = request.app.state
    db_status = "connected"
    storage_status = "writable"
    mail_status = "configured"
    overall = "healthy"

    try:
        async with state.database.engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", e)

    if not await state.storage.health_check():
        storage_status = "unavailable"
        overall = "unhealthy"

    if not await state.dispatcher.health_check():
        mail_status = "not_configured"
        if overall == "healthy":
            overall = "degraded"

    if overall == "unhealthy":
        response.status_code = 503

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        storage=storage_status,
        mail=mail_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
