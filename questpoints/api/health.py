"""
Health check endpoints.

/health answers as long as the process is up. /ready reports what a spin
needs: a reachable database and a non-empty catalog, plus whether batch
spins can be grouped.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from questpoints.db import batch_store_available, count_items
from questpoints.db.database import get_session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


class HealthResponse(BaseModel):
    """Liveness response."""

    status: str


class ReadinessResponse(BaseModel):
    """
    Readiness response.

    status is "ready", "degraded" (up, but every spin would fail with an
    empty catalog) or "not ready" (database unreachable).
    """

    status: str
    database: str
    catalog_items: int | None = None
    batch_grouping: bool | None = None


@router.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Liveness probe. Touches nothing outside the process."""
    return HealthResponse(status="healthy")


@router.get(
    "/ready",
    response_model=ReadinessResponse,
    responses={503: {"model": ReadinessResponse}},
)
async def ready(
    response: Response,
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ReadinessResponse:
    """
    Readiness probe.

    503 if the database cannot be queried. An empty catalog is reported
    as degraded rather than failed: reads keep working and spins are
    refused with a known failure. A missing batch table only means batch
    spins are stored ungrouped.
    """
    try:
        catalog_items = await count_items(session)
        batch_grouping = await batch_store_available(session)
    except (SQLAlchemyError, OSError):
        logger.warning("READINESS_DB_UNAVAILABLE", exc_info=True)
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE
        return ReadinessResponse(status="not ready", database="disconnected")

    return ReadinessResponse(
        status="ready" if catalog_items > 0 else "degraded",
        database="connected",
        catalog_items=catalog_items,
        batch_grouping=batch_grouping,
    )
