import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager
from importlib.metadata import version as pkg_version

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from questpoints.api import (
    gacha_router,
    health_router,
    items_router,
    rankings_router,
    users_router,
)
from questpoints.config import settings
from questpoints.db.database import init_db
from questpoints.models.failure import ApiResponse, FailureKind, KnownError

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    await init_db()
    yield


app = FastAPI(
    title=settings.app_name,
    version=pkg_version("questpoints"),
    lifespan=lifespan,
)

app.include_router(gacha_router)
app.include_router(health_router)
app.include_router(items_router)
app.include_router(rankings_router)
app.include_router(users_router)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Tighten in production
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(KnownError)
async def known_error_handler(request: Request, exc: KnownError) -> JSONResponse:
    """Render domain failures; server-side ones become the generic envelope."""
    if exc.is_server_error:
        logger.error(
            "REQUEST_FAILED",
            extra={"path": request.url.path, "kind": exc.kind.value, "detail": exc.detail},
            exc_info=exc,
        )
    return JSONResponse(
        status_code=exc.status_code,
        content=exc.to_response().model_dump(mode="json"),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed path, query or body values are a 400 in the failure envelope."""
    errors = exc.errors()
    first = errors[0] if errors else {}
    location = ".".join(str(part) for part in first.get("loc", ()))
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content=ApiResponse.known_failure(
            kind=FailureKind.INVALID_INPUT,
            message="Invalid request.",
            detail=f"{location}: {first.get('msg', 'invalid value')}" if location else None,
            suggestion="Check the request parameters and try again.",
        ).model_dump(mode="json"),
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: never leak internals, always log them."""
    logger.error("UNHANDLED_ERROR", extra={"path": request.url.path}, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ApiResponse.unknown_failure().model_dump(mode="json"),
    )
