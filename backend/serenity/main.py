"""Main FastAPI application entry point."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from .auth import init_firebase
from .db import init_db
from .errors import (
    AuthError,
    InsufficientDataError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
)
from .recommendations import router as recommendations_router
from .sessions import router as sessions_router
from .trends import router as trends_router
from .settings import settings


logging.basicConfig(level=settings.log_level)
logger = logging.getLogger("serenity")

app = FastAPI(title="Serenity Backend", version="0.3.0")
app.include_router(sessions_router)
app.include_router(recommendations_router)
app.include_router(trends_router)


@app.on_event("startup")
async def startup_event() -> None:
    """Initialise Firebase and create the tables if needed."""
    init_firebase()
    await init_db()
    logger.info("Firebase and database initialised")


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health endpoint to confirm the service is up."""
    return {"status": "ok"}


@app.exception_handler(AuthError)
async def auth_error_handler(_request: Request, exc: AuthError) -> JSONResponse:
    return JSONResponse(
        status_code=401,
        content={"detail": str(exc) or "Authentication required"},
        headers={"WWW-Authenticate": "Bearer"},
    )


@app.exception_handler(NotFoundError)
async def not_found_handler(_request: Request, exc: NotFoundError) -> JSONResponse:
    return JSONResponse(status_code=404, content={"detail": str(exc) or "Not found"})


@app.exception_handler(InvalidStateError)
async def invalid_state_handler(_request: Request, exc: InvalidStateError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"detail": str(exc)})


@app.exception_handler(InsufficientDataError)
async def insufficient_data_handler(_request: Request, exc: InsufficientDataError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.exception(
        "Persistence failure on %s %s: %s",
        request.method,
        request.url.path,
        exc.cause,
        exc_info=exc,
    )
    return JSONResponse(status_code=503, content={"detail": "Storage is temporarily unavailable"})


@app.exception_handler(ValueError)
async def value_error_handler(_request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(status_code=422, content={"detail": str(exc)})
