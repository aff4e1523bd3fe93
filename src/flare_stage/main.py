# src/flare_stage/main.py
"""Main entry point for the Flare application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from flare_stage.api.v1 import (
    auth_router,
    hotspots_router,
    messages_router,
    posts_router,
    realtime_router,
    system_router,
    users_router,
)
from flare_stage.core.errors import FlareError
from flare_stage.core.logging import configure_logging
from flare_stage.core.settings import settings
from flare_stage.db.session import SessionLocal, create_tables
from flare_stage.services.broadcaster import get_broadcaster
from flare_stage.services.seed import seed_demo_users

logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Flare API",
    description="Location-aware social network with real-time updates",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Add GZip middleware for compression
app.add_middleware(GZipMiddleware)

# Include API routers
app.include_router(auth_router, prefix="/api")
app.include_router(hotspots_router, prefix="/api")
app.include_router(posts_router, prefix="/api")
app.include_router(messages_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(system_router, prefix="/api")
app.include_router(realtime_router)


@app.exception_handler(FlareError)
async def handle_flare_error(_request: Request, exc: FlareError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def handle_validation_error(_request: Request, exc: RequestValidationError) -> JSONResponse:
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": "Validation failed", "errors": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception) -> JSONResponse:
    logger.exception("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.on_event("startup")
async def on_startup() -> None:
    configure_logging()
    create_tables()
    if settings.seed_demo_users:
        with SessionLocal() as db:
            seed_demo_users(db)
    logger.info("%s %s started", settings.app_name, settings.app_version)


@app.on_event("shutdown")
async def on_shutdown() -> None:
    get_broadcaster().reset()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": "Flare API",
        "version": settings.app_version,
        "description": "Location-aware social network with real-time updates",
        "docs": "/docs",
        "redoc": "/redoc",
        "websocket": "/ws",
    }

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("flare_stage.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
