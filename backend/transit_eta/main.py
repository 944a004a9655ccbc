"""
FastAPI application entry point.
"""

import time
from contextlib import asynccontextmanager
from typing import AsyncGenerator

import httpx
import structlog
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app

from transit_eta.config import get_settings
from transit_eta.core.exceptions import TransitEtaException
from transit_eta.routers import arrivals, health
from transit_eta.services.factory import build_arrival_service

logger = structlog.get_logger()
settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Opens the shared upstream client and wires the arrival service."""
    logger.info("Starting Commute ETA", version=settings.app_version)

    client = httpx.AsyncClient(timeout=settings.feed_timeout, follow_redirects=True)
    service = build_arrival_service(settings, client)
    app.state.http_client = client
    app.state.arrival_service = service
    logger.info("Application startup complete", adapters=len(service.adapters))

    yield

    logger.info("Shutting down Commute ETA")
    service.schedules.close()
    await client.aclose()


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    openapi_url=f"{settings.api_v1_prefix}/openapi.json",
    docs_url=f"{settings.api_v1_prefix}/docs",
    redoc_url=f"{settings.api_v1_prefix}/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_request_id(request: Request, call_next):
    request_id = f"req_{int(time.time() * 1000)}"
    request.state.request_id = request_id
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    return response


@app.exception_handler(TransitEtaException)
async def transit_eta_exception_handler(request: Request, exc: TransitEtaException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "error_code": exc.error_code},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled exception", error=str(exc), exc_info=True)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error", "error_code": "INTERNAL_ERROR"},
    )


app.include_router(health.router, tags=["health"])
app.include_router(arrivals.router, prefix=settings.api_v1_prefix, tags=["arrivals"])

# Prometheus metrics
app.mount("/metrics", make_asgi_app())


@app.get("/")
async def root():
    return {
        "message": "Commute ETA API",
        "version": settings.app_version,
        "docs": f"{settings.api_v1_prefix}/docs",
        "status": "operational",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "transit_eta.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
        access_log=True,
        log_level="info",
    )
