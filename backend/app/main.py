from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from app.config import settings
from app.routers import questionnaire, stations

from app.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    general_exception_handler
)
from app.services.registry import ProgressionRegistry
from app.services.snapshot_store import build_backends
from app.services.xfactory_client import XFactoryClient

import logging

from app.middleware.request_id import RequestIDMiddleware
from app.utils.logging import configure_logging

configure_logging(logging.INFO)
logger = logging.getLogger(__name__)


# Create FastAPI app
app = FastAPI(
    title=settings.APP_NAME,
    description="Station gating and structured idea questionnaire for the xFactory incubator",
    version="1.0.0"
)

# Register exception handlers
app.add_exception_handler(AppException, app_exception_handler)
app.add_exception_handler(HTTPException, http_exception_handler)
app.add_exception_handler(Exception, general_exception_handler)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
    max_age=3600,
)
app.add_middleware(RequestIDMiddleware)


@app.on_event("startup")
async def startup_event():
    """Wire the upstream client and the snapshot/broadcast backends."""
    logger.info(f"Starting {settings.APP_NAME}...")
    store, channel = build_backends()
    app.state.registry = ProgressionRegistry(XFactoryClient(), store, channel)
    logger.info(f"Snapshot backend: {settings.SNAPSHOT_BACKEND}")


@app.on_event("shutdown")
async def shutdown_event():
    registry = getattr(app.state, "registry", None)
    if registry is not None:
        await registry.close()


@app.get("/health")
def health():
    return {"status": "ok", "environment": settings.ENVIRONMENT}


# Register routers
app.include_router(stations.router)
app.include_router(questionnaire.router)
