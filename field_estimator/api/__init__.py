"""
FastAPI application factory and API package.

Run with:
    uvicorn field_estimator.api:app --reload --port 8000

Or via main.py:
    python -m field_estimator --serve
"""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from field_estimator.config import get_settings
from field_estimator.api.routes import (
    estimates_router,
    health_router,
    pricing_router,
    settings_router,
)

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    """Application factory — create and configure the FastAPI instance."""
    settings = get_settings()

    application = FastAPI(
        title="Field Estimator API",
        description="Pricing and cost-allocation engine for field-service estimates",
        version="0.1.0",
        debug=settings.debug,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    # CORS — allow the frontend (adjust origins in production)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(health_router, tags=["Health"])
    application.include_router(pricing_router, prefix="/api/pricing", tags=["Pricing"])
    application.include_router(estimates_router, prefix="/api/estimates", tags=["Estimates"])
    application.include_router(settings_router, prefix="/api/settings", tags=["Settings"])

    logger.info(f"Created {settings.app_name} API")
    return application


# Module-level instance for `uvicorn field_estimator.api:app`
app = create_app()
