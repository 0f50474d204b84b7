"""FastAPI application entry point."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from wastelens.api.routes import router
from wastelens.config import LOG_FORMAT, get_settings
from wastelens.ml.inference import InferencePool
from wastelens.ml.labels import ClassLabelMap
from wastelens.ml.model_host import ModelHost
from wastelens.ml.resources import build_resource_store
from wastelens.ml.service import ClassificationService

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan: load the model on startup, release it on shutdown."""
    settings = get_settings()
    app.state.settings = settings

    logging.basicConfig(level=logging.INFO, format=LOG_FORMAT)

    logger.info(
        "Starting WasteLens (device=%s, model=%s, source=%s, input_size=%d, quantized=%s)",
        settings.device,
        settings.model_name,
        settings.model_source,
        settings.input_size,
        settings.quantized,
    )

    model_host = ModelHost.from_settings(settings, build_resource_store(settings))
    app.state.model_host = model_host
    inference_pool = InferencePool(settings)
    app.state.inference_pool = inference_pool
    try:
        app.state.classification_service = ClassificationService.from_host(
            model_host,
            settings,
            ClassLabelMap.from_labels(settings.labels),
        )
        logger.info("WasteLens ready")
        yield
    finally:
        logger.info("Shutting down WasteLens")
        inference_pool.shutdown()
        model_host.release()
        logger.info("WasteLens shutdown complete")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    application = FastAPI(
        title="WasteLens",
        description="Waste material image classification API",
        version="0.1.0",
        lifespan=lifespan,
    )

    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.include_router(router)
    return application


app = create_app()
