"""API route definitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, HTTPException, Request, UploadFile, status

from wastelens.api.middleware import verify_api_key
from wastelens.api.schemas import (
    ClassifyImageResponse,
    ClassScore,
    ErrorResponse,
    HealthResponse,
    LabelsResponse,
    ModelInfo,
    ModelsResponse,
)
from wastelens.ml.errors import ImageDecodeError, InferenceError
from wastelens.ml.preprocessing import decode_image

if TYPE_CHECKING:
    from wastelens.config import Settings
    from wastelens.ml.inference import InferencePool
    from wastelens.ml.model_host import ModelHost
    from wastelens.ml.service import ClassificationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/v1", dependencies=[Depends(verify_api_key)])


def _get_settings(request: Request) -> Settings:
    settings: Settings = request.app.state.settings
    return settings


def _get_inference_pool(request: Request) -> InferencePool:
    pool: InferencePool = request.app.state.inference_pool
    return pool


def _get_model_host(request: Request) -> ModelHost:
    host: ModelHost = request.app.state.model_host
    return host


def _get_service(request: Request) -> ClassificationService:
    service: ClassificationService = request.app.state.classification_service
    return service


@router.post(
    "/classify-image",
    response_model=ClassifyImageResponse,
    responses={
        status.HTTP_413_REQUEST_ENTITY_TOO_LARGE: {"model": ErrorResponse},
        status.HTTP_422_UNPROCESSABLE_ENTITY: {"model": ErrorResponse},
        status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
    summary="Classify a waste image",
)
async def classify_image(request: Request, file: UploadFile) -> ClassifyImageResponse:
    """Classify an uploaded image into one of the configured waste categories."""
    settings = _get_settings(request)
    data = await file.read(settings.max_file_size + 1)
    if len(data) > settings.max_file_size:
        raise HTTPException(
            status_code=status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
            detail=f"File exceeds {settings.max_file_size} bytes",
        )

    try:
        image = decode_image(data, settings.max_image_pixels)
    except ImageDecodeError as exc:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(exc)) from exc

    service = _get_service(request)
    pool = _get_inference_pool(request)
    try:
        result = await pool.run(service.classify, image)
    except TimeoutError as exc:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Inference queue is full, try again later",
        ) from exc
    except InferenceError as exc:
        logger.error("Classification of %s failed: %s", file.filename, exc)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    labels = service.labels
    return ClassifyImageResponse(
        label=result.label,
        index=result.index,
        confidence=result.confidence,
        scores=[ClassScore(label=labels.label_for(i), score=score) for i, score in enumerate(result.scores)],
    )


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
)
async def health(request: Request) -> HealthResponse:
    """Return service health status."""
    settings = _get_settings(request)
    pool = _get_inference_pool(request)
    loaded = _get_model_host(request).loaded_model
    return HealthResponse(
        status="ok",
        gpu=settings.device == "cuda",
        models_loaded=[loaded] if loaded is not None else [],
        concurrent_requests=pool.active_count,
        queue_depth=pool.queue_depth,
    )


@router.get(
    "/models",
    response_model=ModelsResponse,
    summary="Describe the classification model",
)
async def list_models(request: Request) -> ModelsResponse:
    """Return the configured model and whether it is currently loaded."""
    settings = _get_settings(request)
    active = _get_model_host(request).loaded_model == settings.model_name

    num_classes: int | None = None
    if active:
        num_classes = _get_service(request).classifier.num_classes

    return ModelsResponse(
        models=[
            ModelInfo(
                name=settings.model_name,
                status="active" if active else "available",
                input_size=settings.input_size,
                quantized=settings.quantized,
                num_classes=num_classes,
            )
        ]
    )


@router.get(
    "/labels",
    response_model=LabelsResponse,
    summary="List class labels",
)
async def list_labels(request: Request) -> LabelsResponse:
    """Return the class labels in class-index order."""
    return LabelsResponse(labels=list(_get_service(request).labels))
