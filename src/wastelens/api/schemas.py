"""Pydantic request/response schemas for the WasteLens API."""

from __future__ import annotations

from pydantic import BaseModel, Field


class ClassScore(BaseModel):
    """Raw model score for one class."""

    label: str
    score: float


class ClassifyImageResponse(BaseModel):
    """Response for the image classification endpoint."""

    label: str = Field(description="Label of the highest-scoring class ('unknown' if unmapped)")
    index: int = Field(description="Class index of the top-1 prediction (-1 for an empty score vector)")
    confidence: float = Field(description="Score of the top-1 class as returned by the model")
    scores: list[ClassScore] = Field(description="All class scores in model output order")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str = "ok"
    gpu: bool
    models_loaded: list[str]
    concurrent_requests: int
    queue_depth: int


class ModelInfo(BaseModel):
    """Information about the configured classification model."""

    name: str
    status: str = Field(description="Model status: 'active' or 'available'")
    input_size: int
    quantized: bool
    num_classes: int | None = Field(default=None, description="Output width declared by the model, once loaded")


class ModelsResponse(BaseModel):
    """Response for the models listing endpoint."""

    models: list[ModelInfo]


class LabelsResponse(BaseModel):
    """Class labels in class-index order."""

    labels: list[str]


class ErrorResponse(BaseModel):
    """Standard error response."""

    detail: str
