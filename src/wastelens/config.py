"""Environment-based configuration for WasteLens."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from wastelens.ml.labels import DEFAULT_WASTE_LABELS

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


class Settings(BaseSettings):
    """Application settings loaded from WASTELENS_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="WASTELENS_",
        case_sensitive=False,
        protected_namespaces=(),
    )

    # Server
    host: str = "0.0.0.0"  # noqa: S104
    port: int = 8083

    # Authentication (None = disabled)
    api_key: str | None = None

    # ML device
    device: Literal["cpu", "cuda", "openvino"] = "cpu"

    # Model artifact
    model_name: str = "waste_classifier.onnx"
    model_source: Literal["local", "huggingface"] = "local"
    models_dir: str = "models"
    hub_repo_id: str | None = None

    # Preprocessing
    input_size: int = Field(default=224, ge=1)
    quantized: bool = False

    # ONNX Runtime threading
    num_threads: int = Field(default=4, ge=1)
    inter_op_threads: int = Field(default=1, ge=1)
    gpu_mem_limit: int = Field(default=2_147_483_648, ge=0)

    # Concurrency
    max_concurrent: int = Field(default=2, ge=1)
    queue_timeout: float = Field(default=5.0, gt=0)

    # Input limits
    max_image_pixels: int = Field(default=16_777_216, ge=1)
    max_file_size: int = Field(default=209_715_200, ge=1)

    # Class order must match the label order the model was trained with
    labels: list[str] = Field(default_factory=lambda: list(DEFAULT_WASTE_LABELS))


def get_settings() -> Settings:
    """Create and return application settings."""
    return Settings()
