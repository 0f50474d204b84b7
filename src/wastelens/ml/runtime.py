"""Inference runtime seam and its ONNX Runtime implementation.

The rest of the package talks to the inference engine only through the
``InferenceRuntime`` protocol (load / signature / run / close) and the
``InferenceHandle`` that wraps one loaded session.  Any engine satisfying the
protocol can be substituted; ``OnnxRuntime`` is the one used in production.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import numpy as np
from onnxruntime import GraphOptimizationLevel, InferenceSession, SessionOptions
from onnxruntime.capi.onnxruntime_pybind11_state import (
    ExecutionMode,
    Fail,
    InvalidArgument,
    InvalidGraph,
    InvalidProtobuf,
    NoSuchFile,
    RuntimeException,
)

from wastelens.ml.errors import InferenceError, ModelLoadError

if TYPE_CHECKING:
    from numpy.typing import NDArray

    from wastelens.config import Settings

logger = logging.getLogger(__name__)

# A tensor dimension: an int when static, a symbol name or None when dynamic.
Dim = int | str | None

_ORT_ERRORS: tuple[type[BaseException], ...] = (
    Fail,
    InvalidArgument,
    InvalidGraph,
    InvalidProtobuf,
    NoSuchFile,
    RuntimeException,
    RuntimeError,
    ValueError,
)

_ORT_DTYPES: dict[str, str] = {
    "tensor(float)": "float32",
    "tensor(float16)": "float16",
    "tensor(double)": "float64",
    "tensor(uint8)": "uint8",
    "tensor(int8)": "int8",
}


# ---------------------------------------------------------------------------
# Model metadata
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ModelSignature:
    """Declared input and output layout of a loaded model."""

    input_name: str
    input_shape: tuple[Dim, ...]
    input_dtype: str
    output_shape: tuple[Dim, ...]

    @property
    def num_classes(self) -> int:
        """Width of the ``[1, N]`` output, read from the model metadata.

        Raises:
            InferenceError: If the output is not two-dimensional or N is not a
                positive static dimension.
        """
        shape = self.output_shape
        if len(shape) != 2 or not isinstance(shape[1], int) or shape[1] <= 0:
            raise InferenceError(f"Model output shape {list(shape)} is not [1, N] with N > 0")
        return shape[1]

    @property
    def channels_first(self) -> bool:
        """True when the model declares an NCHW image input."""
        shape = self.input_shape
        return len(shape) == 4 and shape[1] in (1, 3) and shape[3] not in (1, 3)

    def check_input(self, shape: tuple[int, ...]) -> None:
        """Raise InferenceError if ``shape`` conflicts with a static input dimension."""
        expected = self.input_shape
        mismatch = len(shape) != len(expected) or any(
            isinstance(want, int) and want != got for want, got in zip(expected, shape, strict=True)
        )
        if mismatch:
            raise InferenceError(f"Input tensor shape {list(shape)} does not match model input {list(expected)}")


@dataclass(frozen=True)
class RuntimeOptions:
    """Engine configuration applied when a session is created."""

    num_threads: int = 4
    inter_op_threads: int = 1
    device: str = "cpu"
    gpu_mem_limit: int = 2_147_483_648

    @classmethod
    def from_settings(cls, settings: Settings) -> RuntimeOptions:
        return cls(
            num_threads=settings.num_threads,
            inter_op_threads=settings.inter_op_threads,
            device=settings.device,
            gpu_mem_limit=settings.gpu_mem_limit,
        )


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class InferenceRuntime(Protocol):
    """Narrow interface over an inference engine."""

    def load(self, model_bytes: bytes, options: RuntimeOptions) -> Any:
        """Create a session from serialized model bytes.

        Raises:
            ModelLoadError: If the bytes are not a valid model.
        """
        ...

    def signature(self, session: Any) -> ModelSignature:
        """Describe the session's first input and first output."""
        ...

    def run(self, session: Any, tensor: NDArray[Any]) -> NDArray[np.float32]:
        """Run one synchronous forward pass and return the first output.

        Raises:
            InferenceError: If the engine rejects the input or fails.
        """
        ...

    def close(self, session: Any) -> None:
        """Release the session's native resources."""
        ...


# ---------------------------------------------------------------------------
# Handle
# ---------------------------------------------------------------------------


class InferenceHandle:
    """A loaded model bound to its runtime.

    Not thread-safe: concurrent ``run`` calls must be serialized by the caller.
    Must not be used after ``close``.
    """

    def __init__(self, runtime: InferenceRuntime, session: Any, name: str) -> None:
        self._runtime = runtime
        self._session: Any | None = session
        self._signature = runtime.signature(session)
        self._name = name

    @property
    def name(self) -> str:
        return self._name

    @property
    def signature(self) -> ModelSignature:
        return self._signature

    @property
    def closed(self) -> bool:
        return self._session is None

    def run(self, tensor: NDArray[Any]) -> NDArray[np.float32]:
        """Run inference on a prepared input tensor."""
        if self._session is None:
            raise InferenceError(f"Inference handle for {self._name} has been released")
        return self._runtime.run(self._session, tensor)

    def close(self) -> None:
        """Release runtime resources. Safe to call more than once."""
        session, self._session = self._session, None
        if session is not None:
            self._runtime.close(session)


# ---------------------------------------------------------------------------
# ONNX Runtime implementation
# ---------------------------------------------------------------------------


class OnnxRuntime:
    """``InferenceRuntime`` backed by onnxruntime InferenceSessions."""

    def load(self, model_bytes: bytes, options: RuntimeOptions) -> InferenceSession:
        if not model_bytes:
            raise ModelLoadError("Model artifact is empty")
        try:
            session = InferenceSession(
                model_bytes,
                sess_options=self.build_session_options(options),
                providers=self.build_providers(options),
            )
        except _ORT_ERRORS as exc:
            raise ModelLoadError(f"Could not parse model artifact: {exc}") from exc
        logger.info(
            "Created ONNX session (providers=%s, threads=%d)",
            session.get_providers(),
            options.num_threads,
        )
        return session

    def signature(self, session: InferenceSession) -> ModelSignature:
        model_input = session.get_inputs()[0]
        model_output = session.get_outputs()[0]
        return ModelSignature(
            input_name=model_input.name,
            input_shape=tuple(model_input.shape),
            input_dtype=_ORT_DTYPES.get(model_input.type, model_input.type),
            output_shape=tuple(model_output.shape),
        )

    def run(self, session: InferenceSession, tensor: NDArray[Any]) -> NDArray[np.float32]:
        input_name = session.get_inputs()[0].name
        try:
            outputs = session.run(None, {input_name: tensor})
        except _ORT_ERRORS as exc:
            raise InferenceError(f"Inference failed: {exc}") from exc
        return np.asarray(outputs[0], dtype=np.float32)

    def close(self, session: InferenceSession) -> None:
        # InferenceSession has no explicit close; native memory is freed once
        # the last reference (held by the handle) is dropped.
        logger.debug("Released ONNX session %s", id(session))

    @staticmethod
    def build_providers(options: RuntimeOptions) -> list[str | tuple[str, dict[str, object]]]:
        if options.device == "cuda":
            return [
                (
                    "CUDAExecutionProvider",
                    {
                        "device_id": 0,
                        "gpu_mem_limit": options.gpu_mem_limit,
                        "arena_extend_strategy": "kSameAsRequested",
                    },
                ),
                "CPUExecutionProvider",
            ]
        if options.device == "openvino":
            return [
                ("OpenVINOExecutionProvider", {"device_type": "CPU"}),
                "CPUExecutionProvider",
            ]
        return ["CPUExecutionProvider"]

    @staticmethod
    def build_session_options(options: RuntimeOptions) -> SessionOptions:
        opts = SessionOptions()
        opts.intra_op_num_threads = options.num_threads
        opts.inter_op_num_threads = options.inter_op_threads
        opts.execution_mode = ExecutionMode.ORT_SEQUENTIAL
        opts.enable_mem_pattern = True
        opts.enable_mem_reuse = True

        if options.device == "openvino":
            # OpenVINO does its own graph optimization
            opts.graph_optimization_level = GraphOptimizationLevel.ORT_DISABLE_ALL
        return opts
