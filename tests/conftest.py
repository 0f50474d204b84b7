"""Shared fixtures: fake runtime and store, and tiny real ONNX models."""

from __future__ import annotations

from collections import Counter
from typing import TYPE_CHECKING, Any

import numpy as np
import onnx
import pytest
from onnx import TensorProto, helper, numpy_helper

from wastelens.ml.errors import InferenceError, ModelLoadError, ResourceNotFoundError
from wastelens.ml.model_host import ModelHost
from wastelens.ml.runtime import ModelSignature, RuntimeOptions

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from numpy.typing import NDArray

    from wastelens.ml.runtime import Dim

# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------


class FakeSession:
    def __init__(self, model_bytes: bytes) -> None:
        self.model_bytes = model_bytes


class FakeRuntime:
    """In-memory InferenceRuntime that records every call."""

    def __init__(
        self,
        input_shape: tuple[Dim, ...] = (1, 224, 224, 3),
        output_shape: tuple[Dim, ...] = (1, 10),
        scores: list[float] | None = None,
    ) -> None:
        self.input_shape = input_shape
        self.output_shape = output_shape
        self.scores = scores
        self.loaded: list[bytes] = []
        self.closed: list[FakeSession] = []
        self.inputs: list[NDArray[Any]] = []
        self.options: list[RuntimeOptions] = []

    def load(self, model_bytes: bytes, options: RuntimeOptions) -> FakeSession:
        if model_bytes == b"corrupt":
            raise ModelLoadError("Could not parse model artifact")
        self.loaded.append(model_bytes)
        self.options.append(options)
        return FakeSession(model_bytes)

    def signature(self, session: FakeSession) -> ModelSignature:
        return ModelSignature(
            input_name="image",
            input_shape=self.input_shape,
            input_dtype="float32",
            output_shape=self.output_shape,
        )

    def run(self, session: FakeSession, tensor: NDArray[Any]) -> NDArray[np.float32]:
        if session in self.closed:
            raise InferenceError("session closed")
        self.inputs.append(tensor)
        if self.scores is not None:
            return np.asarray([self.scores], dtype=np.float32)
        width = self.output_shape[1]
        assert isinstance(width, int)
        return np.linspace(0.0, 1.0, width, dtype=np.float32).reshape(1, width)

    def close(self, session: FakeSession) -> None:
        self.closed.append(session)


class DictResourceStore:
    """ResourceStore over a dict that counts reads per name."""

    def __init__(self, artifacts: dict[str, bytes]) -> None:
        self._artifacts = artifacts
        self.reads: Counter[str] = Counter()

    def get(self, name: str) -> bytes:
        if name not in self._artifacts:
            raise ResourceNotFoundError(f"Unknown resource: {name}")
        self.reads[name] += 1
        return self._artifacts[name]


@pytest.fixture()
def fake_runtime() -> FakeRuntime:
    return FakeRuntime()


@pytest.fixture()
def store() -> DictResourceStore:
    return DictResourceStore(
        {
            "waste_classifier.onnx": b"model-v1",
            "other.onnx": b"model-v2",
            "broken.onnx": b"corrupt",
        }
    )


@pytest.fixture()
def runtime_factory() -> Callable[..., FakeRuntime]:
    return FakeRuntime


# ---------------------------------------------------------------------------
# Real ONNX models
# ---------------------------------------------------------------------------


def build_onnx_model(
    num_classes: int = 10,
    input_shape: tuple[int, ...] = (1, 224, 224, 3),
    channels_first: bool = False,
    quantized: bool = False,
) -> bytes:
    """Global average pool -> linear -> softmax over an image input."""
    nodes = []
    pooled_input = "image"
    if quantized:
        nodes.append(helper.make_node("Cast", ["image"], ["image_float"], to=TensorProto.FLOAT))
        pooled_input = "image_float"

    axes = [2, 3] if channels_first else [1, 2]
    channels = input_shape[1] if channels_first else input_shape[3]
    weights = numpy_helper.from_array(
        np.linspace(-1.0, 1.0, channels * num_classes, dtype=np.float32).reshape(channels, num_classes),
        name="weights",
    )
    nodes.append(helper.make_node("ReduceMean", [pooled_input], ["pooled"], axes=axes, keepdims=0))
    nodes.append(helper.make_node("MatMul", ["pooled", "weights"], ["logits"]))
    nodes.append(helper.make_node("Softmax", ["logits"], ["scores"], axis=-1))

    graph = helper.make_graph(
        nodes,
        "waste_classifier",
        [helper.make_tensor_value_info("image", TensorProto.UINT8 if quantized else TensorProto.FLOAT, input_shape)],
        [helper.make_tensor_value_info("scores", TensorProto.FLOAT, [1, num_classes])],
        initializer=[weights],
    )
    model = helper.make_model(graph, opset_imports=[helper.make_opsetid("", 13)])
    model.ir_version = 8
    onnx.checker.check_model(model)
    return model.SerializeToString()


@pytest.fixture()
def onnx_model() -> Callable[..., bytes]:
    return build_onnx_model


@pytest.fixture()
def onnx_host() -> Iterator[Callable[[bytes], ModelHost]]:
    """Factory for hosts serving one ONNX model as ``waste_classifier.onnx``; released on teardown."""
    hosts: list[ModelHost] = []

    def factory(model_bytes: bytes) -> ModelHost:
        host = ModelHost(
            DictResourceStore({"waste_classifier.onnx": model_bytes}),
            options=RuntimeOptions(num_threads=1),
        )
        hosts.append(host)
        return host

    yield factory
    for host in hosts:
        host.release()
