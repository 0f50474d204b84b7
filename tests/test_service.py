"""Tests for label mapping, the classification service, and request admission."""

from __future__ import annotations

import asyncio
import logging
import threading
import time
from typing import TYPE_CHECKING

import numpy as np
import pytest

from wastelens.config import Settings
from wastelens.ml.inference import InferencePool
from wastelens.ml.labels import DEFAULT_WASTE_LABELS, ClassLabelMap
from wastelens.ml.model_host import ModelHost
from wastelens.ml.service import ClassificationService

if TYPE_CHECKING:
    from collections.abc import Callable

    from conftest import DictResourceStore, FakeRuntime


class TestClassLabelMap:
    def test_default_has_ten_waste_classes(self) -> None:
        labels = ClassLabelMap()
        assert len(labels) == 10
        assert list(labels) == list(DEFAULT_WASTE_LABELS)

    def test_label_lookup(self) -> None:
        labels = ClassLabelMap()
        assert labels.label_for(0) == "battery"
        assert labels.label_for(9) == "trash"

    def test_out_of_range_is_unknown(self) -> None:
        labels = ClassLabelMap.from_labels(["glass", "metal"])
        assert labels.label_for(-1) == "unknown"
        assert labels.label_for(2) == "unknown"

    def test_duplicate_labels_rejected(self) -> None:
        with pytest.raises(ValueError, match="unique"):
            ClassLabelMap.from_labels(["glass", "glass"])

    def test_is_immutable(self) -> None:
        labels = ClassLabelMap()
        with pytest.raises(AttributeError):
            labels.labels = ("x",)  # type: ignore[misc]


class TestClassificationService:
    def test_classify_resolves_label(self, store: DictResourceStore, runtime_factory: Callable[..., FakeRuntime]) -> None:
        runtime = runtime_factory(output_shape=(1, 3), scores=[0.1, 0.7, 0.2])
        host = ModelHost(store, runtime)
        service = ClassificationService.from_host(
            host, Settings(), ClassLabelMap.from_labels(["glass", "metal", "paper"])
        )

        result = service.classify(np.zeros((30, 30, 3), dtype=np.uint8))

        assert result.index == 1
        assert result.label == "metal"
        assert result.confidence == pytest.approx(0.7)
        assert result.scores == pytest.approx((0.1, 0.7, 0.2))

    def test_from_host_uses_settings(self, store: DictResourceStore, fake_runtime: FakeRuntime) -> None:
        host = ModelHost(store, fake_runtime)
        service = ClassificationService.from_host(host, Settings(quantized=True), ClassLabelMap())

        assert host.loaded_model == "waste_classifier.onnx"
        assert service.classifier.quantized is True
        assert service.classifier.input_size == 224

    def test_label_count_mismatch_is_logged(
        self, store: DictResourceStore, fake_runtime: FakeRuntime, caplog: pytest.LogCaptureFixture
    ) -> None:
        host = ModelHost(store, fake_runtime)
        with caplog.at_level(logging.WARNING):
            ClassificationService.from_host(host, Settings(), ClassLabelMap.from_labels(["glass"]))
        assert "declares 10 classes but 1 labels" in caplog.text

    def test_calls_are_serialized(self, store: DictResourceStore, fake_runtime: FakeRuntime) -> None:
        host = ModelHost(store, fake_runtime)
        service = ClassificationService.from_host(host, Settings(), ClassLabelMap())

        in_flight = 0
        max_in_flight = 0
        guard = threading.Lock()
        original_run = fake_runtime.run

        def slow_run(session: object, tensor: np.ndarray) -> np.ndarray:  # type: ignore[type-arg]
            nonlocal in_flight, max_in_flight
            with guard:
                in_flight += 1
                max_in_flight = max(max_in_flight, in_flight)
            time.sleep(0.01)
            with guard:
                in_flight -= 1
            return original_run(session, tensor)  # type: ignore[arg-type]

        fake_runtime.run = slow_run  # type: ignore[method-assign]
        threads = [
            threading.Thread(target=service.classify, args=(np.zeros((16, 16, 3), dtype=np.uint8),)) for _ in range(4)
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert max_in_flight == 1
        assert len(fake_runtime.inputs) == 4


class TestInferencePool:
    async def test_runs_function_in_thread(self) -> None:
        pool = InferencePool(Settings(max_concurrent=1))
        try:
            result = await pool.run(lambda x: x * 2, 21)
        finally:
            pool.shutdown()
        assert result == 42
        assert pool.active_count == 0
        assert pool.queue_depth == 0

    async def test_times_out_when_full(self) -> None:
        pool = InferencePool(Settings(max_concurrent=1, queue_timeout=0.05))
        release = threading.Event()
        try:
            blocker = asyncio.ensure_future(pool.run(release.wait))
            await asyncio.sleep(0.01)
            with pytest.raises(TimeoutError):
                await pool.run(lambda: None)
            assert pool.queue_depth == 0
            release.set()
            await blocker
        finally:
            release.set()
            pool.shutdown()
