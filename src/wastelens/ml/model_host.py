"""Model host: load a model artifact once and own its inference handle.

The host reads the artifact from a resource store on the first ``acquire``,
builds a single ``InferenceHandle`` through the runtime, and hands the same
handle out until ``release`` is called.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from wastelens.ml.runtime import InferenceHandle, OnnxRuntime, RuntimeOptions

if TYPE_CHECKING:
    from types import TracebackType

    from wastelens.config import Settings
    from wastelens.ml.resources import ResourceStore
    from wastelens.ml.runtime import InferenceRuntime

logger = logging.getLogger(__name__)


class ModelHost:
    """Owns at most one live inference handle."""

    def __init__(
        self,
        store: ResourceStore,
        runtime: InferenceRuntime | None = None,
        options: RuntimeOptions | None = None,
    ) -> None:
        self._store = store
        self._runtime: InferenceRuntime = runtime if runtime is not None else OnnxRuntime()
        self._options = options if options is not None else RuntimeOptions()
        self._lock = threading.Lock()
        self._handle: InferenceHandle | None = None

    @classmethod
    def from_settings(cls, settings: Settings, store: ResourceStore) -> ModelHost:
        return cls(store, options=RuntimeOptions.from_settings(settings))

    # -- Public API ---------------------------------------------------------

    @property
    def loaded_model(self) -> str | None:
        """Name of the artifact behind the live handle, if any."""
        with self._lock:
            return self._handle.name if self._handle is not None else None

    def acquire(self, name: str) -> InferenceHandle:
        """Return the shared handle, loading ``name`` on first use.

        Once a handle is live it is returned for any ``name``; call ``release``
        first to load a different artifact.

        Raises:
            ResourceNotFoundError: If the store has no artifact called ``name``.
            ModelLoadError: If the artifact is not a valid model.
        """
        with self._lock:
            if self._handle is not None:
                if self._handle.name != name:
                    logger.warning(
                        "Requested %s but %s is already loaded; returning the loaded model",
                        name,
                        self._handle.name,
                    )
                return self._handle

            model_bytes = self._store.get(name)
            session = self._runtime.load(model_bytes, self._options)
            self._handle = InferenceHandle(self._runtime, session, name)
            logger.info(
                "Loaded %s (%d bytes, input=%s, output=%s)",
                name,
                len(model_bytes),
                list(self._handle.signature.input_shape),
                list(self._handle.signature.output_shape),
            )
            return self._handle

    def release(self) -> None:
        """Release the live handle. No-op if nothing is loaded."""
        with self._lock:
            handle, self._handle = self._handle, None
        if handle is None:
            return
        handle.close()
        logger.info("Released %s", handle.name)

    # -- Scoped use ---------------------------------------------------------

    def __enter__(self) -> ModelHost:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
