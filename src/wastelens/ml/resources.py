"""Read-only, name-addressed stores for model artifacts.

Artifacts are read through a read-only memory map. Two stores are provided:
a local directory (artifacts shipped next to the application) and a
HuggingFace Hub repository (downloaded once into the local models directory).
"""

from __future__ import annotations

import logging
import mmap
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from huggingface_hub import hf_hub_download
from huggingface_hub.errors import EntryNotFoundError, RepositoryNotFoundError

from wastelens.ml.errors import ResourceNotFoundError

if TYPE_CHECKING:
    from wastelens.config import Settings

logger = logging.getLogger(__name__)


class ResourceStore(Protocol):
    """Protocol for read-only artifact stores."""

    def get(self, name: str) -> bytes:
        """Return the bytes stored under ``name``.

        Raises:
            ResourceNotFoundError: If no artifact with that name exists.
        """
        ...


def _read_mapped(path: Path) -> bytes:
    with path.open("rb") as fh:
        if path.stat().st_size == 0:
            # mmap refuses zero-length files
            return b""
        with mmap.mmap(fh.fileno(), 0, access=mmap.ACCESS_READ) as mapped:
            # Copies out of the map: callers get plain bytes, not a zero-copy view
            return mapped[:]


class DirectoryResourceStore:
    """Artifacts stored as files under a single root directory."""

    def __init__(self, root: str | Path) -> None:
        self._root = Path(root).resolve()

    @property
    def root(self) -> Path:
        return self._root

    def get(self, name: str) -> bytes:
        path = (self._root / name).resolve()
        if not path.is_relative_to(self._root):
            raise ResourceNotFoundError(f"Resource name escapes the store: {name}")
        if not path.is_file():
            raise ResourceNotFoundError(f"Unknown resource: {name}")
        data = _read_mapped(path)
        logger.debug("Read %d bytes for %s from %s", len(data), name, path)
        return data


class HubResourceStore:
    """Artifacts stored as files in a HuggingFace Hub repository."""

    def __init__(self, repo_id: str, cache_dir: str | Path) -> None:
        self._repo_id = repo_id
        self._cache_dir = Path(cache_dir)
        self._cache_dir.mkdir(parents=True, exist_ok=True)

    def get(self, name: str) -> bytes:
        try:
            downloaded = hf_hub_download(
                repo_id=self._repo_id,
                filename=name,
                local_dir=str(self._cache_dir),
            )
        except (EntryNotFoundError, RepositoryNotFoundError) as exc:
            raise ResourceNotFoundError(f"Unknown resource: {self._repo_id}/{name}") from exc
        logger.info("Fetched %s from %s", name, self._repo_id)
        return _read_mapped(Path(downloaded))


def build_resource_store(settings: Settings) -> ResourceStore:
    """Create the resource store selected by ``settings.model_source``."""
    if settings.model_source == "huggingface":
        if not settings.hub_repo_id:
            raise ValueError("WASTELENS_HUB_REPO_ID is required when WASTELENS_MODEL_SOURCE=huggingface")
        return HubResourceStore(settings.hub_repo_id, settings.models_dir)
    return DirectoryResourceStore(settings.models_dir)
