from __future__ import annotations

import os
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path, PurePosixPath

from secgate.core.config import settings
from secgate.core.errors import ArtifactNotFound, ArtifactStoreError


@dataclass(frozen=True)
class ArtifactRef:
    name: str
    uri: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "uri": self.uri}


class ArtifactStore(ABC):
    """Passes raw and combined reports between pipeline stages."""

    @abstractmethod
    def put(self, name: str, data: bytes) -> ArtifactRef:
        """Store ``data`` under ``name``; raises ArtifactStoreError on I/O failure."""

    @abstractmethod
    def get(self, ref: ArtifactRef) -> bytes: ...

    @abstractmethod
    def ref(self, name: str) -> ArtifactRef:
        """Reference an artifact by name without reading it."""


class LocalArtifactStore(ArtifactStore):
    """
    Filesystem store. Artifacts survive the process and are laid out as
    ``<root>/<run_id>/raw/<scanner>/<file>``, ``<root>/<run_id>/reports/...``.
    """

    def __init__(self, root: Path | None = None):
        self._root = root

    @property
    def root(self) -> Path:
        # Resolved lazily so DATA_DIR can change after construction (tests)
        return self._root or Path(settings.DATA_DIR) / "artifacts"

    def _path(self, name: str) -> Path:
        pure = PurePosixPath(name)
        if not name or pure.is_absolute() or ".." in pure.parts:
            raise ValueError(f"Unsafe artifact name: {name!r}")

        root = self.root.resolve()
        p = (root / pure).resolve()
        if not str(p).startswith(str(root)):
            raise ValueError(f"Unsafe artifact name: {name!r}")
        return p

    def ref(self, name: str) -> ArtifactRef:
        return ArtifactRef(name=name, uri=self._path(name).as_uri())

    def put(self, name: str, data: bytes) -> ArtifactRef:
        p = self._path(name)

        # write-then-rename so readers never see a partial artifact
        tmp = p.with_name(p.name + ".part")
        try:
            p.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_bytes(data)
            os.replace(tmp, p)
        except OSError as e:
            raise ArtifactStoreError(f"Cannot store artifact {name!r}: {e}") from e
        return ArtifactRef(name=name, uri=p.as_uri())

    def get(self, ref: ArtifactRef) -> bytes:
        p = self._path(ref.name)
        if not p.is_file():
            raise ArtifactNotFound(f"No artifact named {ref.name!r}")
        return p.read_bytes()
