# src/artifacts/local_store.py — v1
"""Local filesystem artifact store (default ARTIFACT_BACKEND=local).

Layout::

    <root>/<name>/index.json
    <root>/<name>/00000001.zip
    <root>/<name>/00000001.json   (ArtifactVersion metadata)
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from sitepipe.artifacts.base_artifact_store import BaseArtifactStore
from sitepipe.artifacts.models import ArtifactIndex, ArtifactVersion
from sitepipe.core.errors import ArtifactExpired, ArtifactNotFound
from sitepipe.core.models import ArtifactRef, utcnow

logger = logging.getLogger(__name__)


class LocalArtifactStore(BaseArtifactStore):
    """Write artifact versions to the local filesystem."""

    def __init__(self, root: Path | str, retention_versions: int = 20) -> None:
        self._root = Path(root).expanduser()
        self._root.mkdir(parents=True, exist_ok=True)
        self._retention = retention_versions

    async def put(self, name: str, data: bytes) -> ArtifactRef:
        index = self._load_index(name)
        version = index.latest + 1
        meta = ArtifactVersion(
            name=name,
            version=version,
            sha256=hashlib.sha256(data).hexdigest(),
            size=len(data),
            created_at=utcnow(),
        )
        # Data first, then metadata, then index: a crash leaves at most an
        # unreferenced file behind, never an index entry without data.
        self._blob_path(name, version).write_bytes(data)
        self._meta_path(name, version).write_text(
            meta.model_dump_json(indent=2), encoding="utf-8"
        )
        index.latest = version
        index.live.append(version)
        self._save_index(index)
        logger.debug("Stored artifact %s@%d (%d bytes)", name, version, len(data))

        await self.prune(name, self._retention)
        return meta.to_ref()

    async def get(self, name: str, version: int) -> bytes:
        index = self._load_index(name)
        if version < 1 or version > index.latest:
            raise ArtifactNotFound(name, version)
        path = self._blob_path(name, version)
        if version not in index.live or not path.exists():
            raise ArtifactExpired(name, version)
        return path.read_bytes()

    async def latest(self, name: str) -> ArtifactRef | None:
        index = self._load_index(name)
        if not index.live:
            return None
        return self._read_meta(name, index.live[-1]).to_ref()

    async def list_versions(self, name: str) -> list[ArtifactRef]:
        index = self._load_index(name)
        return [self._read_meta(name, v).to_ref() for v in index.live]

    async def prune(self, name: str, keep: int) -> list[int]:
        index = self._load_index(name)
        if len(index.live) <= keep:
            return []
        doomed = index.live[: len(index.live) - keep]
        index.live = index.live[len(doomed):]
        self._save_index(index)
        for version in doomed:
            self._blob_path(name, version).unlink(missing_ok=True)
            self._meta_path(name, version).unlink(missing_ok=True)
        logger.info("Pruned %d version(s) of artifact %s", len(doomed), name)
        return doomed

    # --- Helpers ---

    def _dir(self, name: str) -> Path:
        safe = name.replace("/", "_").replace("\\", "_")
        path = self._root / safe
        path.mkdir(parents=True, exist_ok=True)
        return path

    def _blob_path(self, name: str, version: int) -> Path:
        return self._dir(name) / f"{version:08d}.zip"

    def _meta_path(self, name: str, version: int) -> Path:
        return self._dir(name) / f"{version:08d}.json"

    def _read_meta(self, name: str, version: int) -> ArtifactVersion:
        return ArtifactVersion.model_validate_json(
            self._meta_path(name, version).read_text(encoding="utf-8")
        )

    def _load_index(self, name: str) -> ArtifactIndex:
        path = self._dir(name) / "index.json"
        if not path.exists():
            return ArtifactIndex(name=name)
        return ArtifactIndex.model_validate_json(path.read_text(encoding="utf-8"))

    def _save_index(self, index: ArtifactIndex) -> None:
        path = self._dir(index.name) / "index.json"
        tmp = path.with_suffix(".tmp")
        tmp.write_text(index.model_dump_json(indent=2), encoding="utf-8")
        tmp.replace(path)
