# src/artifacts/models.py — v1
"""Artifact store metadata models."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel

from sitepipe.core.models import ArtifactRef


class ArtifactVersion(BaseModel):
    """Metadata persisted next to each stored artifact version."""

    name: str
    version: int
    sha256: str
    size: int
    created_at: datetime

    def to_ref(self) -> ArtifactRef:
        return ArtifactRef(
            name=self.name, version=self.version, sha256=self.sha256, size=self.size
        )


class ArtifactIndex(BaseModel):
    """Per-name index: highest version ever written plus live versions.

    ``latest`` never decreases, so pruned versions stay distinguishable
    from versions that were never written.
    """

    name: str
    latest: int = 0
    live: list[int] = []
