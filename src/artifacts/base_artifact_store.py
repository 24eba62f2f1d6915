# src/artifacts/base_artifact_store.py — v1
"""Abstract artifact store interface.

Versions are immutable and monotonically increasing per artifact name.
Retention (keep the last N versions) is applied by the store after each put.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from sitepipe.core.models import ArtifactRef


class BaseArtifactStore(ABC):
    """Unified interface for artifact storage backends."""

    @abstractmethod
    async def put(self, name: str, data: bytes) -> ArtifactRef:
        """Store a new version of the named artifact and return its ref."""

    @abstractmethod
    async def get(self, name: str, version: int) -> bytes:
        """Read one version.

        Raises:
            ArtifactExpired: The version was pruned by retention.
            ArtifactNotFound: The version was never written.
        """

    @abstractmethod
    async def latest(self, name: str) -> ArtifactRef | None:
        """Most recent live version, or None if nothing was stored."""

    @abstractmethod
    async def list_versions(self, name: str) -> list[ArtifactRef]:
        """Live versions, oldest first."""

    @abstractmethod
    async def prune(self, name: str, keep: int) -> list[int]:
        """Delete all but the newest ``keep`` versions; return deleted versions."""

    async def get_ref(self, ref: ArtifactRef) -> bytes:
        """Read the version an ArtifactRef points to."""
        return await self.get(ref.name, ref.version)
