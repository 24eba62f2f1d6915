# src/publish/base_publisher.py — v1
"""Abstract publisher: the object storage / CDN collaborator.

``sync`` must be idempotent: syncing the same file set twice leaves the
destination in the same state and uploads nothing the second time.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from sitepipe.publish.models import PublishOptions, SyncReport


class BasePublisher(ABC):
    """Unified interface for publish destinations."""

    @abstractmethod
    async def sync(
        self,
        files: dict[str, bytes],
        destination: str,
        options: PublishOptions | None = None,
    ) -> SyncReport:
        """Make destination hold exactly ``files`` (modulo delete_removed)."""

    @abstractmethod
    async def put(
        self,
        key: str,
        content: bytes,
        destination: str,
        options: PublishOptions | None = None,
    ) -> None:
        """Write a single object below destination."""

    @abstractmethod
    async def list_objects(self, destination: str) -> dict[str, str]:
        """Map relative key -> content digest for everything at destination."""
