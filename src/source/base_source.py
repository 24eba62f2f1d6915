# src/source/base_source.py — v1
"""Abstract source collaborator: turns a commit reference into a bundle."""

from __future__ import annotations

from abc import ABC, abstractmethod


class SourceUnavailable(Exception):
    """The commit could not be read from the repository."""


class BaseSource(ABC):
    """Read-only access to the tracked repository."""

    @abstractmethod
    async def snapshot(self, commit_ref: str) -> bytes:
        """Return the tree at ``commit_ref`` as a zip bundle.

        Raises:
            SourceUnavailable: Unknown commit or unreachable repository.
        """
