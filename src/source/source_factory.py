# src/source/source_factory.py — v1
"""Factory: instantiate the source collaborator from configuration."""

from __future__ import annotations

from sitepipe.config.settings import Settings
from sitepipe.source.base_source import BaseSource


def create_source(settings: Settings) -> BaseSource:
    """Create the source selected by SOURCE_BACKEND."""
    if settings.source_backend == "git":
        from sitepipe.source.git_source import GitSource

        return GitSource(repo_path=settings.source_path)

    if settings.source_backend == "directory":
        from sitepipe.source.directory_source import DirectorySource

        return DirectorySource(root=settings.source_path)

    raise ValueError(f"Unsupported source backend: {settings.source_backend!r}")
