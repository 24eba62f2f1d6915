# src/artifacts/store_factory.py — v1
"""Factory: instantiate the artifact store from configuration."""

from __future__ import annotations

from sitepipe.artifacts.base_artifact_store import BaseArtifactStore
from sitepipe.config.settings import Settings


def create_artifact_store(settings: Settings) -> BaseArtifactStore:
    """Create the artifact store selected by ARTIFACT_BACKEND.

    Raises:
        ValueError: If the backend is not supported.
    """
    if settings.artifact_backend == "local":
        from sitepipe.artifacts.local_store import LocalArtifactStore

        return LocalArtifactStore(
            root=settings.artifact_root,
            retention_versions=settings.artifact_retention_versions,
        )

    if settings.artifact_backend == "s3":
        from sitepipe.artifacts.s3_store import S3ArtifactStore

        return S3ArtifactStore(
            bucket=settings.artifact_s3_bucket,
            prefix=settings.artifact_s3_prefix,
            region=settings.artifact_s3_region or None,
            retention_versions=settings.artifact_retention_versions,
        )

    raise ValueError(f"Unsupported artifact backend: {settings.artifact_backend!r}")
