# src/artifacts/s3_store.py — v1
"""S3-compatible artifact store (ARTIFACT_BACKEND=s3).

Same layout as the local store, under a key prefix. Bucket versioning is
not required: version numbers are tracked in a per-name index object.
"""

from __future__ import annotations

import hashlib
import logging

from sitepipe.artifacts.base_artifact_store import BaseArtifactStore
from sitepipe.artifacts.models import ArtifactIndex, ArtifactVersion
from sitepipe.core.errors import ArtifactExpired, ArtifactNotFound
from sitepipe.core.models import ArtifactRef, utcnow

logger = logging.getLogger(__name__)


class S3ArtifactStore(BaseArtifactStore):
    """Store artifact versions in S3-compatible object storage."""

    def __init__(
        self,
        bucket: str,
        prefix: str = "sitepipe/",
        region: str | None = None,
        endpoint_url: str | None = None,
        retention_versions: int = 20,
    ) -> None:
        """Initialize S3 artifact store.

        Args:
            bucket: S3 bucket name.
            prefix: Key prefix for all objects (e.g. "sitepipe/").
            region: AWS region (optional, uses boto3 default if not set).
            endpoint_url: Custom endpoint for MinIO/compatible storage.
            retention_versions: Versions kept per artifact name.
        """
        import boto3

        kwargs: dict = {}
        if region:
            kwargs["region_name"] = region
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url

        self._s3 = boto3.client("s3", **kwargs)
        self._bucket = bucket
        self._prefix = prefix.rstrip("/") + "/" if prefix else ""
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
        self._s3.put_object(
            Bucket=self._bucket,
            Key=self._blob_key(name, version),
            Body=data,
            Metadata={"sha256": meta.sha256},
        )
        self._s3.put_object(
            Bucket=self._bucket,
            Key=self._meta_key(name, version),
            Body=meta.model_dump_json().encode("utf-8"),
            ContentType="application/json",
        )
        index.latest = version
        index.live.append(version)
        self._save_index(index)
        logger.debug(
            "S3 artifact: s3://%s/%s (%d bytes)",
            self._bucket, self._blob_key(name, version), len(data),
        )

        await self.prune(name, self._retention)
        return meta.to_ref()

    async def get(self, name: str, version: int) -> bytes:
        index = self._load_index(name)
        if version < 1 or version > index.latest:
            raise ArtifactNotFound(name, version)
        if version not in index.live:
            raise ArtifactExpired(name, version)
        try:
            response = self._s3.get_object(
                Bucket=self._bucket, Key=self._blob_key(name, version)
            )
        except self._s3.exceptions.NoSuchKey as exc:
            # Removed by a bucket lifecycle rule behind the index's back
            raise ArtifactExpired(name, version) from exc
        return response["Body"].read()

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
        objects = []
        for version in doomed:
            objects.append({"Key": self._blob_key(name, version)})
            objects.append({"Key": self._meta_key(name, version)})
        self._s3.delete_objects(
            Bucket=self._bucket, Delete={"Objects": objects, "Quiet": True}
        )
        logger.info("Pruned %d version(s) of artifact %s", len(doomed), name)
        return doomed

    # --- Helpers ---

    def _key(self, name: str, leaf: str) -> str:
        return f"{self._prefix}{name}/{leaf}"

    def _blob_key(self, name: str, version: int) -> str:
        return self._key(name, f"{version:08d}.zip")

    def _meta_key(self, name: str, version: int) -> str:
        return self._key(name, f"{version:08d}.json")

    def _read_meta(self, name: str, version: int) -> ArtifactVersion:
        response = self._s3.get_object(
            Bucket=self._bucket, Key=self._meta_key(name, version)
        )
        return ArtifactVersion.model_validate_json(response["Body"].read())

    def _load_index(self, name: str) -> ArtifactIndex:
        try:
            response = self._s3.get_object(
                Bucket=self._bucket, Key=self._key(name, "index.json")
            )
        except self._s3.exceptions.NoSuchKey:
            return ArtifactIndex(name=name)
        return ArtifactIndex.model_validate_json(response["Body"].read())

    def _save_index(self, index: ArtifactIndex) -> None:
        self._s3.put_object(
            Bucket=self._bucket,
            Key=self._key(index.name, "index.json"),
            Body=index.model_dump_json().encode("utf-8"),
            ContentType="application/json",
        )
