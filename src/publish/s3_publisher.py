# src/publish/s3_publisher.py — v1
"""Publish a site to an S3 bucket behind a CDN.

Equivalent of ``aws s3 sync <dir> s3://bucket/prefix --delete --acl public-read``:
objects whose ETag already equals the content MD5 are skipped, so a
re-run with the same artifact uploads nothing. CDN invalidation is not
awaited.
"""

from __future__ import annotations

import hashlib
import logging
import mimetypes

from sitepipe.publish.base_publisher import BasePublisher
from sitepipe.publish.models import PublishOptions, SyncReport

logger = logging.getLogger(__name__)

_DELETE_BATCH = 1000


def parse_s3_url(destination: str) -> tuple[str, str]:
    """Split ``s3://bucket/prefix`` into (bucket, prefix with trailing slash)."""
    if not destination.startswith("s3://"):
        raise ValueError(f"Not an S3 destination: {destination!r}")
    bucket, _, prefix = destination[len("s3://"):].partition("/")
    if not bucket:
        raise ValueError(f"Missing bucket in destination: {destination!r}")
    prefix = prefix.strip("/")
    return bucket, f"{prefix}/" if prefix else ""


class S3Publisher(BasePublisher):
    """Sync files into S3-compatible object storage."""

    def __init__(
        self,
        region: str | None = None,
        endpoint_url: str | None = None,
    ) -> None:
        import boto3

        kwargs: dict = {}
        if region:
            kwargs["region_name"] = region
        if endpoint_url:
            kwargs["endpoint_url"] = endpoint_url
        self._s3 = boto3.client("s3", **kwargs)

    async def sync(
        self,
        files: dict[str, bytes],
        destination: str,
        options: PublishOptions | None = None,
    ) -> SyncReport:
        options = options or PublishOptions()
        bucket, prefix = parse_s3_url(destination)
        existing = await self.list_objects(destination)
        report = SyncReport(destination=destination)

        for rel in sorted(files):
            content = files[rel]
            etag = existing.get(rel)
            if etag == hashlib.md5(content).hexdigest():  # noqa: S324
                report.unchanged.append(rel)
                continue
            if etag is not None and not options.overwrite:
                report.unchanged.append(rel)
                continue
            await self.put(rel, content, destination, options)
            report.uploaded.append(rel)

        if options.delete_removed:
            stale = sorted(set(existing) - set(files))
            for i in range(0, len(stale), _DELETE_BATCH):
                batch = stale[i:i + _DELETE_BATCH]
                self._s3.delete_objects(
                    Bucket=bucket,
                    Delete={
                        "Objects": [{"Key": f"{prefix}{rel}"} for rel in batch],
                        "Quiet": True,
                    },
                )
                report.deleted.extend(batch)

        logger.info("Synced %s: %s", destination, report.summary())
        return report

    async def put(
        self,
        key: str,
        content: bytes,
        destination: str,
        options: PublishOptions | None = None,
    ) -> None:
        bucket, prefix = parse_s3_url(destination)
        kwargs: dict = {
            "Bucket": bucket,
            "Key": f"{prefix}{key}",
            "Body": content,
            "ContentType": mimetypes.guess_type(key)[0] or "application/octet-stream",
        }
        if options is not None and options.acl_public_read:
            kwargs["ACL"] = "public-read"
        # put_object returns only after S3 has durably stored the object
        self._s3.put_object(**kwargs)
        logger.debug("S3 publish: s3://%s/%s (%d bytes)", bucket, kwargs["Key"], len(content))

    async def list_objects(self, destination: str) -> dict[str, str]:
        bucket, prefix = parse_s3_url(destination)
        paginator = self._s3.get_paginator("list_objects_v2")
        objects: dict[str, str] = {}
        for page in paginator.paginate(Bucket=bucket, Prefix=prefix):
            for obj in page.get("Contents", []):
                rel = obj["Key"][len(prefix):]
                if rel:
                    objects[rel] = obj.get("ETag", "").strip('"')
        return objects
