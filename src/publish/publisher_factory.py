# src/publish/publisher_factory.py — v1
"""Factory: pick a publisher from the destination URL scheme."""

from __future__ import annotations

from sitepipe.publish.base_publisher import BasePublisher


def create_publisher(destination: str, region: str | None = None) -> BasePublisher:
    """Create the publisher able to write to ``destination``.

    ``s3://bucket/prefix`` selects S3; anything else is a local directory
    (optionally ``file://``-prefixed).

    Raises:
        ValueError: If destination is empty.
    """
    if not destination:
        raise ValueError("Publish destination must be set")

    if destination.startswith("s3://"):
        from sitepipe.publish.s3_publisher import S3Publisher

        return S3Publisher(region=region or None)

    from sitepipe.publish.local_publisher import LocalPublisher

    return LocalPublisher()
