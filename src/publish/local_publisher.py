# src/publish/local_publisher.py — v1
"""Publish to a local directory (preview servers, tests)."""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path

from sitepipe.publish.base_publisher import BasePublisher
from sitepipe.publish.models import PublishOptions, SyncReport

logger = logging.getLogger(__name__)


def _digest(content: bytes) -> str:
    return hashlib.md5(content).hexdigest()  # noqa: S324 - matches S3 ETag


class LocalPublisher(BasePublisher):
    """Sync files into a directory on the local filesystem."""

    def __init__(self, base_path: str | None = None) -> None:
        self._base = Path(base_path) if base_path else None

    def _resolve(self, destination: str) -> Path:
        if destination.startswith("file://"):
            destination = destination[len("file://"):]
        path = Path(destination).expanduser()
        if self._base is not None and not path.is_absolute():
            path = self._base / path
        return path

    async def sync(
        self,
        files: dict[str, bytes],
        destination: str,
        options: PublishOptions | None = None,
    ) -> SyncReport:
        options = options or PublishOptions()
        root = self._resolve(destination)
        root.mkdir(parents=True, exist_ok=True)
        existing = await self.list_objects(destination)
        report = SyncReport(destination=destination)

        for rel in sorted(files):
            content = files[rel]
            if existing.get(rel) == _digest(content):
                report.unchanged.append(rel)
                continue
            if rel in existing and not options.overwrite:
                report.unchanged.append(rel)
                continue
            await self.put(rel, content, destination, options)
            report.uploaded.append(rel)

        if options.delete_removed:
            for rel in sorted(set(existing) - set(files)):
                (root / rel).unlink()
                report.deleted.append(rel)
            _remove_empty_dirs(root)

        logger.info("Synced %s: %s", destination, report.summary())
        return report

    async def put(
        self,
        key: str,
        content: bytes,
        destination: str,
        options: PublishOptions | None = None,
    ) -> None:
        path = self._resolve(destination) / key
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".partial")
        tmp.write_bytes(content)
        tmp.replace(path)
        if options is not None and options.acl_public_read:
            path.chmod(0o644)

    async def list_objects(self, destination: str) -> dict[str, str]:
        root = self._resolve(destination)
        if not root.is_dir():
            return {}
        return {
            p.relative_to(root).as_posix(): _digest(p.read_bytes())
            for p in sorted(root.rglob("*"))
            if p.is_file()
        }


def _remove_empty_dirs(root: Path) -> None:
    for path in sorted(root.rglob("*"), key=lambda p: len(p.parts), reverse=True):
        if path.is_dir() and not any(path.iterdir()):
            path.rmdir()
