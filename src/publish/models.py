# src/publish/models.py — v1
"""Publish options and sync reports."""

from __future__ import annotations

from pydantic import BaseModel, Field


class PublishOptions(BaseModel):
    """Options passed to the object storage collaborator."""

    overwrite: bool = True
    acl_public_read: bool = False
    delete_removed: bool = True


class SyncReport(BaseModel):
    """Outcome of one sync against a destination."""

    destination: str
    uploaded: list[str] = Field(default_factory=list)
    unchanged: list[str] = Field(default_factory=list)
    deleted: list[str] = Field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.uploaded or self.deleted)

    def summary(self) -> dict[str, int]:
        return {
            "uploaded": len(self.uploaded),
            "unchanged": len(self.unchanged),
            "deleted": len(self.deleted),
        }
