# src/source/directory_source.py — v1
"""Working-directory source (SOURCE_BACKEND=directory).

Packs the current contents of a directory regardless of the commit
reference. Useful for local previews and tests.
"""

from __future__ import annotations

from pathlib import Path

from sitepipe.artifacts.bundle import pack_directory
from sitepipe.source.base_source import BaseSource, SourceUnavailable

_DEFAULT_EXCLUDES = (".git/*", "node_modules/*", ".cache/*", "public/*")


class DirectorySource(BaseSource):
    """Snapshot a plain directory."""

    def __init__(self, root: Path | str, exclude: tuple[str, ...] = _DEFAULT_EXCLUDES) -> None:
        self._root = Path(root).expanduser()
        self._exclude = exclude

    async def snapshot(self, commit_ref: str) -> bytes:
        if not self._root.is_dir():
            raise SourceUnavailable(f"Source directory missing: {self._root}")
        return pack_directory(self._root, exclude=self._exclude)
