# src/source/git_source.py — v1
"""Git repository source (SOURCE_BACKEND=git).

Snapshots are produced with ``git archive --format=zip``, whose output is
deterministic for a given commit.
"""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from sitepipe.source.base_source import BaseSource, SourceUnavailable

logger = logging.getLogger(__name__)


class GitSource(BaseSource):
    """Read commits from a local clone (or bare mirror) with the git CLI."""

    def __init__(self, repo_path: Path | str, git_binary: str = "git") -> None:
        self._repo = Path(repo_path).expanduser()
        self._git = git_binary

    async def snapshot(self, commit_ref: str) -> bytes:
        if commit_ref.startswith("-"):
            raise SourceUnavailable(f"Refusing option-like ref {commit_ref!r}")
        stdout = await self._run("archive", "--format=zip", commit_ref)
        logger.info("Snapshot of %s: %d bytes", commit_ref, len(stdout))
        return stdout

    async def resolve(self, ref: str) -> str:
        """Resolve a branch or tag name to a full commit hash."""
        out = await self._run("rev-parse", "--verify", f"{ref}^{{commit}}")
        return out.decode("utf-8").strip()

    async def _run(self, *args: str) -> bytes:
        try:
            proc = await asyncio.create_subprocess_exec(
                self._git,
                "-C",
                str(self._repo),
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except OSError as e:
            raise SourceUnavailable(f"Cannot run {self._git}: {e}") from e
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise SourceUnavailable(
                f"git {args[0]} failed ({proc.returncode}): "
                f"{stderr.decode('utf-8', 'replace').strip()}"
            )
        return stdout
