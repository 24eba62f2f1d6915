# tests/unit/source/test_unit_sources.py — v1
"""Tests for source/ — directory and git snapshots, factory."""

from __future__ import annotations

import shutil
import subprocess

import pytest

from sitepipe.artifacts.bundle import iter_files
from sitepipe.source.base_source import SourceUnavailable
from sitepipe.source.directory_source import DirectorySource
from sitepipe.source.git_source import GitSource
from sitepipe.source.source_factory import create_source

needs_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _git(repo, *args: str) -> str:
    result = subprocess.run(
        ["git", "-C", str(repo), "-c", "user.name=Site Bot",
         "-c", "user.email=bot@example.org", *args],
        check=True, capture_output=True, text=True,
    )
    return result.stdout.strip()


@pytest.fixture
def git_repo(tmp_path):
    repo = tmp_path / "repo"
    repo.mkdir()
    _git(repo, "init", "-q")
    (repo / "index.md").write_text("# v1")
    _git(repo, "add", "index.md")
    _git(repo, "commit", "-q", "-m", "first")
    first = _git(repo, "rev-parse", "HEAD")
    (repo / "index.md").write_text("# v2")
    (repo / "about.md").write_text("# About")
    _git(repo, "add", ".")
    _git(repo, "commit", "-q", "-m", "second")
    return repo, first, _git(repo, "rev-parse", "HEAD")


class TestDirectorySource:
    @pytest.mark.asyncio
    async def test_snapshot_skips_build_output(self, tmp_path):
        site = tmp_path / "site"
        (site / "public").mkdir(parents=True)
        (site / "public" / "index.html").write_text("stale")
        (site / "index.md").write_text("# Home")
        files = dict(iter_files(await DirectorySource(site).snapshot("ignored")))
        assert files == {"index.md": b"# Home"}

    @pytest.mark.asyncio
    async def test_missing_directory(self, tmp_path):
        with pytest.raises(SourceUnavailable):
            await DirectorySource(tmp_path / "missing").snapshot("HEAD")


@needs_git
class TestGitSource:
    @pytest.mark.asyncio
    async def test_snapshot_of_each_commit(self, git_repo):
        repo, first, second = git_repo
        source = GitSource(repo)
        assert dict(iter_files(await source.snapshot(first))) == {"index.md": b"# v1"}
        assert sorted(dict(iter_files(await source.snapshot(second)))) == ["about.md", "index.md"]

    @pytest.mark.asyncio
    async def test_resolve_branch(self, git_repo):
        repo, _, second = git_repo
        branch = _git(repo, "rev-parse", "--abbrev-ref", "HEAD")
        assert await GitSource(repo).resolve(branch) == second

    @pytest.mark.asyncio
    async def test_unknown_commit(self, git_repo):
        repo, _, _ = git_repo
        with pytest.raises(SourceUnavailable, match="git archive failed"):
            await GitSource(repo).snapshot("0" * 40)

    @pytest.mark.asyncio
    async def test_option_like_ref_refused(self, git_repo):
        repo, _, _ = git_repo
        with pytest.raises(SourceUnavailable):
            await GitSource(repo).snapshot("--output=/tmp/x")


class TestGitSourceWithoutBinary:
    @pytest.mark.asyncio
    async def test_missing_binary(self, tmp_path):
        source = GitSource(tmp_path, git_binary=str(tmp_path / "no-such-git"))
        with pytest.raises(SourceUnavailable, match="Cannot run"):
            await source.snapshot("HEAD")


class TestSourceFactory:
    def test_directory(self, settings):
        assert isinstance(create_source(settings), DirectorySource)

    def test_git(self, settings):
        git_settings = settings.model_copy(update={"source_backend": "git"})
        assert isinstance(create_source(git_settings), GitSource)
