# tests/unit/build/test_unit_local_environment.py — v1
"""Tests for build/local_environment.py — real /bin/sh subprocesses."""

from __future__ import annotations

import asyncio

import pytest

from sitepipe.artifacts.bundle import iter_files, pack_files
from sitepipe.build.local_environment import LocalBuildEnvironment
from sitepipe.build.models import BuildSpec

SOURCE = pack_files({"index.md": b"# Home", "about.md": b"# About"})


def _spec(build_commands, base_directory="public"):
    return BuildSpec.model_validate({
        "phases": {"build": {"commands": build_commands}},
        "artifacts": {"base-directory": base_directory},
    })


@pytest.fixture
def env(tmp_path):
    return LocalBuildEnvironment(tmp_path / "builds")


class TestLocalBuildEnvironment:
    @pytest.mark.asyncio
    async def test_successful_build_packages_base_directory(self, env):
        spec = _spec(["mkdir -p public", "cp index.md public/index.html"])
        build_id = await env.start(SOURCE, spec)
        report = await env.wait(build_id, timeout=30)

        assert report.status == "succeeded"
        assert report.exit_code == 0
        output = dict(iter_files(await env.read_output(build_id)))
        assert output == {"index.html": b"# Home"}

    @pytest.mark.asyncio
    async def test_env_variables_reach_commands(self, env):
        spec = BuildSpec.model_validate({
            "env": {"variables": {"SITE_NAME": "example"}},
            "phases": {"build": {"commands": [
                "mkdir -p public",
                'echo "$SITE_NAME/$SITEPIPE_COMMIT" > public/name.txt',
            ]}},
            "artifacts": {"base-directory": "public"},
        })
        build_id = await env.start(SOURCE, spec, env={"SITEPIPE_COMMIT": "abc"})
        await env.wait(build_id, timeout=30)
        output = dict(iter_files(await env.read_output(build_id)))
        assert output["name.txt"].strip() == b"example/abc"

    @pytest.mark.asyncio
    async def test_first_failing_command_stops_build(self, env):
        spec = BuildSpec.model_validate({
            "phases": {
                "pre_build": {"commands": ["exit 3", "touch should-not-exist"]},
                "build": {"commands": ["touch nor-this"]},
            },
        })
        build_id = await env.start(SOURCE, spec)
        report = await env.wait(build_id, timeout=30)

        assert report.status == "failed"
        assert report.error_kind == "command"
        assert report.exit_code == 3
        assert report.phase == "pre_build"
        log = env.log_path(build_id).read_text()
        assert "exit 3" in log
        assert "touch nor-this" not in log

    @pytest.mark.asyncio
    async def test_missing_base_directory(self, env):
        build_id = await env.start(SOURCE, _spec(["true"], base_directory="dist"))
        report = await env.wait(build_id, timeout=30)
        assert report.status == "failed"
        assert report.error_kind == "artifacts"

    @pytest.mark.asyncio
    async def test_timeout_stops_build(self, env):
        build_id = await env.start(SOURCE, _spec(["sleep 30"]))
        report = await env.wait(build_id, timeout=0.2)
        assert report.status == "timed_out"

    @pytest.mark.asyncio
    async def test_stop(self, env):
        build_id = await env.start(SOURCE, _spec(["sleep 30"]))
        await env.stop(build_id)
        report = await env.status(build_id)
        assert report.status == "stopped"

    @pytest.mark.asyncio
    async def test_build_from_another_process_is_lost(self, env, tmp_path):
        build_id = await env.start(SOURCE, _spec(["sleep 30"]))
        other = LocalBuildEnvironment(tmp_path / "builds")
        report = await other.status(build_id)
        assert report.status == "lost"
        await env.stop(build_id)

    @pytest.mark.asyncio
    async def test_unknown_build(self, env):
        assert await env.status("build-missing") is None
        with pytest.raises(KeyError):
            await env.wait("build-missing")

    @pytest.mark.asyncio
    async def test_finished_builds_are_released(self, env):
        done = await env.start(SOURCE, _spec(["mkdir -p public"]))
        await env.wait(done, timeout=30)
        stopped = await env.start(SOURCE, _spec(["sleep 30"]))
        await env.stop(stopped)
        await asyncio.sleep(0)

        assert env._tasks == {}
        assert (await env.status(done)).status == "succeeded"
        assert (await env.status(stopped)).status == "stopped"
        assert (await env.wait(done)).status == "succeeded"
