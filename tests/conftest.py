# tests/conftest.py — v1
"""Shared test fixtures for all unit and integration tests.

Provides file-backed stores under tmp_path, a scripted stage executor per
kind, and an orchestrator factory. No network access: cloud clients are
mocked in the tests that need them.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

import pytest

from sitepipe.artifacts.local_store import LocalArtifactStore
from sitepipe.config.settings import Settings
from sitepipe.core.models import (
    SOURCE_ARTIFACT,
    PipelineDefinition,
    StageSpec,
    TriggerEvent,
)
from sitepipe.notify.log_notifier import LogNotifier
from sitepipe.pipeline.orchestrator import PipelineOrchestrator
from sitepipe.stages.base_stage import BaseStageExecutor, StageContext, StageOutcome
from sitepipe.stages.registry import StageExecutorRegistry
from sitepipe.state.json_store import JsonStateStore


# === Helpers ===


class ScriptedExecutor(BaseStageExecutor):
    """Stage executor whose behaviour is set by the test.

    Args:
        kind: Stage kind served.
        fail: Failure reason to report instead of succeeding.
        raises: Exception raised from run().
        hold: Block run() until ``release()`` is called.
        produce: Store one artifact per declared output.
    """

    def __init__(
        self,
        kind: str,
        fail: str | None = None,
        raises: Exception | None = None,
        hold: bool = False,
        produce: bool = True,
    ) -> None:
        self.kind = kind  # type: ignore[assignment]
        self.fail = fail
        self.raises = raises
        self.gate: asyncio.Event | None = asyncio.Event() if hold else None
        self.produce = produce
        self.calls: list[str] = []
        self.resumed: list[str] = []
        self.cancelled: list[str] = []
        self.handles: list[str] = []

    def release(self) -> None:
        if self.gate is not None:
            self.gate.set()

    async def run(self, ctx: StageContext) -> StageOutcome:
        self.calls.append(ctx.execution_id)
        handle = f"{self.kind}-{ctx.execution_id}"
        await ctx.checkpoint(handle)
        self.handles.append(handle)
        return await self._finish(ctx)

    async def resume(self, ctx: StageContext) -> StageOutcome:
        self.resumed.append(ctx.execution_id)
        return await self._finish(ctx)

    async def cancel(self, ctx: StageContext) -> None:
        self.cancelled.append(ctx.execution_id)

    async def _finish(self, ctx: StageContext) -> StageOutcome:
        if self.gate is not None:
            await self.gate.wait()
        if self.raises is not None:
            raise self.raises
        if self.fail is not None:
            return StageOutcome.failed(self.fail, "scripted failure")
        if self.kind == "approval":
            return StageOutcome.approval_needed()
        outputs = []
        if self.produce:
            for name in ctx.spec.output_artifacts:
                data = f"{ctx.execution_id}:{ctx.commit_ref}:{name}".encode()
                outputs.append(await ctx.artifacts.put(name, data))
        return StageOutcome.succeeded(outputs)


def make_trigger(commit: str = "c0ffee1", branch: str = "master") -> TriggerEvent:
    return TriggerEvent(commit_ref=commit, branch=branch)


async def wait_until(
    predicate: Callable[[], Awaitable[bool]], timeout: float = 5.0
) -> None:
    """Poll an async predicate until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not await predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.01)


async def wait_for_stage(
    orchestrator: PipelineOrchestrator,
    execution_id: str,
    stage_name: str,
    status: str,
) -> None:
    async def reached() -> bool:
        execution = await orchestrator.get_execution(execution_id)
        run = execution.stage_run(stage_name)
        return run is not None and run.status == status

    await wait_until(reached)


# === FIXTURES: Definition & settings ===


@pytest.fixture
def site_definition() -> PipelineDefinition:
    """Source -> Build -> Approval -> Deploy."""
    return PipelineDefinition(
        name="site",
        version=1,
        stages=[
            StageSpec(name="Source", kind="source", output_artifacts=[SOURCE_ARTIFACT]),
            StageSpec(
                name="Build",
                kind="build",
                input_artifacts=[SOURCE_ARTIFACT],
                output_artifacts=["StaticFiles"],
            ),
            StageSpec(
                name="Approval",
                kind="approval",
                config={
                    "custom_data": "Deploy example.org?",
                    "external_link": "http://dev.example.org",
                    "notification_target": "arn:aws:sns:eu-west-1:123456789012:approvals",
                },
            ),
            StageSpec(name="Deploy", kind="deploy", input_artifacts=["StaticFiles"]),
        ],
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings with every path under tmp_path and no .env lookup."""
    return Settings(
        _env_file=None,
        state_root=tmp_path / "state",
        artifact_root=tmp_path / "artifacts",
        build_workdir=tmp_path / "builds",
        source_backend="directory",
        source_path=tmp_path / "site",
        deploy_destination=str(tmp_path / "www"),
    )


# === FIXTURES: Collaborators ===


@pytest.fixture
def state_store(tmp_path) -> JsonStateStore:
    return JsonStateStore(root=tmp_path / "state")


@pytest.fixture
def artifact_store(tmp_path) -> LocalArtifactStore:
    return LocalArtifactStore(root=tmp_path / "artifacts")


@pytest.fixture
def notifier() -> LogNotifier:
    return LogNotifier()


@pytest.fixture
def executors() -> dict[str, ScriptedExecutor]:
    """One scripted executor per kind; tests replace entries before building."""
    return {
        kind: ScriptedExecutor(kind)
        for kind in ("source", "build", "approval", "deploy")
    }


@pytest.fixture
def make_orchestrator(site_definition, state_store, artifact_store, notifier, executors):
    """Factory: orchestrator over the shared stores and executors."""

    def _make(**kwargs) -> PipelineOrchestrator:
        kwargs.setdefault("definition", site_definition)
        kwargs.setdefault("store", state_store)
        kwargs.setdefault("artifacts", artifact_store)
        kwargs.setdefault("notifier", notifier)
        registry = kwargs.pop("registry", None) or StageExecutorRegistry(
            list(executors.values())
        )
        return PipelineOrchestrator(executors=registry, **kwargs)

    return _make


# === FIXTURES: Helpers (test modules import nothing from conftest) ===


@pytest.fixture
def scripted():
    """The ScriptedExecutor class."""
    return ScriptedExecutor


@pytest.fixture
def trigger():
    """Factory for TriggerEvents on the tracked branch."""
    return make_trigger


@pytest.fixture
def until():
    """Async poller: ``await until(predicate)``."""
    return wait_until


@pytest.fixture
def stage_reaches():
    """``await stage_reaches(orchestrator, execution_id, stage, status)``."""
    return wait_for_stage
