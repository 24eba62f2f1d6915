# src/stages/base_stage.py — v1
"""Stage executor contract shared by Source, Build, Approval and Deploy.

An executor receives a StageContext and returns a StageOutcome. It never
touches execution state: the orchestrator turns the outcome into a
transition. Long-running executors persist their external handle through
``ctx.checkpoint`` before waiting, so ``resume`` can re-attach after a
restart instead of re-invoking the work.
"""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import Any, Literal

from sitepipe.artifacts.base_artifact_store import BaseArtifactStore
from sitepipe.core.errors import ArtifactNotFound
from sitepipe.core.models import ArtifactRef, StageKind, StageRun, StageSpec


@dataclass
class StageOutcome:
    """What a stage executor reports back to the orchestrator."""

    kind: Literal["succeeded", "approval_needed", "failed"]
    outputs: list[ArtifactRef] = field(default_factory=list)
    reason: str | None = None
    detail: str | None = None

    @classmethod
    def succeeded(cls, outputs: list[ArtifactRef] | None = None) -> StageOutcome:
        return cls("succeeded", outputs=list(outputs or []))

    @classmethod
    def approval_needed(cls) -> StageOutcome:
        return cls("approval_needed")

    @classmethod
    def failed(cls, reason: str, detail: str | None = None) -> StageOutcome:
        return cls("failed", reason=reason, detail=detail)


async def _no_checkpoint(handle: str) -> None:
    return None


@dataclass
class StageContext:
    """Everything an executor may read while running one StageRun."""

    execution_id: str
    commit_ref: str
    spec: StageSpec
    stage_run: StageRun
    inputs: dict[str, ArtifactRef]
    artifacts: BaseArtifactStore
    cancel_event: asyncio.Event = field(default_factory=asyncio.Event)
    checkpoint: Callable[[str], Awaitable[None]] = _no_checkpoint

    @property
    def config(self) -> dict[str, Any]:
        return self.spec.config

    @property
    def cancelled(self) -> bool:
        return self.cancel_event.is_set()

    def input_ref(self, name: str | None = None) -> ArtifactRef:
        """The named input (default: the first declared input)."""
        if name is None:
            if not self.spec.input_artifacts:
                raise ArtifactNotFound(f"<no input declared for {self.spec.name}>")
            name = self.spec.input_artifacts[0]
        ref = self.inputs.get(name)
        if ref is None:
            raise ArtifactNotFound(name)
        return ref

    def output_name(self, default: str) -> str:
        """The first declared output artifact name, or ``default``."""
        return self.spec.output_artifacts[0] if self.spec.output_artifacts else default


class BaseStageExecutor(ABC):
    """Closed set of variants, dispatched by ``kind``."""

    kind: StageKind

    @abstractmethod
    async def run(self, ctx: StageContext) -> StageOutcome:
        """Start (and, for asynchronous work, await) the stage."""

    async def resume(self, ctx: StageContext) -> StageOutcome:
        """Re-attach to a stage that was Running when the orchestrator stopped.

        Default: the stage is safe to run again (pure reads, idempotent sync).
        """
        return await self.run(ctx)

    async def cancel(self, ctx: StageContext) -> None:  # noqa: B027 - optional hook
        """Best-effort stop of external work; cooperative by default."""
