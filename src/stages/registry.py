# src/stages/registry.py — v1
"""Stage executor registry: one executor per StageKind.

The stage vocabulary is fixed, so the registry refuses unknown kinds and
``complete()`` checks that every kind has an executor.
"""

from __future__ import annotations

import logging
from typing import get_args

from sitepipe.core.models import StageKind
from sitepipe.stages.base_stage import BaseStageExecutor

logger = logging.getLogger(__name__)

STAGE_KINDS: tuple[str, ...] = get_args(StageKind)


class StageExecutorRegistry:
    """Maps StageKind -> executor."""

    def __init__(self, executors: list[BaseStageExecutor] | None = None) -> None:
        self._executors: dict[str, BaseStageExecutor] = {}
        for executor in executors or []:
            self.register(executor)

    def register(self, executor: BaseStageExecutor) -> None:
        if executor.kind not in STAGE_KINDS:
            raise ValueError(f"Unknown stage kind: {executor.kind!r}")
        if executor.kind in self._executors:
            logger.warning("Replacing executor for stage kind '%s'", executor.kind)
        self._executors[executor.kind] = executor

    def get(self, kind: str) -> BaseStageExecutor:
        try:
            return self._executors[kind]
        except KeyError:
            raise KeyError(f"No executor registered for stage kind {kind!r}") from None

    def missing_kinds(self) -> list[str]:
        return [k for k in STAGE_KINDS if k not in self._executors]

    def complete(self) -> bool:
        return not self.missing_kinds()
