# src/pipeline/sweeper.py — v1
"""Periodic timeout sweep.

Deadlines are wall-clock timestamps on the StageRun, so the sweep is the
only thing that needs a clock: a stage that outlives its deadline (or an
approval nobody answers) is failed on the next pass.
"""

from __future__ import annotations

import asyncio
import logging

from sitepipe.pipeline.orchestrator import PipelineOrchestrator

logger = logging.getLogger(__name__)


class TimeoutSweeper:
    """Runs ``orchestrator.sweep_timeouts`` every ``interval`` seconds."""

    def __init__(self, orchestrator: PipelineOrchestrator, interval: float = 30.0) -> None:
        if interval <= 0:
            raise ValueError("Sweep interval must be positive")
        self._orchestrator = orchestrator
        self._interval = interval
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        if self.running:
            return
        self._stopping.clear()
        self._task = asyncio.create_task(self._loop(), name="timeout-sweeper")
        logger.info("Timeout sweeper started (every %.0fs)", self._interval)

    async def stop(self) -> None:
        if self._task is None:
            return
        self._stopping.set()
        await self._task
        self._task = None
        logger.info("Timeout sweeper stopped")

    async def run_once(self) -> list[str]:
        return await self._orchestrator.sweep_timeouts()

    async def _loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_once()
            except Exception:  # noqa: BLE001 - keep sweeping; next pass retries
                logger.exception("Timeout sweep failed")
            try:
                await asyncio.wait_for(self._stopping.wait(), self._interval)
            except asyncio.TimeoutError:
                pass
