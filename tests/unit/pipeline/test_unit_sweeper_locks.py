# tests/unit/pipeline/test_unit_sweeper_locks.py — v1
"""Tests for pipeline/sweeper.py and pipeline/locks.py."""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from sitepipe.pipeline.locks import ExecutionLocks
from sitepipe.pipeline.sweeper import TimeoutSweeper


def _orchestrator(side_effect=None):
    orchestrator = MagicMock()
    orchestrator.sweep_timeouts = AsyncMock(return_value=["3"], side_effect=side_effect)
    return orchestrator


class TestTimeoutSweeper:
    def test_rejects_non_positive_interval(self):
        with pytest.raises(ValueError):
            TimeoutSweeper(_orchestrator(), interval=0)

    @pytest.mark.asyncio
    async def test_run_once(self):
        sweeper = TimeoutSweeper(_orchestrator())
        assert await sweeper.run_once() == ["3"]

    @pytest.mark.asyncio
    async def test_loop_sweeps_until_stopped(self):
        orchestrator = _orchestrator()
        sweeper = TimeoutSweeper(orchestrator, interval=0.01)
        sweeper.start()
        assert sweeper.running
        await asyncio.sleep(0.05)
        await sweeper.stop()
        assert not sweeper.running
        assert orchestrator.sweep_timeouts.await_count >= 2

    @pytest.mark.asyncio
    async def test_loop_survives_sweep_errors(self):
        orchestrator = _orchestrator(side_effect=RuntimeError("store offline"))
        sweeper = TimeoutSweeper(orchestrator, interval=0.01)
        sweeper.start()
        await asyncio.sleep(0.05)
        await sweeper.stop()
        assert orchestrator.sweep_timeouts.await_count >= 2

    @pytest.mark.asyncio
    async def test_stop_without_start(self):
        await TimeoutSweeper(_orchestrator()).stop()


class TestExecutionLocks:
    @pytest.mark.asyncio
    async def test_serializes_one_execution(self):
        locks = ExecutionLocks()
        order: list[str] = []

        async def critical(tag: str) -> None:
            async with locks.hold("1"):
                order.append(f"{tag}-in")
                await asyncio.sleep(0.01)
                order.append(f"{tag}-out")

        await asyncio.gather(critical("a"), critical("b"))
        assert order == ["a-in", "a-out", "b-in", "b-out"]

    @pytest.mark.asyncio
    async def test_independent_executions(self):
        locks = ExecutionLocks()
        async with locks.hold("1"):
            assert locks.locked("1")
            assert not locks.locked("2")
            async with locks.hold("2"):
                assert len(locks) == 2

    @pytest.mark.asyncio
    async def test_released_locks_are_dropped(self):
        locks = ExecutionLocks()
        async with locks.hold("1"):
            pass
        assert len(locks) == 0
        assert not locks.locked("1")
