# tests/unit/state/test_unit_state_stores.py — v1
"""Tests for the JSON and SQLite state stores — shared behaviour."""

from __future__ import annotations

import pytest

from sitepipe.core.models import (
    ApprovalRequest,
    AuditEntry,
    Execution,
    PipelineDefinition,
    StageRun,
    StageSpec,
    TriggerEvent,
)
from sitepipe.state.json_store import JsonStateStore
from sitepipe.state.sqlite_store import SqliteStateStore
from sitepipe.state.store_factory import create_state_store


@pytest.fixture(params=["json", "sqlite"])
def store(request, tmp_path):
    if request.param == "json":
        return JsonStateStore(root=tmp_path / "state")
    return SqliteStateStore(db_path=tmp_path / "state.db")


def _execution(execution_id: str, status: str = "Pending") -> Execution:
    definition = PipelineDefinition(
        name="site", stages=[StageSpec(name="Source", kind="source")]
    )
    return Execution(
        execution_id=execution_id,
        pipeline_name="site",
        definition=definition,
        trigger=TriggerEvent(commit_ref=f"c{execution_id}", branch="master"),
        status=status,
        stage_runs=[StageRun(stage_name="Source", kind="source")],
    )


class TestExecutions:
    @pytest.mark.asyncio
    async def test_ids_are_monotonic(self, store):
        ids = [await store.next_execution_id() for _ in range(3)]
        assert ids == ["1", "2", "3"]

    @pytest.mark.asyncio
    async def test_save_and_get(self, store):
        await store.save_execution(_execution("1"))
        loaded = await store.get_execution("1")
        assert loaded is not None
        assert loaded.trigger.commit_ref == "c1"
        assert await store.get_execution("42") is None

    @pytest.mark.asyncio
    async def test_list_sorted_numerically_and_filtered(self, store):
        for eid, status in (("10", "Running"), ("2", "Pending"), ("9", "Succeeded")):
            await store.save_execution(_execution(eid, status))

        assert [e.execution_id for e in await store.list_executions()] == ["2", "9", "10"]
        active = await store.list_executions(["Pending", "Running"])
        assert [e.execution_id for e in active] == ["2", "10"]

    @pytest.mark.asyncio
    async def test_save_replaces(self, store):
        await store.save_execution(_execution("1"))
        await store.save_execution(_execution("1", "Running"))
        assert (await store.get_execution("1")).status == "Running"
        assert len(await store.list_executions()) == 1


class TestApprovals:
    @pytest.mark.asyncio
    async def test_pending_filter(self, store):
        await store.save_approval(ApprovalRequest(request_id="a", execution_id="1", stage_name="Approval"))
        await store.save_approval(
            ApprovalRequest(request_id="b", execution_id="2", stage_name="Approval", status="Approved")
        )
        assert [r.request_id for r in await store.list_approvals(pending_only=True)] == ["a"]
        assert [r.request_id for r in await store.list_approvals(execution_id="2")] == ["b"]
        assert (await store.get_approval("b")).status == "Approved"
        assert await store.get_approval("zzz") is None


class TestTriggerClaims:
    @pytest.mark.asyncio
    async def test_claim_once(self, store):
        assert await store.claim_trigger("master:abc") is True
        assert await store.claim_trigger("master:abc") is False
        assert await store.get_trigger_claim("master:abc") == ""

    @pytest.mark.asyncio
    async def test_bind_and_release(self, store):
        await store.claim_trigger("master:abc")
        await store.bind_trigger("master:abc", "5")
        assert await store.get_trigger_claim("master:abc") == "5"
        await store.release_trigger("master:abc")
        assert await store.get_trigger_claim("master:abc") is None
        assert await store.claim_trigger("master:abc") is True


class TestAudit:
    @pytest.mark.asyncio
    async def test_sequence_per_execution(self, store):
        for status in ("Pending", "Running"):
            await store.append_audit(AuditEntry(execution_id="1", scope="execution", to_status=status))
        other = await store.append_audit(AuditEntry(execution_id="2", scope="execution", to_status="Pending"))

        entries = await store.list_audit("1")
        assert [(e.sequence, e.to_status) for e in entries] == [(1, "Pending"), (2, "Running")]
        assert other.sequence == 1
        assert await store.list_audit("3") == []


class TestFactory:
    def test_json_default(self, settings):
        assert isinstance(create_state_store(settings), JsonStateStore)

    def test_sqlite(self, settings, tmp_path):
        settings.state_backend = "sqlite"
        store = create_state_store(settings)
        assert isinstance(store, SqliteStateStore)
        assert (tmp_path / "state" / "sitepipe_state.db").exists()
        store.close()
