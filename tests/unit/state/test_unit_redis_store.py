# tests/unit/state/test_unit_redis_store.py — v1
"""Tests for state/redis_store.py — in-memory stand-in for the Redis client."""

from __future__ import annotations

from unittest.mock import patch

import pytest

from sitepipe.core.models import (
    ApprovalRequest,
    AuditEntry,
    Execution,
    PipelineDefinition,
    StageSpec,
    TriggerEvent,
)


class _MemoryRedis:
    """Implements the handful of commands the store issues."""

    def __init__(self) -> None:
        self.hashes: dict[str, dict[str, str]] = {}
        self.lists: dict[str, list[str]] = {}
        self.counters: dict[str, int] = {}

    def incr(self, key):
        self.counters[key] = self.counters.get(key, 0) + 1
        return self.counters[key]

    def hset(self, key, field, value):
        self.hashes.setdefault(key, {})[field] = value

    def hsetnx(self, key, field, value):
        bucket = self.hashes.setdefault(key, {})
        if field in bucket:
            return 0
        bucket[field] = value
        return 1

    def hget(self, key, field):
        return self.hashes.get(key, {}).get(field)

    def hdel(self, key, field):
        return int(self.hashes.get(key, {}).pop(field, None) is not None)

    def hvals(self, key):
        return list(self.hashes.get(key, {}).values())

    def llen(self, key):
        return len(self.lists.get(key, []))

    def rpush(self, key, value):
        self.lists.setdefault(key, []).append(value)

    def lrange(self, key, start, end):
        items = self.lists.get(key, [])
        return items[start:] if end == -1 else items[start:end + 1]

    def close(self):
        pass


@pytest.fixture
def fake_redis():
    return _MemoryRedis()


@pytest.fixture
def store(fake_redis):
    with patch("sitepipe.state.redis_store.redis.Redis.from_url", return_value=fake_redis):
        from sitepipe.state.redis_store import RedisStateStore

        yield RedisStateStore(redis_url="redis://localhost:6379/0", namespace="site")


def _execution(execution_id: str, status: str = "Running") -> Execution:
    return Execution(
        execution_id=execution_id,
        pipeline_name="site",
        definition=PipelineDefinition(name="site", stages=[StageSpec(name="Source", kind="source")]),
        trigger=TriggerEvent(commit_ref="abc", branch="master"),
        status=status,
    )


class TestRedisStateStore:
    @pytest.mark.asyncio
    async def test_counter_is_namespaced(self, store, fake_redis):
        assert await store.next_execution_id() == "1"
        assert await store.next_execution_id() == "2"
        assert list(fake_redis.counters) == ["site:sitepipe:state:execution_counter"]

    @pytest.mark.asyncio
    async def test_executions_roundtrip_and_filter(self, store):
        await store.save_execution(_execution("3", "Pending"))
        await store.save_execution(_execution("11"))
        assert (await store.get_execution("11")).status == "Running"
        assert [e.execution_id for e in await store.list_executions()] == ["3", "11"]
        assert [e.execution_id for e in await store.list_executions(["Pending"])] == ["3"]

    @pytest.mark.asyncio
    async def test_claims(self, store):
        assert await store.claim_trigger("master:abc")
        assert not await store.claim_trigger("master:abc")
        await store.bind_trigger("master:abc", "1")
        assert await store.get_trigger_claim("master:abc") == "1"
        await store.release_trigger("master:abc")
        assert await store.get_trigger_claim("master:abc") is None

    @pytest.mark.asyncio
    async def test_approvals_and_audit(self, store):
        await store.save_approval(ApprovalRequest(request_id="r1", execution_id="1", stage_name="Approval"))
        assert [r.request_id for r in await store.list_approvals(pending_only=True)] == ["r1"]

        first = await store.append_audit(AuditEntry(execution_id="1", scope="execution", to_status="Pending"))
        second = await store.append_audit(AuditEntry(execution_id="1", scope="execution", to_status="Running"))
        assert (first.sequence, second.sequence) == (1, 2)
        assert [e.to_status for e in await store.list_audit("1")] == ["Pending", "Running"]
