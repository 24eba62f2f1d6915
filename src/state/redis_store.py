# src/state/redis_store.py — v1
"""Redis-based state store (STATE_BACKEND=redis).

Suitable when the orchestrator and the operational CLI run on different
hosts. Records are JSON strings in hashes; audit trails are Redis lists.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

import redis

from sitepipe.core.models import ApprovalRequest, AuditEntry, Execution
from sitepipe.state.base_state_store import BaseStateStore

logger = logging.getLogger(__name__)

_PREFIX = "sitepipe:state:"
_COUNTER_KEY = f"{_PREFIX}execution_counter"
_EXECUTIONS_KEY = f"{_PREFIX}executions"
_APPROVALS_KEY = f"{_PREFIX}approvals"
_TRIGGERS_KEY = f"{_PREFIX}triggers"


def _audit_key(execution_id: str) -> str:
    return f"{_PREFIX}audit:{execution_id}"


class RedisStateStore(BaseStateStore):
    """Redis-backed state store for multi-host deployments."""

    def __init__(self, redis_url: str, namespace: str = "") -> None:
        self._client = redis.Redis.from_url(redis_url, decode_responses=True)
        self._ns = f"{namespace}:" if namespace else ""

    def _k(self, key: str) -> str:
        return f"{self._ns}{key}"

    # --- Executions ---

    async def next_execution_id(self) -> str:
        return str(self._client.incr(self._k(_COUNTER_KEY)))

    async def save_execution(self, execution: Execution) -> None:
        self._client.hset(
            self._k(_EXECUTIONS_KEY), execution.execution_id, execution.model_dump_json()
        )

    async def get_execution(self, execution_id: str) -> Execution | None:
        data = self._client.hget(self._k(_EXECUTIONS_KEY), execution_id)
        if data is None:
            return None
        return Execution.model_validate_json(data)

    async def list_executions(
        self, statuses: Iterable[str] | None = None
    ) -> list[Execution]:
        wanted = set(statuses) if statuses is not None else None
        executions = [
            Execution.model_validate_json(data)
            for data in self._client.hvals(self._k(_EXECUTIONS_KEY))
        ]
        if wanted is not None:
            executions = [e for e in executions if e.status in wanted]
        return sorted(executions, key=lambda e: e.sequence)

    # --- Approvals ---

    async def save_approval(self, request: ApprovalRequest) -> None:
        self._client.hset(
            self._k(_APPROVALS_KEY), request.request_id, request.model_dump_json()
        )

    async def get_approval(self, request_id: str) -> ApprovalRequest | None:
        data = self._client.hget(self._k(_APPROVALS_KEY), request_id)
        if data is None:
            return None
        return ApprovalRequest.model_validate_json(data)

    async def list_approvals(
        self, execution_id: str | None = None, pending_only: bool = False
    ) -> list[ApprovalRequest]:
        requests = [
            ApprovalRequest.model_validate_json(data)
            for data in self._client.hvals(self._k(_APPROVALS_KEY))
        ]
        if execution_id is not None:
            requests = [r for r in requests if r.execution_id == execution_id]
        if pending_only:
            requests = [r for r in requests if r.is_pending]
        return sorted(requests, key=lambda r: r.created_at)

    # --- Trigger dedupe ---

    async def claim_trigger(self, key: str) -> bool:
        return bool(self._client.hsetnx(self._k(_TRIGGERS_KEY), key, ""))

    async def bind_trigger(self, key: str, execution_id: str) -> None:
        self._client.hset(self._k(_TRIGGERS_KEY), key, execution_id)

    async def release_trigger(self, key: str) -> None:
        self._client.hdel(self._k(_TRIGGERS_KEY), key)

    async def get_trigger_claim(self, key: str) -> str | None:
        return self._client.hget(self._k(_TRIGGERS_KEY), key)

    # --- Audit ---

    async def append_audit(self, entry: AuditEntry) -> AuditEntry:
        key = self._k(_audit_key(entry.execution_id))
        sequence = self._client.llen(key) + 1
        stored = entry.model_copy(update={"sequence": sequence})
        self._client.rpush(key, stored.model_dump_json())
        return stored

    async def list_audit(self, execution_id: str) -> list[AuditEntry]:
        key = self._k(_audit_key(execution_id))
        return [AuditEntry.model_validate_json(d) for d in self._client.lrange(key, 0, -1)]

    def close(self) -> None:
        self._client.close()
