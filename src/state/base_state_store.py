# src/state/base_state_store.py — v1
"""Abstract state store: durable record of executions, approvals, audit.

The orchestrator is the only writer. Every transition is saved here before
the next stage's side effects start, so a restarted orchestrator can
rebuild its view with ``list_executions`` and ``list_approvals``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable

from sitepipe.core.models import ApprovalRequest, AuditEntry, Execution


class BaseStateStore(ABC):
    """Unified interface for state storage backends."""

    # --- Executions ---

    @abstractmethod
    async def next_execution_id(self) -> str:
        """Allocate the next monotonically increasing execution id."""

    @abstractmethod
    async def save_execution(self, execution: Execution) -> None:
        """Insert or replace an execution record."""

    @abstractmethod
    async def get_execution(self, execution_id: str) -> Execution | None:
        """Load one execution, or None."""

    @abstractmethod
    async def list_executions(
        self, statuses: Iterable[str] | None = None
    ) -> list[Execution]:
        """Executions ordered by id, optionally filtered by status."""

    # --- Approvals ---

    @abstractmethod
    async def save_approval(self, request: ApprovalRequest) -> None:
        """Insert or replace an approval request."""

    @abstractmethod
    async def get_approval(self, request_id: str) -> ApprovalRequest | None:
        """Load one approval request, or None."""

    @abstractmethod
    async def list_approvals(
        self, execution_id: str | None = None, pending_only: bool = False
    ) -> list[ApprovalRequest]:
        """Approval requests ordered by creation time."""

    # --- Trigger dedupe ---

    @abstractmethod
    async def claim_trigger(self, key: str) -> bool:
        """Atomically claim a dedupe key. False if already claimed."""

    @abstractmethod
    async def bind_trigger(self, key: str, execution_id: str) -> None:
        """Record which execution a claimed trigger created."""

    @abstractmethod
    async def release_trigger(self, key: str) -> None:
        """Drop a claim (the trigger did not produce an execution)."""

    @abstractmethod
    async def get_trigger_claim(self, key: str) -> str | None:
        """Execution id bound to the key ("" if claimed but unbound), or None."""

    # --- Audit ---

    @abstractmethod
    async def append_audit(self, entry: AuditEntry) -> AuditEntry:
        """Append an entry, assigning the next per-execution sequence number."""

    @abstractmethod
    async def list_audit(self, execution_id: str) -> list[AuditEntry]:
        """All audit entries of one execution in append order."""

    def close(self) -> None:  # noqa: B027 - optional hook
        """Release backend resources."""
