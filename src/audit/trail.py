# src/audit/trail.py — v1
"""Append-only audit trail of every execution, stage and approval transition.

Entries are persisted through the state store; the orchestrator appends
before it triggers the next side effect, so the trail reconstructs what
happened even if the process dies right after.
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from sitepipe.core.models import AuditEntry
from sitepipe.state.base_state_store import BaseStateStore

logger = logging.getLogger(__name__)

# Stage statuses that close (or suspend) a stage's work.
STAGE_OUTCOME_STATUSES = frozenset({"Succeeded", "Failed", "AwaitingApproval"})


class AuditTrail:
    """Thin, append-only facade over the state store's audit log."""

    def __init__(self, store: BaseStateStore) -> None:
        self._store = store

    async def record(
        self,
        execution_id: str,
        scope: str,
        to_status: str,
        from_status: str | None = None,
        stage_name: str | None = None,
        reason: str | None = None,
        data: dict[str, Any] | None = None,
    ) -> AuditEntry:
        """Append one transition and return the stored (sequenced) entry."""
        entry = AuditEntry(
            execution_id=execution_id,
            scope=scope,  # type: ignore[arg-type]
            stage_name=stage_name,
            from_status=from_status,
            to_status=to_status,
            reason=reason,
            data=data or {},
        )
        stored = await self._store.append_audit(entry)
        logger.debug(
            "Audit #%d %s %s%s: %s -> %s",
            stored.sequence,
            scope,
            execution_id,
            f"/{stage_name}" if stage_name else "",
            from_status,
            to_status,
            extra={"data": stored.model_dump(mode="json")},
        )
        return stored

    async def entries(
        self, execution_id: str, scope: str | None = None
    ) -> list[AuditEntry]:
        """Entries of one execution in append order, optionally one scope."""
        entries = await self._store.list_audit(execution_id)
        if scope is not None:
            entries = [e for e in entries if e.scope == scope]
        return entries

    async def stage_outcomes(self, execution_id: str) -> list[AuditEntry]:
        """Stage-level entries that finished or suspended a stage."""
        return [
            e
            for e in await self.entries(execution_id, scope="stage")
            if e.to_status in STAGE_OUTCOME_STATUSES
        ]

    async def export_jsonl(self, execution_id: str, path: Path) -> int:
        """Write the execution's trail to a JSON Lines file; return entry count."""
        entries = await self.entries(execution_id)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", encoding="utf-8") as f:
            for entry in entries:
                f.write(json.dumps(entry.model_dump(mode="json"), default=str) + "\n")
        return len(entries)
