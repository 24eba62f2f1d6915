# src/state/json_store.py — v1
"""JSON file-based state store (default STATE_BACKEND=json).

Layout under STATE_ROOT::

    counter.json
    triggers.json
    executions/<id>.json
    approvals/<request_id>.json
    audit/<execution_id>.jsonl
"""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable
from pathlib import Path

from sitepipe.core.models import ApprovalRequest, AuditEntry, Execution
from sitepipe.state.base_state_store import BaseStateStore

logger = logging.getLogger(__name__)


class JsonStateStore(BaseStateStore):
    """File-based state store using one JSON document per record."""

    def __init__(self, root: Path | str) -> None:
        self._root = Path(root).expanduser()
        for sub in ("executions", "approvals", "audit"):
            (self._root / sub).mkdir(parents=True, exist_ok=True)

    # --- Executions ---

    async def next_execution_id(self) -> str:
        path = self._root / "counter.json"
        current = 0
        if path.exists():
            current = json.loads(path.read_text(encoding="utf-8"))["last_execution_id"]
        current += 1
        _atomic_write(path, json.dumps({"last_execution_id": current}))
        return str(current)

    async def save_execution(self, execution: Execution) -> None:
        path = self._root / "executions" / f"{execution.execution_id}.json"
        _atomic_write(path, execution.model_dump_json(indent=2))

    async def get_execution(self, execution_id: str) -> Execution | None:
        path = self._root / "executions" / f"{_safe(execution_id)}.json"
        if not path.exists():
            return None
        return Execution.model_validate_json(path.read_text(encoding="utf-8"))

    async def list_executions(
        self, statuses: Iterable[str] | None = None
    ) -> list[Execution]:
        wanted = set(statuses) if statuses is not None else None
        executions: list[Execution] = []
        for path in (self._root / "executions").glob("*.json"):
            try:
                execution = Execution.model_validate_json(path.read_text(encoding="utf-8"))
            except ValueError as e:
                logger.warning("Skipping unreadable execution record %s: %s", path, e)
                continue
            if wanted is None or execution.status in wanted:
                executions.append(execution)
        return sorted(executions, key=lambda e: e.sequence)

    # --- Approvals ---

    async def save_approval(self, request: ApprovalRequest) -> None:
        path = self._root / "approvals" / f"{_safe(request.request_id)}.json"
        _atomic_write(path, request.model_dump_json(indent=2))

    async def get_approval(self, request_id: str) -> ApprovalRequest | None:
        path = self._root / "approvals" / f"{_safe(request_id)}.json"
        if not path.exists():
            return None
        return ApprovalRequest.model_validate_json(path.read_text(encoding="utf-8"))

    async def list_approvals(
        self, execution_id: str | None = None, pending_only: bool = False
    ) -> list[ApprovalRequest]:
        requests: list[ApprovalRequest] = []
        for path in (self._root / "approvals").glob("*.json"):
            request = ApprovalRequest.model_validate_json(path.read_text(encoding="utf-8"))
            if execution_id is not None and request.execution_id != execution_id:
                continue
            if pending_only and not request.is_pending:
                continue
            requests.append(request)
        return sorted(requests, key=lambda r: r.created_at)

    # --- Trigger dedupe ---

    async def claim_trigger(self, key: str) -> bool:
        claims = self._load_claims()
        if key in claims:
            return False
        claims[key] = ""
        self._save_claims(claims)
        return True

    async def bind_trigger(self, key: str, execution_id: str) -> None:
        claims = self._load_claims()
        claims[key] = execution_id
        self._save_claims(claims)

    async def release_trigger(self, key: str) -> None:
        claims = self._load_claims()
        if claims.pop(key, None) is not None:
            self._save_claims(claims)

    async def get_trigger_claim(self, key: str) -> str | None:
        return self._load_claims().get(key)

    # --- Audit ---

    async def append_audit(self, entry: AuditEntry) -> AuditEntry:
        path = self._root / "audit" / f"{_safe(entry.execution_id)}.jsonl"
        existing = await self.list_audit(entry.execution_id)
        stored = entry.model_copy(update={"sequence": len(existing) + 1})
        with path.open("a", encoding="utf-8") as f:
            f.write(stored.model_dump_json() + "\n")
            f.flush()
        return stored

    async def list_audit(self, execution_id: str) -> list[AuditEntry]:
        path = self._root / "audit" / f"{_safe(execution_id)}.jsonl"
        if not path.exists():
            return []
        entries: list[AuditEntry] = []
        for line in path.read_text(encoding="utf-8").splitlines():
            if line.strip():
                entries.append(AuditEntry.model_validate_json(line))
        return entries

    # --- Helpers ---

    def _load_claims(self) -> dict[str, str]:
        path = self._root / "triggers.json"
        if not path.exists():
            return {}
        return json.loads(path.read_text(encoding="utf-8"))

    def _save_claims(self, claims: dict[str, str]) -> None:
        _atomic_write(self._root / "triggers.json", json.dumps(claims, indent=2, sort_keys=True))


def _safe(key: str) -> str:
    return key.replace("/", "_").replace("\\", "_")


def _atomic_write(path: Path, text: str) -> None:
    tmp = path.with_name(path.name + ".tmp")
    tmp.write_text(text, encoding="utf-8")
    tmp.replace(path)
