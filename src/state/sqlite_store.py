# src/state/sqlite_store.py — v1
"""SQLite-based state store (STATE_BACKEND=sqlite).

Uses stdlib sqlite3 in WAL mode. Better suited than JSON files once the
execution history grows; claims and id allocation are single statements.
"""

from __future__ import annotations

import logging
import sqlite3
from collections.abc import Iterable
from pathlib import Path

from sitepipe.core.models import ApprovalRequest, AuditEntry, Execution
from sitepipe.state.base_state_store import BaseStateStore

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS executions (
    seq INTEGER PRIMARY KEY,
    status TEXT NOT NULL,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_executions_status ON executions(status);
CREATE TABLE IF NOT EXISTS approvals (
    request_id TEXT PRIMARY KEY,
    execution_id TEXT NOT NULL,
    status TEXT NOT NULL,
    created_at TEXT NOT NULL,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_approvals_execution ON approvals(execution_id);
CREATE TABLE IF NOT EXISTS triggers (
    dedupe_key TEXT PRIMARY KEY,
    execution_id TEXT NOT NULL DEFAULT ''
);
CREATE TABLE IF NOT EXISTS audit (
    execution_id TEXT NOT NULL,
    sequence INTEGER NOT NULL,
    data TEXT NOT NULL,
    PRIMARY KEY (execution_id, sequence)
);
CREATE TABLE IF NOT EXISTS counters (
    name TEXT PRIMARY KEY,
    value INTEGER NOT NULL
);
"""


class SqliteStateStore(BaseStateStore):
    """SQLite-backed state store."""

    def __init__(self, db_path: Path | str) -> None:
        self._db_path = Path(db_path).expanduser()
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path))
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(_SCHEMA)

    # --- Executions ---

    async def next_execution_id(self) -> str:
        with self._conn:
            self._conn.execute(
                "INSERT OR IGNORE INTO counters (name, value) VALUES ('execution', 0)"
            )
            self._conn.execute(
                "UPDATE counters SET value = value + 1 WHERE name = 'execution'"
            )
            row = self._conn.execute(
                "SELECT value FROM counters WHERE name = 'execution'"
            ).fetchone()
        return str(row[0])

    async def save_execution(self, execution: Execution) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO executions (seq, status, data) VALUES (?, ?, ?)",
                (execution.sequence, execution.status, execution.model_dump_json()),
            )

    async def get_execution(self, execution_id: str) -> Execution | None:
        try:
            seq = int(execution_id)
        except ValueError:
            return None
        row = self._conn.execute(
            "SELECT data FROM executions WHERE seq = ?", (seq,)
        ).fetchone()
        if row is None:
            return None
        return Execution.model_validate_json(row[0])

    async def list_executions(
        self, statuses: Iterable[str] | None = None
    ) -> list[Execution]:
        if statuses is None:
            cursor = self._conn.execute("SELECT data FROM executions ORDER BY seq")
        else:
            wanted = list(statuses)
            if not wanted:
                return []
            marks = ",".join("?" for _ in wanted)
            cursor = self._conn.execute(
                f"SELECT data FROM executions WHERE status IN ({marks}) ORDER BY seq",  # noqa: S608
                wanted,
            )
        return [Execution.model_validate_json(row[0]) for row in cursor.fetchall()]

    # --- Approvals ---

    async def save_approval(self, request: ApprovalRequest) -> None:
        with self._conn:
            self._conn.execute(
                """INSERT OR REPLACE INTO approvals
                   (request_id, execution_id, status, created_at, data)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    request.request_id,
                    request.execution_id,
                    request.status,
                    request.created_at.isoformat(),
                    request.model_dump_json(),
                ),
            )

    async def get_approval(self, request_id: str) -> ApprovalRequest | None:
        row = self._conn.execute(
            "SELECT data FROM approvals WHERE request_id = ?", (request_id,)
        ).fetchone()
        if row is None:
            return None
        return ApprovalRequest.model_validate_json(row[0])

    async def list_approvals(
        self, execution_id: str | None = None, pending_only: bool = False
    ) -> list[ApprovalRequest]:
        clauses: list[str] = []
        params: list[str] = []
        if execution_id is not None:
            clauses.append("execution_id = ?")
            params.append(execution_id)
        if pending_only:
            clauses.append("status = 'Pending'")
        where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
        cursor = self._conn.execute(
            f"SELECT data FROM approvals{where} ORDER BY created_at",  # noqa: S608
            params,
        )
        return [ApprovalRequest.model_validate_json(row[0]) for row in cursor.fetchall()]

    # --- Trigger dedupe ---

    async def claim_trigger(self, key: str) -> bool:
        with self._conn:
            cursor = self._conn.execute(
                "INSERT OR IGNORE INTO triggers (dedupe_key) VALUES (?)", (key,)
            )
        return cursor.rowcount == 1

    async def bind_trigger(self, key: str, execution_id: str) -> None:
        with self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO triggers (dedupe_key, execution_id) VALUES (?, ?)",
                (key, execution_id),
            )

    async def release_trigger(self, key: str) -> None:
        with self._conn:
            self._conn.execute("DELETE FROM triggers WHERE dedupe_key = ?", (key,))

    async def get_trigger_claim(self, key: str) -> str | None:
        row = self._conn.execute(
            "SELECT execution_id FROM triggers WHERE dedupe_key = ?", (key,)
        ).fetchone()
        return None if row is None else row[0]

    # --- Audit ---

    async def append_audit(self, entry: AuditEntry) -> AuditEntry:
        with self._conn:
            row = self._conn.execute(
                "SELECT COALESCE(MAX(sequence), 0) FROM audit WHERE execution_id = ?",
                (entry.execution_id,),
            ).fetchone()
            stored = entry.model_copy(update={"sequence": row[0] + 1})
            self._conn.execute(
                "INSERT INTO audit (execution_id, sequence, data) VALUES (?, ?, ?)",
                (stored.execution_id, stored.sequence, stored.model_dump_json()),
            )
        return stored

    async def list_audit(self, execution_id: str) -> list[AuditEntry]:
        cursor = self._conn.execute(
            "SELECT data FROM audit WHERE execution_id = ? ORDER BY sequence",
            (execution_id,),
        )
        return [AuditEntry.model_validate_json(row[0]) for row in cursor.fetchall()]

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
