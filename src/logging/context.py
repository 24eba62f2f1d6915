# src/logging/context.py — v1
"""Contextual logging support: attach execution_id, stage, commit to log records."""

from __future__ import annotations

import contextvars
from dataclasses import dataclass
from typing import Any

# Context variables for structured logging, set per execution / stage task.
_execution_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "execution_id", default=None
)
_commit: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "commit", default=None
)
_stage: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "stage", default=None
)
_attempt: contextvars.ContextVar[int | None] = contextvars.ContextVar(
    "attempt", default=None
)


@dataclass
class LogContext:
    """Immutable snapshot of current logging context."""

    execution_id: str | None = None
    commit: str | None = None
    stage: str | None = None
    attempt: int | None = None

    def as_dict(self) -> dict[str, Any]:
        """Return non-None fields as dict for JSON log injection."""
        return {k: v for k, v in self.__dict__.items() if v is not None}


def get_context() -> LogContext:
    """Snapshot current context variables."""
    return LogContext(
        execution_id=_execution_id.get(),
        commit=_commit.get(),
        stage=_stage.get(),
        attempt=_attempt.get(),
    )


def set_execution_context(execution_id: str, commit: str | None = None) -> None:
    """Set execution-level context (called once per execution task)."""
    _execution_id.set(execution_id)
    _commit.set(commit)


def set_stage_context(stage: str, attempt: int | None = None) -> None:
    """Set stage-level context (called per stage dispatch)."""
    _stage.set(stage)
    _attempt.set(attempt)


def clear_context() -> None:
    """Reset all context variables."""
    _execution_id.set(None)
    _commit.set(None)
    _stage.set(None)
    _attempt.set(None)
