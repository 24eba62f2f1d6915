# src/core/errors.py — v1
"""Pipeline error taxonomy.

Errors raised to callers of the orchestrator's operational surface. Stage
failures that happen inside an execution are not raised: they are recorded
on the StageRun as a FailureReason code and terminate the execution.
"""

from __future__ import annotations


class PipelineError(Exception):
    """Base class for all orchestrator errors."""


class DefinitionError(PipelineError):
    """Pipeline definition violates stage ordering or naming rules."""


class ConcurrencyConflict(PipelineError):
    """Start rejected by the concurrency policy."""

    def __init__(self, message: str, active_execution_id: str | None = None) -> None:
        super().__init__(message)
        self.active_execution_id = active_execution_id


class ExecutionNotFound(PipelineError):
    """No execution with the given id."""


class ApprovalNotFound(PipelineError):
    """No approval request with the given id."""


class InvalidTransition(PipelineError):
    """Operation not allowed in the execution's current state."""


class AlreadyResolved(PipelineError):
    """Decision replayed on an approval request that is no longer pending."""

    def __init__(self, request_id: str, status: str) -> None:
        super().__init__(f"Approval request {request_id} already resolved ({status})")
        self.request_id = request_id
        self.status = status


class StageFailure(PipelineError):
    """A stage executor could not complete its work.

    Executors may raise this with a reason code; the orchestrator records it
    on the StageRun and fails the execution.
    """

    def __init__(self, reason: str, detail: str = "") -> None:
        super().__init__(f"{reason}: {detail}" if detail else reason)
        self.reason = reason
        self.detail = detail


class ApprovalRejected(StageFailure):
    """Approval request was rejected by a human."""

    def __init__(self, detail: str = "") -> None:
        super().__init__("ApprovalRejected", detail)


class ApprovalTimedOut(StageFailure):
    """Approval deadline elapsed before a decision was recorded."""

    def __init__(self, detail: str = "") -> None:
        super().__init__("ApprovalTimedOut", detail)


class ArtifactExpired(StageFailure):
    """Artifact version was garbage-collected by the retention policy."""

    def __init__(self, name: str, version: int) -> None:
        super().__init__("ArtifactExpired", f"{name}@{version}")
        self.name = name
        self.version = version


class ArtifactNotFound(StageFailure):
    """Artifact version was never written."""

    def __init__(self, name: str, version: int | None = None) -> None:
        label = name if version is None else f"{name}@{version}"
        super().__init__("ArtifactNotFound", label)
        self.name = name
        self.version = version
