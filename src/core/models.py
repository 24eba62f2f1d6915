# src/core/models.py — v1
"""Shared Pydantic domain models used across modules.

No module redefines these types; all imports come from core.models.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, Field

StageKind = Literal["source", "build", "approval", "deploy"]
ExecutionStatus = Literal["Pending", "Running", "Succeeded", "Failed", "Cancelled"]
StageStatus = Literal[
    "NotStarted", "Running", "Succeeded", "Failed", "AwaitingApproval"
]
ApprovalStatus = Literal["Pending", "Approved", "Rejected", "TimedOut", "Cancelled"]
Decision = Literal["Approved", "Rejected"]
ChangeType = Literal["referenceCreated", "referenceUpdated", "referenceDeleted"]

TERMINAL_EXECUTION_STATUSES: frozenset[str] = frozenset(
    {"Succeeded", "Failed", "Cancelled"}
)
ACTIVE_STAGE_STATUSES: frozenset[str] = frozenset({"Running", "AwaitingApproval"})

SOURCE_ARTIFACT = "SiteSource"


class FailureReason:
    """Reason codes recorded on failed StageRuns and Executions."""

    STAGE_FAILURE = "StageFailure"
    SOURCE_UNAVAILABLE = "SourceUnavailable"
    BUILD_FAILED = "BuildFailed"
    BUILD_LOST = "BuildLost"
    ENVIRONMENT_ERROR = "EnvironmentError"
    STAGE_TIMED_OUT = "StageTimedOut"
    DEPLOY_FAILED = "DeployFailed"
    APPROVAL_REJECTED = "ApprovalRejected"
    APPROVAL_TIMED_OUT = "ApprovalTimedOut"
    ARTIFACT_EXPIRED = "ArtifactExpired"
    ARTIFACT_NOT_FOUND = "ArtifactNotFound"
    CANCELLED = "Cancelled"
    SUPERSEDED = "Superseded"


def utcnow() -> datetime:
    """Timezone-aware current time; every persisted timestamp uses it."""
    return datetime.now(timezone.utc)


# === DEFINITION ===


class StageSpec(BaseModel):
    """One named step of the pipeline definition."""

    name: str
    kind: StageKind
    input_artifacts: list[str] = Field(default_factory=list)
    output_artifacts: list[str] = Field(default_factory=list)
    config: dict[str, Any] = Field(default_factory=dict)


class PipelineDefinition(BaseModel):
    """Ordered stage sequence. Executions keep a frozen snapshot of it."""

    model_config = {"frozen": True}

    name: str
    version: int = 1
    stages: list[StageSpec]

    def stage_names(self) -> list[str]:
        return [s.name for s in self.stages]

    def stage(self, name: str) -> StageSpec | None:
        for spec in self.stages:
            if spec.name == name:
                return spec
        return None


# === ARTIFACTS ===


class ArtifactRef(BaseModel):
    """Immutable pointer to one version of a named artifact."""

    name: str
    version: int
    sha256: str = ""
    size: int = 0

    @property
    def label(self) -> str:
        return f"{self.name}@{self.version}"


# === TRIGGER ===


class TriggerEvent(BaseModel):
    """A source change accepted by the trigger listener."""

    commit_ref: str
    branch: str
    change_type: ChangeType = "referenceUpdated"
    received_at: datetime = Field(default_factory=utcnow)
    duplicate: bool = False

    @property
    def dedupe_key(self) -> str:
        return f"{self.branch}:{self.commit_ref}"


# === EXECUTION ===


class StageRun(BaseModel):
    """Attempt record for one stage within one execution."""

    stage_name: str
    kind: StageKind
    attempt: int = 1
    status: StageStatus = "NotStarted"
    input_artifacts: list[ArtifactRef] = Field(default_factory=list)
    output_artifacts: list[ArtifactRef] = Field(default_factory=list)
    failure_reason: str | None = None
    failure_detail: str | None = None
    external_handle: str | None = None
    approval_request_id: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    deadline: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STAGE_STATUSES


class Execution(BaseModel):
    """One run of the pipeline definition from trigger to terminal state."""

    execution_id: str
    pipeline_name: str
    definition: PipelineDefinition
    trigger: TriggerEvent
    status: ExecutionStatus = "Pending"
    current_stage_index: int = 0
    stage_runs: list[StageRun] = Field(default_factory=list)
    artifacts: dict[str, ArtifactRef] = Field(default_factory=dict)
    failure_reason: str | None = None
    failure_detail: str | None = None
    cancel_requested: bool = False
    created_at: datetime = Field(default_factory=utcnow)
    started_at: datetime | None = None
    ended_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_EXECUTION_STATUSES

    @property
    def sequence(self) -> int:
        """Numeric id for ordering (ids are monotonic integers)."""
        return int(self.execution_id)

    def current_stage_run(self) -> StageRun | None:
        if 0 <= self.current_stage_index < len(self.stage_runs):
            return self.stage_runs[self.current_stage_index]
        return None

    def current_stage_spec(self) -> StageSpec | None:
        if 0 <= self.current_stage_index < len(self.definition.stages):
            return self.definition.stages[self.current_stage_index]
        return None

    def stage_run(self, stage_name: str) -> StageRun | None:
        for run in self.stage_runs:
            if run.stage_name == stage_name:
                return run
        return None


class StageResult(BaseModel):
    """Completion report sent by a stage executor to the orchestrator."""

    stage_name: str
    attempt: int = 1
    succeeded: bool
    output_artifacts: list[ArtifactRef] = Field(default_factory=list)
    failure_reason: str | None = None
    failure_detail: str | None = None


# === APPROVAL ===


class ApprovalRequest(BaseModel):
    """Pending human decision gating pipeline continuation."""

    request_id: str
    execution_id: str
    stage_name: str
    attempt: int = 1
    notification_target: str = ""
    message: str = ""
    external_link: str = ""
    deadline: datetime | None = None
    status: ApprovalStatus = "Pending"
    decision: Decision | None = None
    actor: str | None = None
    comment: str | None = None
    decided_at: datetime | None = None
    created_at: datetime = Field(default_factory=utcnow)

    @property
    def is_pending(self) -> bool:
        return self.status == "Pending"


# === AUDIT ===


class AuditEntry(BaseModel):
    """One append-only record of a state transition."""

    sequence: int = 0
    execution_id: str
    scope: Literal["execution", "stage", "approval"]
    stage_name: str | None = None
    from_status: str | None = None
    to_status: str
    reason: str | None = None
    timestamp: datetime = Field(default_factory=utcnow)
    data: dict[str, Any] = Field(default_factory=dict)
