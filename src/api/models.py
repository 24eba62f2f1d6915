# src/api/models.py — v1
"""API-level views: compact execution summaries for listings and the CLI."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from sitepipe.core.models import Execution


class StageSummary(BaseModel):
    """One stage line of an execution summary."""

    name: str
    kind: str
    status: str
    attempt: int = 1
    failure_reason: str | None = None
    approval_request_id: str | None = None
    outputs: list[str] = Field(default_factory=list)


class ExecutionSummary(BaseModel):
    """Flattened view of an Execution."""

    execution_id: str
    pipeline_name: str
    commit_ref: str
    branch: str
    status: str
    current_stage: str | None = None
    failure_reason: str | None = None
    failure_detail: str | None = None
    created_at: datetime
    ended_at: datetime | None = None
    stages: list[StageSummary] = Field(default_factory=list)

    @classmethod
    def from_execution(cls, execution: Execution) -> ExecutionSummary:
        spec = execution.current_stage_spec()
        return cls(
            execution_id=execution.execution_id,
            pipeline_name=execution.pipeline_name,
            commit_ref=execution.trigger.commit_ref,
            branch=execution.trigger.branch,
            status=execution.status,
            current_stage=spec.name if spec is not None else None,
            failure_reason=execution.failure_reason,
            failure_detail=execution.failure_detail,
            created_at=execution.created_at,
            ended_at=execution.ended_at,
            stages=[
                StageSummary(
                    name=run.stage_name,
                    kind=run.kind,
                    status=run.status,
                    attempt=run.attempt,
                    failure_reason=run.failure_reason,
                    approval_request_id=run.approval_request_id,
                    outputs=[ref.label for ref in run.output_artifacts],
                )
                for run in execution.stage_runs
            ],
        )

    def one_line(self) -> str:
        where = f" at {self.current_stage}" if self.status not in ("Succeeded", "Pending") else ""
        reason = f" ({self.failure_reason})" if self.failure_reason else ""
        return (
            f"#{self.execution_id:>4}  {self.status:<10} {self.branch}@{self.commit_ref[:12]}"
            f"{where}{reason}"
        )
