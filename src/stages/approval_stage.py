# src/stages/approval_stage.py — v1
"""Approval stage: suspends the pipeline until a human decides.

Produces no artifact. The orchestrator turns ``approval_needed`` into a
durable ApprovalRequest; the stage resumes only through record_decision.
"""

from __future__ import annotations

from sitepipe.stages.base_stage import BaseStageExecutor, StageContext, StageOutcome


class ApprovalStageExecutor(BaseStageExecutor):
    kind = "approval"

    async def run(self, ctx: StageContext) -> StageOutcome:
        return StageOutcome.approval_needed()
