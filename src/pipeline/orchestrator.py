# src/pipeline/orchestrator.py — v1
"""Pipeline orchestrator: the execution state machine.

Drives every execution through the definition's ordered stages:

  Execution: Pending -> Running -> Succeeded | Failed | Cancelled
  Stage:     NotStarted -> Running -> Succeeded | Failed | AwaitingApproval
             AwaitingApproval -> Succeeded (approved) | Failed (rejected, timed out)

The orchestrator is the single writer of Execution, StageRun and
ApprovalRequest records. Every transition is persisted and appended to the
audit trail before the next stage is dispatched. Stage executors run as
asyncio tasks and report back through ``advance`` / ``request_approval``;
the orchestrator never waits on a stage inline, so a multi-day approval
or a long build is just a persisted state.

Concurrency policy (across executions of the pipeline):
  - queue:    one Running execution; newer triggers wait as Pending (FIFO,
              at most ``max_queued``; overflow supersedes the oldest).
  - reject:   a start while one is active raises ConcurrencyConflict.
  - parallel: every execution starts immediately.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Literal

from sitepipe.audit.trail import AuditTrail
from sitepipe.core.errors import (
    AlreadyResolved,
    ApprovalNotFound,
    ConcurrencyConflict,
    DefinitionError,
    ExecutionNotFound,
    InvalidTransition,
    StageFailure,
)
from sitepipe.core.models import (
    ApprovalRequest,
    AuditEntry,
    Execution,
    FailureReason,
    PipelineDefinition,
    StageResult,
    StageRun,
    TriggerEvent,
    utcnow,
)
from sitepipe.logging.context import set_execution_context, set_stage_context
from sitepipe.pipeline.definition import validate_definition
from sitepipe.pipeline.locks import ExecutionLocks
from sitepipe.stages.base_stage import StageContext, StageOutcome

if TYPE_CHECKING:
    from sitepipe.artifacts.base_artifact_store import BaseArtifactStore
    from sitepipe.notify.base_notifier import BaseNotifier
    from sitepipe.stages.registry import StageExecutorRegistry
    from sitepipe.state.base_state_store import BaseStateStore

logger = logging.getLogger(__name__)

ConcurrencyPolicy = Literal["queue", "reject", "parallel"]


class PipelineOrchestrator:
    """Owns the execution state machine of one pipeline definition.

    Args:
        definition: Pipeline definition applied to new executions.
        store: Durable state store.
        executors: Executor per stage kind.
        artifacts: Artifact store handed to executors.
        notifier: Approval notification collaborator.
        policy: Concurrency policy across executions.
        max_queued: Pending executions allowed under the queue policy.
        approval_timeout_seconds: Default approval deadline (None = none).
        notification_target: Default approval notification target.
        external_link: Default approval review link.
        approval_message: Default approval message.
    """

    def __init__(
        self,
        definition: PipelineDefinition,
        store: BaseStateStore,
        executors: StageExecutorRegistry,
        artifacts: BaseArtifactStore,
        notifier: BaseNotifier,
        policy: ConcurrencyPolicy = "queue",
        max_queued: int = 1,
        approval_timeout_seconds: float | None = None,
        notification_target: str = "",
        external_link: str = "",
        approval_message: str = "A new build is ready. Do you want to deploy it?",
    ) -> None:
        self._store = store
        self._executors = executors
        self._artifacts = artifacts
        self._notifier = notifier
        self._policy = policy
        self._max_queued = max(1, max_queued)
        self._approval_timeout = approval_timeout_seconds
        self._notification_target = notification_target
        self._external_link = external_link
        self._approval_message = approval_message

        self._audit = AuditTrail(store)
        self._locks = ExecutionLocks()
        self._admission = asyncio.Lock()
        self._tasks: dict[str, asyncio.Task[None]] = {}
        self._cancel_events: dict[str, asyncio.Event] = {}

        self._definition = self._checked(definition)

    # ------------------------------------------------------------------
    # Definition
    # ------------------------------------------------------------------

    @property
    def definition(self) -> PipelineDefinition:
        return self._definition

    @property
    def audit(self) -> AuditTrail:
        return self._audit

    def update_definition(self, definition: PipelineDefinition) -> None:
        """Apply a new definition to executions created from now on."""
        self._definition = self._checked(definition)
        logger.info(
            "Pipeline definition %s updated to version %d",
            definition.name, definition.version,
        )

    def _checked(self, definition: PipelineDefinition) -> PipelineDefinition:
        validate_definition(definition)
        for spec in definition.stages:
            try:
                self._executors.get(spec.kind)
            except KeyError as e:
                raise DefinitionError(
                    f"stage {spec.name!r}: no executor for kind {spec.kind!r}"
                ) from e
        return definition

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def start(self, trigger: TriggerEvent) -> str:
        """Create an execution for ``trigger`` and start or queue it.

        Returns:
            The new execution id.

        Raises:
            ConcurrencyConflict: Policy is ``reject`` and an execution is active.
        """
        async with self._admission:
            running = await self._store.list_executions(["Running"])
            queued = await self._store.list_executions(["Pending"])

            if self._policy == "reject" and (running or queued):
                active = (running or queued)[0]
                raise ConcurrencyConflict(
                    f"Execution {active.execution_id} is {active.status}; "
                    f"commit {trigger.commit_ref} rejected",
                    active_execution_id=active.execution_id,
                )

            execution_id = await self._store.next_execution_id()
            execution = Execution(
                execution_id=execution_id,
                pipeline_name=self._definition.name,
                definition=self._definition,
                trigger=trigger,
                stage_runs=[
                    StageRun(stage_name=s.name, kind=s.kind)
                    for s in self._definition.stages
                ],
            )
            await self._store.save_execution(execution)
            await self._audit.record(
                execution_id, "execution", "Pending",
                data={"commit": trigger.commit_ref, "branch": trigger.branch,
                      "definition_version": self._definition.version},
            )
            logger.info(
                "Execution %s created for %s@%s",
                execution_id, trigger.branch, trigger.commit_ref,
            )

            if self._policy == "queue" and (running or queued):
                overflow = len(queued) - self._max_queued + 1
                for old in queued[: max(0, overflow)]:
                    await self._supersede(old.execution_id, by=execution_id)
                logger.info(
                    "Execution %s queued behind %s",
                    execution_id,
                    running[0].execution_id if running else queued[-1].execution_id,
                )
                return execution_id

            await self._begin(execution_id)
        return execution_id

    async def advance(self, execution_id: str, result: StageResult) -> bool:
        """Apply a stage completion report.

        Returns:
            True if the report was applied; False for a stale or replayed
            report (not the current attempt of the current stage, or the
            execution is no longer running).
        """
        async with self._locks.hold(execution_id):
            execution = await self._load(execution_id)
            run = execution.current_stage_run()
            if (
                execution.status != "Running"
                or run is None
                or run.stage_name != result.stage_name
                or run.attempt != result.attempt
                or run.status != "Running"
            ):
                logger.info(
                    "Ignoring stale callback for execution %s stage %s attempt %d",
                    execution_id, result.stage_name, result.attempt,
                )
                return False

            if result.succeeded:
                run.status = "Succeeded"
                run.output_artifacts = list(result.output_artifacts)
                run.ended_at = utcnow()
                for ref in result.output_artifacts:
                    execution.artifacts[ref.name] = ref
                await self._store.save_execution(execution)
                await self._audit.record(
                    execution_id, "stage", "Succeeded", from_status="Running",
                    stage_name=run.stage_name,
                    data={"outputs": [r.label for r in result.output_artifacts]},
                )
                await self._continue_after(execution)
            else:
                await self._fail_current(
                    execution,
                    result.failure_reason or FailureReason.STAGE_FAILURE,
                    result.failure_detail,
                )
            terminal = execution.is_terminal

        if terminal:
            await self._admit_next()
        return True

    async def request_approval(
        self, execution_id: str, stage_run: StageRun
    ) -> ApprovalRequest:
        """Suspend ``stage_run`` on a new (or its existing) approval request.

        Raises:
            InvalidTransition: The stage run is no longer the active one.
        """
        async with self._locks.hold(execution_id):
            execution = await self._load(execution_id)
            run = execution.current_stage_run()
            spec = execution.current_stage_spec()
            if (
                execution.status != "Running"
                or run is None
                or spec is None
                or run.stage_name != stage_run.stage_name
                or run.attempt != stage_run.attempt
            ):
                raise InvalidTransition(
                    f"Execution {execution_id} stage {stage_run.stage_name} is not active"
                )

            if run.status == "AwaitingApproval" and run.approval_request_id:
                existing = await self._store.get_approval(run.approval_request_id)
                if existing is not None:
                    return existing
            if run.status != "Running":
                raise InvalidTransition(
                    f"Stage {run.stage_name} is {run.status}, cannot await approval"
                )

            now = utcnow()
            timeout = self._approval_timeout_for(spec.config)
            request = ApprovalRequest(
                request_id=uuid.uuid4().hex,
                execution_id=execution_id,
                stage_name=run.stage_name,
                attempt=run.attempt,
                notification_target=spec.config.get("notification_target")
                or self._notification_target,
                message=spec.config.get("custom_data") or self._approval_message,
                external_link=spec.config.get("external_link") or self._external_link,
                deadline=now + timedelta(seconds=timeout) if timeout else None,
                created_at=now,
            )
            await self._store.save_approval(request)

            run.status = "AwaitingApproval"
            run.approval_request_id = request.request_id
            run.deadline = request.deadline
            await self._store.save_execution(execution)
            await self._audit.record(
                execution_id, "stage", "AwaitingApproval", from_status="Running",
                stage_name=run.stage_name,
                data={"request_id": request.request_id},
            )

        await self._notify(execution, request)
        return request

    async def record_decision(
        self,
        request_id: str,
        decision: str,
        actor: str,
        comment: str | None = None,
    ) -> Execution:
        """Resolve a pending approval request exactly once.

        Raises:
            ApprovalNotFound: Unknown request id.
            AlreadyResolved: The request was already decided, timed out or cancelled.
            ValueError: ``decision`` is neither Approved nor Rejected.
        """
        if decision not in ("Approved", "Rejected"):
            raise ValueError(f"Decision must be Approved or Rejected, got {decision!r}")

        request = await self._store.get_approval(request_id)
        if request is None:
            raise ApprovalNotFound(request_id)
        if not request.is_pending:
            raise AlreadyResolved(request_id, request.status)

        async with self._locks.hold(request.execution_id):
            request = await self._store.get_approval(request_id)
            if request is None:
                raise ApprovalNotFound(request_id)
            if not request.is_pending:
                raise AlreadyResolved(request_id, request.status)

            execution = await self._load(request.execution_id)
            run = execution.current_stage_run()
            if (
                execution.status != "Running"
                or run is None
                or run.status != "AwaitingApproval"
                or run.approval_request_id != request_id
            ):
                raise InvalidTransition(
                    f"Execution {execution.execution_id} is not awaiting request {request_id}"
                )

            request.status = decision  # type: ignore[assignment]
            request.decision = decision  # type: ignore[assignment]
            request.actor = actor
            request.comment = comment
            request.decided_at = utcnow()
            await self._store.save_approval(request)
            await self._audit.record(
                execution.execution_id, "approval", decision, from_status="Pending",
                stage_name=run.stage_name,
                data={"request_id": request_id, "actor": actor, "comment": comment},
            )
            logger.info(
                "Approval %s for execution %s: %s by %s",
                request_id, execution.execution_id, decision, actor,
            )

            if decision == "Approved":
                run.status = "Succeeded"
                run.ended_at = utcnow()
                await self._store.save_execution(execution)
                await self._audit.record(
                    execution.execution_id, "stage", "Succeeded",
                    from_status="AwaitingApproval", stage_name=run.stage_name,
                    data={"actor": actor},
                )
                await self._continue_after(execution)
            else:
                await self._fail_current(
                    execution, FailureReason.APPROVAL_REJECTED,
                    f"Rejected by {actor}" + (f": {comment}" if comment else ""),
                )
            terminal = execution.is_terminal

        if terminal:
            await self._admit_next()
        return execution

    async def cancel(self, execution_id: str) -> Execution:
        """Cancel a Pending or Running execution.

        Work already done (including a completed deploy) is not undone; the
        cancel only prevents further stages from starting.

        Raises:
            ExecutionNotFound: Unknown execution id.
            InvalidTransition: The execution is already terminal.
        """
        signal_ctx: StageContext | None = None
        async with self._locks.hold(execution_id):
            execution = await self._load(execution_id)
            if execution.is_terminal:
                raise InvalidTransition(
                    f"Execution {execution_id} is already {execution.status}"
                )

            previous = execution.status
            execution.cancel_requested = True
            run = execution.current_stage_run()
            if previous == "Running" and run is not None and run.is_active:
                was_running = run.status == "Running"
                if was_running:
                    signal_ctx = self._context(execution)
                await self._close_stage(execution, run, FailureReason.CANCELLED, "Cancelled by operator")

            execution.status = "Cancelled"
            execution.failure_reason = FailureReason.CANCELLED
            execution.ended_at = utcnow()
            await self._store.save_execution(execution)
            await self._audit.record(
                execution_id, "execution", "Cancelled", from_status=previous,
                reason=FailureReason.CANCELLED,
            )
            logger.info("Execution %s cancelled (was %s)", execution_id, previous)

            event = self._cancel_events.pop(execution_id, None)
            if event is not None:
                event.set()

        if signal_ctx is not None:
            await self._signal_executor(signal_ctx)
        await self._admit_next()
        return execution

    async def recover(self) -> list[str]:
        """Re-attach to every non-terminal execution after a restart.

        Running stages are resumed through ``executor.resume`` (polling
        the external handle), AwaitingApproval stays suspended, and queued
        executions are admitted in id order (all of them under ``parallel``).

        Returns:
            Ids of the Running executions that were re-attached.
        """
        recovered: list[str] = []
        for stored in await self._store.list_executions(["Running"]):
            execution_id = stored.execution_id
            if execution_id in self._tasks:
                continue
            async with self._locks.hold(execution_id):
                execution = await self._load(execution_id)
                if execution.status != "Running":
                    continue
                await self._reattach(execution)
                recovered.append(execution_id)
                terminal = execution.is_terminal
            if terminal:
                logger.info("Execution %s resolved during recovery", execution_id)

        if self._policy == "parallel":
            for stored in await self._store.list_executions(["Pending"]):
                await self._begin(stored.execution_id)
        await self._admit_next()
        logger.info("Recovery complete: %d execution(s) re-attached", len(recovered))
        return recovered

    async def sweep_timeouts(self, now: datetime | None = None) -> list[str]:
        """Fail stages whose wall-clock deadline has elapsed.

        Returns:
            Ids of the executions failed by this sweep.
        """
        now = now or utcnow()
        failed: list[str] = []
        for stored in await self._store.list_executions(["Running"]):
            run = stored.current_stage_run()
            if run is None or run.deadline is None or run.deadline > now:
                continue

            signal_ctx: StageContext | None = None
            async with self._locks.hold(stored.execution_id):
                execution = await self._load(stored.execution_id)
                run = execution.current_stage_run()
                if (
                    execution.status != "Running"
                    or run is None
                    or not run.is_active
                    or run.deadline is None
                    or run.deadline > now
                ):
                    continue

                if run.status == "AwaitingApproval":
                    reason = FailureReason.APPROVAL_TIMED_OUT
                    detail = f"No decision before {run.deadline.isoformat()}"
                else:
                    reason = FailureReason.STAGE_TIMED_OUT
                    detail = f"Deadline {run.deadline.isoformat()} elapsed"
                    signal_ctx = self._context(execution)
                    signal_ctx.cancel_event.set()
                await self._fail_current(execution, reason, detail)
                failed.append(execution.execution_id)

            if signal_ctx is not None:
                await self._signal_executor(signal_ctx)

        if failed:
            logger.warning("Timeout sweep failed %d execution(s): %s", len(failed), failed)
            await self._admit_next()
        return failed

    # ------------------------------------------------------------------
    # Read-only surface
    # ------------------------------------------------------------------

    async def get_execution(self, execution_id: str) -> Execution:
        return await self._load(execution_id)

    async def list_executions(self, status: str | None = None) -> list[Execution]:
        return await self._store.list_executions(None if status is None else [status])

    async def list_approvals(self, pending_only: bool = False) -> list[ApprovalRequest]:
        return await self._store.list_approvals(pending_only=pending_only)

    async def audit_trail(self, execution_id: str) -> list[AuditEntry]:
        await self._load(execution_id)
        return await self._audit.entries(execution_id)

    async def wait_idle(self) -> None:
        """Wait until no stage task is in flight (stages may chain)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks.values()), return_exceptions=True)

    async def shutdown(self) -> None:
        """Stop in-flight stage tasks; their executions stay Running for recover()."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()

    # ------------------------------------------------------------------
    # Transitions (caller holds the execution lock)
    # ------------------------------------------------------------------

    async def _begin(self, execution_id: str) -> bool:
        async with self._locks.hold(execution_id):
            execution = await self._load(execution_id)
            if execution.status != "Pending":
                return False
            execution.status = "Running"
            execution.started_at = utcnow()
            await self._store.save_execution(execution)
            await self._audit.record(
                execution_id, "execution", "Running", from_status="Pending"
            )
            logger.info("Execution %s started", execution_id)
            await self._enter_stage(execution, 0)
            return True

    async def _enter_stage(self, execution: Execution, index: int) -> None:
        execution.current_stage_index = index
        spec = execution.definition.stages[index]
        run = execution.stage_runs[index]

        missing = [n for n in spec.input_artifacts if n not in execution.artifacts]
        if missing:
            await self._store.save_execution(execution)
            await self._fail_execution(
                execution, FailureReason.ARTIFACT_NOT_FOUND,
                f"Stage {spec.name} inputs not produced: {', '.join(missing)}",
            )
            return

        now = utcnow()
        run.status = "Running"
        run.started_at = now
        run.input_artifacts = [execution.artifacts[n] for n in spec.input_artifacts]
        minutes = spec.config.get("timeout_minutes") if spec.kind != "approval" else None
        run.deadline = now + timedelta(minutes=float(minutes)) if minutes else None
        await self._store.save_execution(execution)
        await self._audit.record(
            execution.execution_id, "stage", "Running", from_status="NotStarted",
            stage_name=spec.name,
            data={"inputs": [r.label for r in run.input_artifacts]},
        )
        self._dispatch(execution, resume=False)

    async def _continue_after(self, execution: Execution) -> None:
        """Move the cursor past a Succeeded stage."""
        next_index = execution.current_stage_index + 1
        if next_index >= len(execution.stage_runs):
            await self._finish(execution, "Succeeded")
        else:
            await self._enter_stage(execution, next_index)

    async def _close_stage(
        self, execution: Execution, run: StageRun, reason: str, detail: str | None
    ) -> None:
        """Mark an active stage Failed and resolve its pending approval."""
        previous = run.status
        run.status = "Failed"
        run.failure_reason = reason
        run.failure_detail = detail
        run.ended_at = utcnow()

        if run.approval_request_id:
            request = await self._store.get_approval(run.approval_request_id)
            if request is not None and request.is_pending:
                request.status = (
                    "TimedOut" if reason == FailureReason.APPROVAL_TIMED_OUT else "Cancelled"
                )
                request.decided_at = run.ended_at
                await self._store.save_approval(request)
                await self._audit.record(
                    execution.execution_id, "approval", request.status,
                    from_status="Pending", stage_name=run.stage_name, reason=reason,
                    data={"request_id": request.request_id},
                )

        await self._store.save_execution(execution)
        await self._audit.record(
            execution.execution_id, "stage", "Failed", from_status=previous,
            stage_name=run.stage_name, reason=reason,
            data={"detail": detail} if detail else None,
        )

    async def _fail_current(
        self, execution: Execution, reason: str, detail: str | None
    ) -> None:
        run = execution.current_stage_run()
        if run is not None and run.status not in ("Succeeded", "Failed"):
            await self._close_stage(execution, run, reason, detail)
        await self._fail_execution(execution, reason, detail)

    async def _fail_execution(
        self, execution: Execution, reason: str, detail: str | None
    ) -> None:
        execution.failure_reason = reason
        execution.failure_detail = detail
        await self._finish(execution, "Failed")
        logger.warning(
            "Execution %s failed at %s: %s%s",
            execution.execution_id,
            execution.current_stage_spec().name if execution.current_stage_spec() else "?",
            reason,
            f" ({detail})" if detail else "",
        )

    async def _finish(self, execution: Execution, status: str) -> None:
        previous = execution.status
        execution.status = status  # type: ignore[assignment]
        execution.ended_at = utcnow()
        await self._store.save_execution(execution)
        await self._audit.record(
            execution.execution_id, "execution", status, from_status=previous,
            reason=execution.failure_reason,
        )
        self._cancel_events.pop(execution.execution_id, None)
        if status == "Succeeded":
            logger.info(
                "Execution %s succeeded (%s)",
                execution.execution_id, execution.trigger.commit_ref,
            )

    async def _supersede(self, execution_id: str, by: str) -> None:
        async with self._locks.hold(execution_id):
            execution = await self._load(execution_id)
            if execution.status != "Pending":
                return
            execution.status = "Cancelled"
            execution.failure_reason = FailureReason.SUPERSEDED
            execution.failure_detail = f"Superseded by execution {by}"
            execution.ended_at = utcnow()
            await self._store.save_execution(execution)
            await self._audit.record(
                execution_id, "execution", "Cancelled", from_status="Pending",
                reason=FailureReason.SUPERSEDED, data={"superseded_by": by},
            )
            logger.info("Queued execution %s superseded by %s", execution_id, by)

    async def _reattach(self, execution: Execution) -> None:
        run = execution.current_stage_run()
        if run is None:
            await self._finish(execution, "Succeeded")
            return

        if run.status == "NotStarted":
            await self._enter_stage(execution, execution.current_stage_index)
        elif run.status == "Running":
            await self._audit.record(
                execution.execution_id, "stage", "Running", from_status="Running",
                stage_name=run.stage_name, reason="Recovered",
                data={"external_handle": run.external_handle},
            )
            self._dispatch(execution, resume=True)
        elif run.status == "Succeeded":
            await self._continue_after(execution)
        elif run.status == "Failed":
            await self._fail_execution(
                execution, run.failure_reason or FailureReason.STAGE_FAILURE,
                run.failure_detail,
            )
        else:
            logger.info(
                "Execution %s still awaiting approval %s",
                execution.execution_id, run.approval_request_id,
            )

    # ------------------------------------------------------------------
    # Stage dispatch
    # ------------------------------------------------------------------

    def _context(self, execution: Execution) -> StageContext:
        spec = execution.current_stage_spec()
        run = execution.current_stage_run()
        if spec is None or run is None:
            raise InvalidTransition(f"Execution {execution.execution_id} has no active stage")
        execution_id = execution.execution_id
        event = self._cancel_events.setdefault(execution_id, asyncio.Event())

        async def checkpoint(handle: str) -> None:
            await self._checkpoint(execution_id, run.stage_name, run.attempt, handle)

        return StageContext(
            execution_id=execution_id,
            commit_ref=execution.trigger.commit_ref,
            spec=spec,
            stage_run=run.model_copy(deep=True),
            inputs={ref.name: ref for ref in run.input_artifacts},
            artifacts=self._artifacts,
            cancel_event=event,
            checkpoint=checkpoint,
        )

    def _dispatch(self, execution: Execution, resume: bool) -> None:
        ctx = self._context(execution)
        executor = self._executors.get(ctx.spec.kind)
        task = asyncio.create_task(
            self._run_stage(ctx, executor, resume),
            name=f"exec-{ctx.execution_id}-{ctx.spec.name}",
        )
        execution_id = ctx.execution_id
        self._tasks[execution_id] = task

        def _forget(done: asyncio.Task[None]) -> None:
            if self._tasks.get(execution_id) is done:
                del self._tasks[execution_id]

        task.add_done_callback(_forget)

    async def _run_stage(self, ctx: StageContext, executor, resume: bool) -> None:
        set_execution_context(ctx.execution_id, ctx.commit_ref)
        set_stage_context(ctx.spec.name, ctx.stage_run.attempt)
        logger.info(
            "%s stage %s (%s)", "Resuming" if resume else "Running",
            ctx.spec.name, ctx.spec.kind,
        )
        try:
            outcome = await (executor.resume(ctx) if resume else executor.run(ctx))
        except StageFailure as e:
            outcome = StageOutcome.failed(e.reason, e.detail)
        except Exception as e:  # noqa: BLE001 - executor bugs fail the execution, not the orchestrator
            logger.exception("Stage %s raised", ctx.spec.name)
            outcome = StageOutcome.failed(FailureReason.STAGE_FAILURE, f"{type(e).__name__}: {e}")

        try:
            if outcome.kind == "approval_needed":
                await self.request_approval(ctx.execution_id, ctx.stage_run)
            else:
                await self.advance(
                    ctx.execution_id,
                    StageResult(
                        stage_name=ctx.spec.name,
                        attempt=ctx.stage_run.attempt,
                        succeeded=outcome.kind == "succeeded",
                        output_artifacts=outcome.outputs,
                        failure_reason=outcome.reason,
                        failure_detail=outcome.detail,
                    ),
                )
        except InvalidTransition as e:
            logger.info("Dropping outcome of %s: %s", ctx.spec.name, e)
        except Exception:  # noqa: BLE001 - state stays Running; recover() resolves it
            logger.exception("Could not record outcome of stage %s", ctx.spec.name)

    async def _checkpoint(
        self, execution_id: str, stage_name: str, attempt: int, handle: str
    ) -> None:
        async with self._locks.hold(execution_id):
            execution = await self._load(execution_id)
            run = execution.current_stage_run()
            if run is None or run.stage_name != stage_name or run.attempt != attempt:
                return
            run.external_handle = handle
            await self._store.save_execution(execution)
            logger.debug("Stage %s checkpointed handle %s", stage_name, handle)

    async def _signal_executor(self, ctx: StageContext) -> None:
        executor = self._executors.get(ctx.spec.kind)
        try:
            await executor.cancel(ctx)
        except Exception:  # noqa: BLE001 - cancellation is best effort
            logger.warning("Executor cancel failed for %s", ctx.spec.name, exc_info=True)

    async def _notify(self, execution: Execution, request: ApprovalRequest) -> None:
        message = (
            f"{request.message}\n"
            f"Execution {execution.execution_id} ({execution.trigger.branch}@"
            f"{execution.trigger.commit_ref}) awaits approval. Request: {request.request_id}"
        )
        try:
            await self._notifier.notify(
                request.notification_target, message, request.external_link
            )
        except Exception:  # noqa: BLE001 - approval still possible via record_decision
            logger.warning(
                "Approval notification for %s failed", request.request_id, exc_info=True
            )

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    async def _admit_next(self) -> None:
        """Start queued executions while nothing is running (FIFO)."""
        if self._policy == "parallel":
            return
        async with self._admission:
            while True:
                if await self._store.list_executions(["Running"]):
                    return
                queued = await self._store.list_executions(["Pending"])
                if not queued:
                    return
                started = await self._begin(queued[0].execution_id)
                if started:
                    execution = await self._load(queued[0].execution_id)
                    if not execution.is_terminal:
                        return

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _approval_timeout_for(self, config: dict) -> float | None:
        hours = config.get("timeout_hours")
        if hours is not None:
            return float(hours) * 3600.0 if hours else None
        return self._approval_timeout

    async def _load(self, execution_id: str) -> Execution:
        execution = await self._store.get_execution(execution_id)
        if execution is None:
            raise ExecutionNotFound(execution_id)
        return execution
