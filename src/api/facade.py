# src/api/facade.py — v1
"""Public API facade: single entry point for running the site pipeline.

Usage:
    from sitepipe.api.facade import PipelineService
    service = PipelineService.from_settings(load_settings())
    await service.recover()
    await service.trigger("3f2a9c1", "master")

Wires every collaborator from Settings (state store, artifact store,
source, build environment, publishers, notifier) and exposes the
operator surface used by the CLI.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from sitepipe.api.models import ExecutionSummary
from sitepipe.artifacts.store_factory import create_artifact_store
from sitepipe.build.local_environment import LocalBuildEnvironment
from sitepipe.build.models import BuildSpec
from sitepipe.config.settings import Settings
from sitepipe.core.models import ApprovalRequest, AuditEntry, Execution, TriggerEvent
from sitepipe.notify.notifier_factory import create_notifier
from sitepipe.pipeline.definition import resolve_definition
from sitepipe.pipeline.orchestrator import PipelineOrchestrator
from sitepipe.pipeline.sweeper import TimeoutSweeper
from sitepipe.publish.publisher_factory import create_publisher
from sitepipe.source.source_factory import create_source
from sitepipe.stages.approval_stage import ApprovalStageExecutor
from sitepipe.stages.build_stage import BuildStageExecutor
from sitepipe.stages.deploy_stage import DeployStageExecutor
from sitepipe.stages.registry import StageExecutorRegistry
from sitepipe.stages.source_stage import SourceStageExecutor
from sitepipe.state.store_factory import create_state_store
from sitepipe.trigger.listener import TriggerListener

if TYPE_CHECKING:
    from sitepipe.state.base_state_store import BaseStateStore

logger = logging.getLogger(__name__)

_DECISIONS = {
    "approve": "Approved",
    "approved": "Approved",
    "reject": "Rejected",
    "rejected": "Rejected",
}


class PipelineService:
    """Operator-facing wrapper around one orchestrator and its listener."""

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        listener: TriggerListener,
        store: BaseStateStore,
        sweep_interval: float = 30.0,
    ) -> None:
        self.orchestrator = orchestrator
        self.listener = listener
        self._store = store
        self._sweep_interval = sweep_interval

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> PipelineService:
        """Build the full service from settings (loaded from .env if None)."""
        settings = settings or Settings()
        store = create_state_store(settings)
        artifacts = create_artifact_store(settings)

        def publisher_for(destination: str):
            return create_publisher(destination, region=settings.publish_region or None)

        default_spec = (
            BuildSpec.from_file(settings.buildspec_file)
            if settings.buildspec_file is not None
            else None
        )
        executors = StageExecutorRegistry([
            SourceStageExecutor(create_source(settings)),
            BuildStageExecutor(
                LocalBuildEnvironment(settings.build_workdir),
                default_spec=default_spec,
                timeout_seconds=settings.build_timeout_seconds,
                staging_publisher=(
                    publisher_for(settings.staging_destination)
                    if settings.staging_destination
                    else None
                ),
                staging_destination=settings.staging_destination,
            ),
            ApprovalStageExecutor(),
            DeployStageExecutor(
                publisher_for,
                default_destination=settings.deploy_destination,
                acl_public_read=settings.deploy_acl_public_read,
                delete_removed=settings.deploy_delete_removed,
            ),
        ])

        orchestrator = PipelineOrchestrator(
            definition=resolve_definition(settings),
            store=store,
            executors=executors,
            artifacts=artifacts,
            notifier=create_notifier(settings),
            policy=settings.concurrency_policy,
            max_queued=settings.max_queued,
            approval_timeout_seconds=settings.approval_timeout_seconds,
            notification_target=settings.notification_target,
            external_link=settings.approval_external_link,
            approval_message=settings.approval_message,
        )
        listener = TriggerListener(orchestrator, store, settings.tracked_branch)
        logger.info(
            "Pipeline %s ready (policy=%s, state=%s, artifacts=%s)",
            settings.pipeline_name, settings.concurrency_policy,
            settings.state_backend, settings.artifact_backend,
        )
        return cls(orchestrator, listener, store, settings.sweep_interval_seconds)

    # --- Triggers ---

    async def trigger(
        self,
        commit_ref: str,
        branch: str,
        change_type: str = "referenceUpdated",
    ) -> tuple[TriggerEvent | None, str | None]:
        """Deliver one source change.

        Returns:
            (event, execution id); event is None when the change is ignored.
        """
        event = await self.listener.on_source_change(commit_ref, branch, change_type)
        if event is None:
            return None, None
        return event, await self.listener.execution_for(event)

    # --- Operator actions ---

    async def decide(
        self,
        request_id: str,
        decision: str,
        actor: str,
        comment: str | None = None,
    ) -> Execution:
        normalized = _DECISIONS.get(decision.lower(), decision)
        return await self.orchestrator.record_decision(request_id, normalized, actor, comment)

    async def cancel(self, execution_id: str) -> Execution:
        return await self.orchestrator.cancel(execution_id)

    async def recover(self) -> list[str]:
        return await self.orchestrator.recover()

    async def sweep(self) -> list[str]:
        return await self.orchestrator.sweep_timeouts()

    # --- Queries ---

    async def get_execution(self, execution_id: str) -> Execution:
        return await self.orchestrator.get_execution(execution_id)

    async def summary(self, execution_id: str) -> ExecutionSummary:
        execution = await self.orchestrator.get_execution(execution_id)
        return ExecutionSummary.from_execution(execution)

    async def list_executions(self, status: str | None = None) -> list[ExecutionSummary]:
        executions = await self.orchestrator.list_executions(status)
        return [ExecutionSummary.from_execution(e) for e in executions]

    async def list_approvals(self, pending_only: bool = True) -> list[ApprovalRequest]:
        return await self.orchestrator.list_approvals(pending_only=pending_only)

    async def audit(self, execution_id: str, export: Path | None = None) -> list[AuditEntry]:
        entries = await self.orchestrator.audit_trail(execution_id)
        if export is not None:
            count = await self.orchestrator.audit.export_jsonl(execution_id, export)
            logger.info("Exported %d audit entries to %s", count, export)
        return entries

    # --- Lifecycle ---

    async def wait_idle(self) -> None:
        await self.orchestrator.wait_idle()

    def sweeper(self) -> TimeoutSweeper:
        return TimeoutSweeper(self.orchestrator, self._sweep_interval)

    async def close(self) -> None:
        await self.orchestrator.shutdown()
        self._store.close()
