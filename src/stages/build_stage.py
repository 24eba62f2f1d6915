# src/stages/build_stage.py — v1
"""Build stage: compile the source artifact in the build environment.

Buildspec resolution order: stage config ``buildspec`` (mapping or YAML
text), then the configured BUILDSPEC_FILE, then ``buildspec.yml`` at the
root of the source bundle.

When a staging destination is configured, the packaged output is also
synced there so the approver can preview the build.
"""

from __future__ import annotations

import logging

from sitepipe.artifacts.bundle import iter_files
from sitepipe.build.base_environment import BaseBuildEnvironment
from sitepipe.build.models import BuildReport, BuildSpec
from sitepipe.core.models import FailureReason
from sitepipe.publish.base_publisher import BasePublisher
from sitepipe.publish.models import PublishOptions
from sitepipe.stages.base_stage import BaseStageExecutor, StageContext, StageOutcome

logger = logging.getLogger(__name__)

DEFAULT_OUTPUT = "StaticFiles"
_BUNDLED_SPEC_NAMES = ("buildspec.yml", "buildspec.yaml")


class BuildStageExecutor(BaseStageExecutor):
    kind = "build"

    def __init__(
        self,
        environment: BaseBuildEnvironment,
        default_spec: BuildSpec | None = None,
        timeout_seconds: float | None = None,
        staging_publisher: BasePublisher | None = None,
        staging_destination: str = "",
    ) -> None:
        self._env = environment
        self._default_spec = default_spec
        self._timeout = timeout_seconds
        self._staging_publisher = staging_publisher
        self._staging_destination = staging_destination

    async def run(self, ctx: StageContext) -> StageOutcome:
        source_bundle = await ctx.artifacts.get_ref(ctx.input_ref())
        try:
            spec = self._resolve_spec(ctx, source_bundle)
        except (TypeError, ValueError) as e:
            return StageOutcome.failed(FailureReason.BUILD_FAILED, f"Invalid buildspec: {e}")
        if spec is None:
            return StageOutcome.failed(FailureReason.BUILD_FAILED, "No buildspec found")

        if ctx.cancelled:
            return StageOutcome.failed(FailureReason.CANCELLED)

        build_id = await self._env.start(
            source_bundle,
            spec,
            env={
                "SITEPIPE_EXECUTION_ID": ctx.execution_id,
                "SITEPIPE_COMMIT": ctx.commit_ref,
            },
        )
        await ctx.checkpoint(build_id)
        if ctx.cancelled:
            await self._env.stop(build_id)
            return StageOutcome.failed(FailureReason.CANCELLED)
        return await self._collect(ctx, build_id)

    async def resume(self, ctx: StageContext) -> StageOutcome:
        build_id = ctx.stage_run.external_handle
        if build_id is None:
            # Never reached the environment: nothing to re-attach to.
            return await self.run(ctx)
        if await self._env.status(build_id) is None:
            return StageOutcome.failed(FailureReason.BUILD_LOST, f"Unknown build {build_id}")
        logger.info("Re-attaching to build %s", build_id)
        return await self._collect(ctx, build_id)

    async def cancel(self, ctx: StageContext) -> None:
        if ctx.stage_run.external_handle:
            await self._env.stop(ctx.stage_run.external_handle)

    # --- Internals ---

    async def _collect(self, ctx: StageContext, build_id: str) -> StageOutcome:
        report = await self._env.wait(build_id, self._timeout_for(ctx))
        if report.status != "succeeded":
            return _failure_for(report)

        output = await self._env.read_output(build_id)
        ref = await ctx.artifacts.put(ctx.output_name(DEFAULT_OUTPUT), output)
        logger.info(
            "Build %s packaged %d file(s) as %s", build_id, report.output_files, ref.label
        )

        if self._staging_publisher is not None and self._staging_destination:
            sync = await self._staging_publisher.sync(
                dict(iter_files(output)),
                self._staging_destination,
                PublishOptions(acl_public_read=True, delete_removed=True),
            )
            logger.info("Staged build at %s: %s", self._staging_destination, sync.summary())
        return StageOutcome.succeeded([ref])

    def _timeout_for(self, ctx: StageContext) -> float | None:
        minutes = ctx.config.get("timeout_minutes")
        if minutes is not None:
            return float(minutes) * 60.0 if minutes else None
        return self._timeout

    def _resolve_spec(self, ctx: StageContext, source_bundle: bytes) -> BuildSpec | None:
        configured = ctx.config.get("buildspec")
        if configured is not None:
            return BuildSpec.coerce(configured)
        if self._default_spec is not None:
            return self._default_spec
        for rel, content in iter_files(source_bundle):
            if rel in _BUNDLED_SPEC_NAMES:
                return BuildSpec.from_yaml(content.decode("utf-8"))
        return None


def _failure_for(report: BuildReport) -> StageOutcome:
    detail = report.reason or report.status
    if report.status == "timed_out":
        return StageOutcome.failed(FailureReason.STAGE_TIMED_OUT, detail)
    if report.status == "stopped":
        return StageOutcome.failed(FailureReason.CANCELLED, detail)
    if report.status == "lost":
        return StageOutcome.failed(FailureReason.BUILD_LOST, detail)
    if report.error_kind == "provision":
        return StageOutcome.failed(FailureReason.ENVIRONMENT_ERROR, detail)
    return StageOutcome.failed(FailureReason.BUILD_FAILED, detail)
