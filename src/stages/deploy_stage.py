# src/stages/deploy_stage.py — v1
"""Deploy stage: publish the built site to its production destination.

This is the irreversible boundary of the pipeline, so it only ever uses
sync semantics: re-running with the same artifact converges on the same
destination state. Recovery simply runs it again.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from sitepipe.artifacts.bundle import iter_files
from sitepipe.core.models import FailureReason
from sitepipe.publish.base_publisher import BasePublisher
from sitepipe.publish.models import PublishOptions
from sitepipe.stages.base_stage import BaseStageExecutor, StageContext, StageOutcome

logger = logging.getLogger(__name__)


class DeployStageExecutor(BaseStageExecutor):
    kind = "deploy"

    def __init__(
        self,
        publisher_factory: Callable[[str], BasePublisher],
        default_destination: str = "",
        acl_public_read: bool = True,
        delete_removed: bool = True,
    ) -> None:
        self._publisher_factory = publisher_factory
        self._default_destination = default_destination
        self._acl_public_read = acl_public_read
        self._delete_removed = delete_removed

    async def run(self, ctx: StageContext) -> StageOutcome:
        destination = ctx.config.get("destination") or self._default_destination
        if not destination:
            return StageOutcome.failed(FailureReason.DEPLOY_FAILED, "No deploy destination")

        ref = ctx.input_ref()
        bundle = await ctx.artifacts.get_ref(ref)

        if ctx.config.get("extract", True):
            files = dict(iter_files(bundle))
        else:
            files = {ctx.config.get("object_key", f"{ref.name}.zip"): bundle}

        options = PublishOptions(
            overwrite=True,
            acl_public_read=ctx.config.get("acl_public_read", self._acl_public_read),
            delete_removed=ctx.config.get("delete_removed", self._delete_removed),
        )

        # Last point where cancellation can still prevent the publish.
        if ctx.cancelled:
            return StageOutcome.failed(FailureReason.CANCELLED)

        publisher = self._publisher_factory(destination)
        try:
            report = await publisher.sync(files, destination, options)
        except Exception as e:  # noqa: BLE001 - any publisher error fails the stage
            logger.exception("Deploy of %s to %s failed", ref.label, destination)
            return StageOutcome.failed(FailureReason.DEPLOY_FAILED, str(e))

        logger.info("Deployed %s to %s: %s", ref.label, destination, report.summary())
        return StageOutcome.succeeded()
