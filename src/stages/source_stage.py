# src/stages/source_stage.py — v1
"""Source stage: snapshot the triggering commit into the source artifact."""

from __future__ import annotations

import logging

from sitepipe.core.models import SOURCE_ARTIFACT, FailureReason
from sitepipe.source.base_source import BaseSource, SourceUnavailable
from sitepipe.stages.base_stage import BaseStageExecutor, StageContext, StageOutcome

logger = logging.getLogger(__name__)


class SourceStageExecutor(BaseStageExecutor):
    kind = "source"

    def __init__(self, source: BaseSource) -> None:
        self._source = source

    async def run(self, ctx: StageContext) -> StageOutcome:
        try:
            bundle = await self._source.snapshot(ctx.commit_ref)
        except SourceUnavailable as e:
            return StageOutcome.failed(FailureReason.SOURCE_UNAVAILABLE, str(e))

        ref = await ctx.artifacts.put(ctx.output_name(SOURCE_ARTIFACT), bundle)
        logger.info("Source %s stored as %s", ctx.commit_ref, ref.label)
        return StageOutcome.succeeded([ref])
