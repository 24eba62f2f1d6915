# src/trigger/listener.py — v1
"""Trigger listener: turns repository change notifications into executions.

Only creations and updates of the tracked branch start the pipeline.
Delivery is at-least-once, so every accepted change is claimed under its
dedupe key ``"<branch>:<commit>"`` before the orchestrator is asked to
start; a redelivery finds the claim and creates nothing. A claim left
unbound by a process that stopped mid-start is bound to the execution it
created, or reclaimed when there is none.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from sitepipe.core.errors import ConcurrencyConflict
from sitepipe.core.models import TriggerEvent

if TYPE_CHECKING:
    from sitepipe.pipeline.orchestrator import PipelineOrchestrator
    from sitepipe.state.base_state_store import BaseStateStore

logger = logging.getLogger(__name__)

TRIGGERING_CHANGES = frozenset({"referenceCreated", "referenceUpdated"})
_BRANCH_PREFIX = "refs/heads/"


def normalize_branch(name: str) -> str:
    """Strip a ``refs/heads/`` prefix."""
    return name[len(_BRANCH_PREFIX):] if name.startswith(_BRANCH_PREFIX) else name


class TriggerListener:
    """Filters source changes and starts executions exactly once per commit.

    Args:
        orchestrator: Receives ``start`` for every accepted change.
        store: Holds the dedupe claims.
        tracked_branch: The only branch that triggers the pipeline.
    """

    def __init__(
        self,
        orchestrator: PipelineOrchestrator,
        store: BaseStateStore,
        tracked_branch: str = "master",
    ) -> None:
        self._orchestrator = orchestrator
        self._store = store
        self._branch = normalize_branch(tracked_branch)
        self._starting: set[str] = set()

    @property
    def tracked_branch(self) -> str:
        return self._branch

    async def on_source_change(
        self,
        commit_ref: str,
        branch: str,
        change_type: str = "referenceUpdated",
    ) -> TriggerEvent | None:
        """Handle one change notification.

        Returns:
            The accepted event (``duplicate=True`` on redelivery), or None
            when the change does not trigger the pipeline.

        Raises:
            ConcurrencyConflict: The orchestrator rejected the start. The
                claim is released so a later redelivery can retry.
        """
        branch = normalize_branch(branch)
        if branch != self._branch:
            logger.debug("Ignoring change on untracked branch %s", branch)
            return None
        if change_type not in TRIGGERING_CHANGES:
            logger.debug("Ignoring %s on %s", change_type, branch)
            return None
        if not commit_ref:
            logger.warning("Ignoring %s on %s without a commit id", change_type, branch)
            return None

        event = TriggerEvent(
            commit_ref=commit_ref,
            branch=branch,
            change_type=change_type,  # type: ignore[arg-type]
        )
        key = event.dedupe_key

        claimed = await self._store.claim_trigger(key)
        if not claimed and key not in self._starting:
            claimed = await self._reclaim_unbound(key)
        if not claimed:
            existing = await self._store.get_trigger_claim(key)
            logger.info(
                "Duplicate trigger %s (execution %s)", key, existing or "starting"
            )
            return event.model_copy(update={"duplicate": True})

        self._starting.add(key)
        try:
            execution_id = await self._orchestrator.start(event)
        except ConcurrencyConflict:
            await self._store.release_trigger(key)
            logger.info("Trigger %s rejected: an execution is active", key)
            raise
        except Exception:
            await self._store.release_trigger(key)
            raise
        finally:
            self._starting.discard(key)

        await self._store.bind_trigger(key, execution_id)
        logger.info("Trigger %s started execution %s", key, execution_id)
        return event

    async def on_event(self, payload: dict[str, Any]) -> TriggerEvent | None:
        """Handle a repository state-change event document.

        Expects the ``detail`` mapping of a repository state change
        (``event``, ``referenceType``, ``referenceName``, ``commitId``).
        Tag and other non-branch references are ignored.
        """
        detail = payload.get("detail", payload)
        if not isinstance(detail, dict):
            logger.warning("Ignoring malformed trigger payload")
            return None
        if detail.get("referenceType", "branch") != "branch":
            logger.debug("Ignoring %s reference", detail.get("referenceType"))
            return None
        return await self.on_source_change(
            commit_ref=str(detail.get("commitId") or ""),
            branch=str(detail.get("referenceName") or ""),
            change_type=str(detail.get("event") or ""),
        )

    async def execution_for(self, event: TriggerEvent) -> str | None:
        """Execution id bound to the event's dedupe key, if any."""
        claim = await self._store.get_trigger_claim(event.dedupe_key)
        return claim or None

    async def _reclaim_unbound(self, key: str) -> bool:
        """Resolve a claim left unbound by a start that never finished.

        An execution created for the key gets the claim bound to it and the
        trigger stays a duplicate. With no such execution the claim is
        dropped and taken again.
        """
        if await self._store.get_trigger_claim(key) != "":
            return False
        for execution in await self._store.list_executions():
            if execution.trigger.dedupe_key == key:
                await self._store.bind_trigger(key, execution.execution_id)
                logger.info(
                    "Bound trigger %s to execution %s", key, execution.execution_id
                )
                return False
        logger.warning("Reclaiming trigger %s left unbound by an interrupted start", key)
        await self._store.release_trigger(key)
        return await self._store.claim_trigger(key)
