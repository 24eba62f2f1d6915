# src/notify/log_notifier.py — v1
"""Notifier that writes messages to the log and keeps them in memory."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sitepipe.notify.base_notifier import BaseNotifier

logger = logging.getLogger(__name__)


@dataclass
class SentNotification:
    target: str
    message: str
    action_link: str


class LogNotifier(BaseNotifier):
    """Default NOTIFICATION_BACKEND=log."""

    def __init__(self) -> None:
        self._sent: list[SentNotification] = []

    async def notify(self, target: str, message: str, action_link: str = "") -> None:
        self._sent.append(SentNotification(target, message, action_link))
        logger.info(
            "Notification to %s: %s%s",
            target or "<unset>",
            message,
            f" ({action_link})" if action_link else "",
        )

    @property
    def sent(self) -> list[SentNotification]:
        return list(self._sent)
