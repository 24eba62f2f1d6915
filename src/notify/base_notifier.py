# src/notify/base_notifier.py — v1
"""Abstract notification collaborator (approval requests, status events)."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseNotifier(ABC):
    """Deliver a message to a human-facing target."""

    @abstractmethod
    async def notify(self, target: str, message: str, action_link: str = "") -> None:
        """Send a message. Raises on delivery failure; callers log and continue."""
