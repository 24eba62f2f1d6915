# src/notify/notifier_factory.py — v1
"""Factory: instantiate the notifier from configuration."""

from __future__ import annotations

from sitepipe.config.settings import Settings
from sitepipe.notify.base_notifier import BaseNotifier


def create_notifier(settings: Settings) -> BaseNotifier:
    """Create the notifier selected by NOTIFICATION_BACKEND."""
    if settings.notification_backend == "log":
        from sitepipe.notify.log_notifier import LogNotifier

        return LogNotifier()

    if settings.notification_backend == "sns":
        from sitepipe.notify.sns_notifier import SnsNotifier

        return SnsNotifier(
            region=settings.notification_region or None,
            subject=f"{settings.pipeline_name} approval",
        )

    raise ValueError(f"Unsupported notification backend: {settings.notification_backend!r}")
