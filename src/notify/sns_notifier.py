# src/notify/sns_notifier.py — v1
"""Amazon SNS notifier (NOTIFICATION_BACKEND=sns).

The target is a topic ARN; subscribers (e-mail, chat hooks) receive the
approval message and the preview link.
"""

from __future__ import annotations

import logging

from sitepipe.notify.base_notifier import BaseNotifier

logger = logging.getLogger(__name__)

_SUBJECT_LIMIT = 100


class SnsNotifier(BaseNotifier):
    """Publish notifications to an SNS topic."""

    def __init__(self, region: str | None = None, subject: str = "Pipeline approval") -> None:
        import boto3

        kwargs: dict = {}
        if region:
            kwargs["region_name"] = region
        self._sns = boto3.client("sns", **kwargs)
        self._subject = subject[:_SUBJECT_LIMIT]

    async def notify(self, target: str, message: str, action_link: str = "") -> None:
        body = message if not action_link else f"{message}\n\nReview: {action_link}"
        response = self._sns.publish(TopicArn=target, Subject=self._subject, Message=body)
        logger.debug("SNS publish to %s: message_id=%s", target, response.get("MessageId"))
