"""Notifier that writes notifications to the log.

Used until an email or SMS provider is wired in.
"""

import structlog

from ordering.notifier.port import Notifier

logger = structlog.get_logger(__name__)


class LogNotifier(Notifier):
    def notify(self, topic: str, recipient: str | None, context: dict) -> None:
        logger.info("Notification", topic=topic, recipient=recipient, **context)
