"""Notifier registry.

The adapter is chosen with the NOTIFIER environment variable: ``log``
(default) or ``fake``.
"""

import os

from ordering.notifier.port import Notifier

_notifier: Notifier | None = None


def get_notifier() -> Notifier:
    """Return the configured notifier (singleton)."""
    global _notifier
    if _notifier is None:
        adapter = os.environ.get("NOTIFIER", "log")
        if adapter == "log":
            from ordering.notifier.log_adapter import LogNotifier

            _notifier = LogNotifier()
        elif adapter == "fake":
            from ordering.notifier.fake_adapter import FakeNotifier

            _notifier = FakeNotifier()
        else:
            raise ValueError(f"Unknown notifier: {adapter}")
    return _notifier


def set_notifier(notifier: Notifier) -> None:
    global _notifier
    _notifier = notifier


def reset_notifier() -> None:
    """Reset the notifier singleton (useful for testing)."""
    global _notifier
    _notifier = None
