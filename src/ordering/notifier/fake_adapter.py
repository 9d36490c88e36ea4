"""Fake notifier: records notifications in memory for test assertions."""

from ordering.notifier.port import Notifier


class FakeNotifier(Notifier):
    def __init__(self) -> None:
        self.sent: list[dict] = []
        self.should_succeed = True
        self.failure_reason = "Notification delivery failed"

    def configure(self, should_succeed: bool = True, failure_reason: str = "Notification delivery failed") -> None:
        """Configure the fake adapter behavior for testing."""
        self.should_succeed = should_succeed
        self.failure_reason = failure_reason

    def notify(self, topic: str, recipient: str | None, context: dict) -> None:
        if not self.should_succeed:
            raise ConnectionError(self.failure_reason)
        self.sent.append({"topic": topic, "recipient": recipient, "context": context})

    def topics(self) -> list[str]:
        return [n["topic"] for n in self.sent]
