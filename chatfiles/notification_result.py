"""Notification result types.

- NotifierResult: Result of a single notifier call
- NotificationResult: Aggregated results from all notifiers
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class NotifierResult:
    """Result of publishing a message to a single notifier.

    Attributes:
        notifier_name: Name of the notifier.
        message_id: Id of the published message.
        with_attachment: Whether the published message carried an attachment.
    """

    notifier_name: str
    message_id: int
    with_attachment: bool = False


@dataclass
class NotificationResult:
    """Result of publishing a message to all notifiers.

    Attributes:
        notifier_results: List of results for each notifier.
        total_notifiers: Total number of notifiers that were called.
        notifiers_with_attachment: Number of notifiers that received an attachment.
    """

    notifier_results: list[NotifierResult] = field(default_factory=list)

    @property
    def total_notifiers(self) -> int:
        return len(self.notifier_results)

    @property
    def notifiers_with_attachment(self) -> int:
        return sum(1 for r in self.notifier_results if r.with_attachment)
