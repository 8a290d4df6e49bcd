"""Outbound message events."""

import logging

from chatfiles.models import Attachment, Message
from chatfiles.notification_result import NotificationResult, NotifierResult
from chatfiles.notifier import Notifier, UserDirectory

logger = logging.getLogger(__name__)


class EventService:
    """Hydrates messages and hands them to the registered notifiers.

    Hydration (:meth:`prepare`) and delivery (:meth:`publish`) are separate
    steps so callers can resolve the author inside a transaction and deliver
    only once it has committed.
    """

    def __init__(self, users: UserDirectory, notifiers: list[Notifier] | None = None) -> None:
        self.users = users
        self.notifiers: list[Notifier] = list(notifiers or [])

    def add_notifier(self, notifier: Notifier) -> None:
        """Register a notifier to receive message events.

        Args:
            notifier: A callable conforming to the Notifier protocol.
        """
        self.notifiers.append(notifier)

    def prepare(self, message: Message, attachment: Attachment | None = None) -> Message:
        """Attach the attachment to the message and load its author.

        Raises:
            UserNotFoundError: If the message author cannot be resolved.
        """
        if attachment is not None:
            message.attachment = attachment

        if message.user is None:
            # TODO: pull user from a cache once the user directory has one
            message.user = self.users.find_user_by_id(message.user_id)

        return message

    def publish(self, message: Message) -> NotificationResult:
        """Send a hydrated message to all registered notifiers.

        Returns:
            NotificationResult with one entry per notifier.
        """
        result = NotificationResult()
        for notifier in self.notifiers:
            notifier_name = getattr(notifier, "__name__", type(notifier).__name__)
            notifier(message)
            result.notifier_results.append(
                NotifierResult(
                    notifier_name=notifier_name,
                    message_id=message.id,
                    with_attachment=message.attachment is not None,
                )
            )

        logger.debug("Message %d published to %d notifier(s)", message.id, result.total_notifiers)
        return result

    def message(self, message: Message, attachment: Attachment | None = None) -> NotificationResult:
        """Hydrate a message and publish it in one go."""
        return self.publish(self.prepare(message, attachment))
