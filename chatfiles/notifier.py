"""Protocols for the collaborators that deliver and hydrate message events."""

from __future__ import annotations

from typing import Protocol

from chatfiles.models import Message, User


class Notifier(Protocol):
    """Protocol for message event handlers.

    Notifiers receive fully hydrated messages (author and attachment loaded)
    after the message has been committed. They handle the actual delivery
    (websocket fan-out, webhook, queue, etc.). An exception raised by a
    notifier does not undo the committed upload: ``AttachmentService.create``
    raises ``PublishError`` and ``AttachmentService.upload`` reports it.

    Example:
        class WebsocketNotifier:
            def __call__(self, message: Message) -> None:
                hub.broadcast(message.channel_id, message.model_dump())

        events.add_notifier(WebsocketNotifier())
    """

    def __call__(self, message: Message) -> None:
        """Publish a message event.

        Args:
            message: The message, with ``user`` and ``attachment`` set.
        """
        ...


class UserDirectory(Protocol):
    """Looks up message authors."""

    def find_user_by_id(self, user_id: int) -> User:
        """Return the user or raise UserNotFoundError."""
        ...
