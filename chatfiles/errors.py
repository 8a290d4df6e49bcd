"""Exceptions raised by the attachment pipeline and its collaborators.

Errors from the preview stage (``PreviewGenerationError`` and its subclasses)
never fail an upload; the orchestrator logs them and stores the file as a
plain attachment. Every other error aborts ``AttachmentService.create``.
``PublishError`` is raised only after the upload has been committed.
"""

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from chatfiles.models import Attachment, Message


class ChatfilesError(Exception):
    """Base class for all chatfiles errors."""


class ConfigurationError(ChatfilesError):
    """Raised when a required collaborator is missing or misconfigured."""


class StorageError(ChatfilesError, OSError):
    """Raised when reading, seeking or saving a blob fails.

    This is a subclass of OSError so callers handling plain I/O failures
    also catch it.
    """


class NotFoundError(ChatfilesError, LookupError):
    """Raised when a requested record or blob does not exist."""


class AttachmentNotFoundError(NotFoundError):
    @classmethod
    def for_id(cls, attachment_id: int) -> "AttachmentNotFoundError":
        return cls(f"Attachment {attachment_id} not found")


class MessageNotFoundError(NotFoundError):
    @classmethod
    def for_id(cls, message_id: int) -> "MessageNotFoundError":
        return cls(f"Message {message_id} not found")


class UserNotFoundError(NotFoundError):
    @classmethod
    def for_id(cls, user_id: int) -> "UserNotFoundError":
        return cls(f"User {user_id} not found")


class BlobNotFoundError(NotFoundError, StorageError):
    @classmethod
    def for_path(cls, path: str) -> "BlobNotFoundError":
        return cls(f"Blob '{path}' not found in store")


class PreviewGenerationError(ChatfilesError):
    """Raised when a preview cannot be produced for an image attachment."""


class UnsupportedFormatError(PreviewGenerationError):
    """Raised when a file extension does not map to any known image codec."""

    @classmethod
    def for_extension(cls, extension: str) -> "UnsupportedFormatError":
        return cls(f"Could not get format from extension '{extension}'")


class DecodeError(PreviewGenerationError):
    """Raised when image data cannot be decoded."""


class TransactionError(ChatfilesError):
    """Raised when any operation inside a transaction fails.

    All writes made inside the transaction are rolled back before this is
    raised. The original failure is available as ``__cause__``.
    """


class PublishError(ChatfilesError):
    """Raised when a committed message could not be delivered to the notifiers.

    The upload itself succeeded and is not rolled back. The persisted
    attachment and message are kept on the error; the notifier failure is
    available as ``__cause__``.
    """

    def __init__(self, text: str, attachment: "Attachment", message: "Message") -> None:
        super().__init__(text)
        self.attachment = attachment
        self.message = message
