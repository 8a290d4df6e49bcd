from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import AbstractContextManager
from typing import TypeVar

from pydantic import BaseModel, ConfigDict, Field

from chatfiles.models import Attachment, Message, MessageAttachment, User

T = TypeVar("T")


class DBConfig(BaseModel):
    """Base configuration shared by all database backends."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(alias="TYPE")


class DB(ABC):
    """Repository for attachments, messages and users.

    All write operations participate in the transaction opened with
    :meth:`transaction` when one is active.
    """

    db_name: str = "DB"
    module_name: str = "db"

    @abstractmethod
    def transaction(self) -> AbstractContextManager[None]:
        """Open an all-or-nothing transaction.

        Every write made inside the block is rolled back if the block raises.
        Failures are re-raised as TransactionError. Nested blocks join the
        outermost transaction.
        """

    def run_in_transaction(self, fn: Callable[[], T]) -> T:
        """Call ``fn`` inside a transaction and return its result."""
        with self.transaction():
            return fn()

    @abstractmethod
    def find_attachment_by_id(self, attachment_id: int) -> Attachment:
        """Return a non-deleted attachment.

        Raises:
            AttachmentNotFoundError: If there is no such attachment.
        """

    @abstractmethod
    def find_attachments_by_message_ids(self, *message_ids: int) -> list[MessageAttachment]:
        """Return the non-deleted attachments bound to any of the given messages."""

    @abstractmethod
    def create_attachment(self, attachment: Attachment) -> Attachment:
        """Insert an attachment, setting its creation time."""

    @abstractmethod
    def delete_attachment_by_id(self, attachment_id: int) -> None:
        """Soft-delete an attachment by setting its tombstone timestamp."""

    @abstractmethod
    def bind_attachment(self, attachment_id: int, message_id: int) -> None:
        """Link an attachment to the message it was uploaded with."""

    @abstractmethod
    def create_message(self, message: Message) -> Message:
        """Insert a message, assigning its id and creation time."""

    @abstractmethod
    def find_message_by_id(self, message_id: int) -> Message:
        """Return a message.

        Raises:
            MessageNotFoundError: If there is no such message.
        """

    @abstractmethod
    def find_user_by_id(self, user_id: int) -> User:
        """Return a user.

        Raises:
            UserNotFoundError: If there is no such user.
        """

    @abstractmethod
    def iter_bindings(self) -> Iterator[tuple[int, int]]:
        """Yield (attachment_id, message_id) pairs of all bindings."""

    def health_check(self) -> None:
        """Raise an exception if the database is not usable."""
