"""In-memory JSON database implementation."""

import copy
import datetime
import itertools
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any

from pydantic import Field

from chatfiles.db.db import DB, DBConfig
from chatfiles.errors import (
    AttachmentNotFoundError,
    MessageNotFoundError,
    TransactionError,
    UserNotFoundError,
)
from chatfiles.ids import IdGenerator
from chatfiles.models import Attachment, Message, MessageAttachment, User

TABLES = ("attachments", "messages", "message_attachment", "users")


def db_config_type():
    """Return the configuration class for JSON database."""
    return JsonDbConfig


class JsonDbConfig(DBConfig):
    """Configuration for in-memory JSON database."""

    data: dict[str, Any] = Field(default_factory=dict, alias="DATA")


def get_db(config, id_generator: IdGenerator | None = None):
    """Get a JSON database instance from raw configuration."""
    return db_from_config(JsonDbConfig.model_validate(config), id_generator)


def db_from_config(config: JsonDbConfig, id_generator: IdGenerator | None = None):
    """Create a JSON database instance from configuration."""
    return Json(config.data, id_generator)


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


class _SequenceIds:
    """Fallback ids: one more than the highest id handed out so far."""

    def __init__(self, start: int) -> None:
        self._counter = itertools.count(start)

    def next_id(self) -> int:
        return next(self._counter)


class Json(DB):
    """In-memory JSON database implementation.

    Data is kept as plain JSON-compatible dictionaries::

        {
            "attachments": {"<id>": {...}},
            "messages": {"<id>": {...}},
            "message_attachment": [{"attachment_id": 1, "message_id": 2}],
            "users": {"<id>": {...}},
        }

    Every write runs in a transaction, either the caller's or its own. A
    transaction snapshots the whole dataset and restores it if the block or
    the commit fails. The lock is held for the duration of the outermost
    transaction and by every read, so readers never see uncommitted rows.
    """

    def __init__(self, data: dict[str, Any], id_generator: IdGenerator | None = None):
        """Initialize JSON database with data dictionary."""
        super().__init__()
        self.data: dict[str, Any] = data
        for table in TABLES:
            self.data.setdefault(table, [] if table == "message_attachment" else {})
        self.id_generator = id_generator or _SequenceIds(self._max_id() + 1)
        self.module_name = "json_db"
        self.db_name = "JsonDb"
        self._lock = threading.RLock()
        self._depth = 0

    def _max_id(self) -> int:
        ids = [int(key) for table in ("attachments", "messages") for key in self.data[table]]
        return max(ids, default=0)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        with self._lock:
            if self._depth:
                self._depth += 1
                try:
                    yield
                finally:
                    self._depth -= 1
                return

            snapshot = copy.deepcopy(self.data)
            self._depth = 1
            try:
                yield
                self._commit()
            except Exception as err:
                self.data.clear()
                self.data.update(snapshot)
                if isinstance(err, TransactionError):
                    raise
                raise TransactionError(f"Transaction rolled back: {err}") from err
            finally:
                self._depth = 0

    def _commit(self) -> None:
        """Called when the outermost transaction succeeds, still holding the lock."""

    def find_attachment_by_id(self, attachment_id: int) -> Attachment:
        with self._lock:
            raw = self.data["attachments"].get(str(attachment_id))
            if raw is None or raw.get("deleted_at") is not None:
                raise AttachmentNotFoundError.for_id(attachment_id)
            return Attachment.model_validate(raw)

    def find_attachments_by_message_ids(self, *message_ids: int) -> list[MessageAttachment]:
        wanted = set(message_ids)
        result = []
        with self._lock:
            for bond in self.data["message_attachment"]:
                if bond["message_id"] not in wanted:
                    continue
                raw = self.data["attachments"].get(str(bond["attachment_id"]))
                if raw is None or raw.get("deleted_at") is not None:
                    continue
                result.append(
                    MessageAttachment(
                        message_id=bond["message_id"], attachment=Attachment.model_validate(raw)
                    )
                )
        return result

    def create_attachment(self, attachment: Attachment) -> Attachment:
        with self.transaction():
            if attachment.id == 0:
                attachment.id = self.id_generator.next_id()
            if attachment.created_at is None:
                attachment.created_at = _now()
            self.data["attachments"][str(attachment.id)] = attachment.model_dump(mode="json")
        return attachment

    def delete_attachment_by_id(self, attachment_id: int) -> None:
        with self._lock:
            if str(attachment_id) not in self.data["attachments"]:
                raise AttachmentNotFoundError.for_id(attachment_id)
            with self.transaction():
                self.data["attachments"][str(attachment_id)]["deleted_at"] = _now().isoformat()

    def bind_attachment(self, attachment_id: int, message_id: int) -> None:
        with self.transaction():
            self.data["message_attachment"].append(
                {"attachment_id": attachment_id, "message_id": message_id}
            )

    def iter_bindings(self) -> Iterator[tuple[int, int]]:
        with self._lock:
            bindings = [
                (bond["attachment_id"], bond["message_id"])
                for bond in self.data["message_attachment"]
            ]
        yield from bindings

    def create_message(self, message: Message) -> Message:
        with self.transaction():
            if message.id == 0:
                message.id = self.id_generator.next_id()
            if message.created_at is None:
                message.created_at = _now()
            self.data["messages"][str(message.id)] = message.model_dump(mode="json")
        return message

    def find_message_by_id(self, message_id: int) -> Message:
        with self._lock:
            raw = self.data["messages"].get(str(message_id))
            if raw is None:
                raise MessageNotFoundError.for_id(message_id)
            return Message.model_validate(raw)

    def add_user(self, user: User) -> User:
        with self.transaction():
            self.data["users"][str(user.id)] = user.model_dump(mode="json")
        return user

    def find_user_by_id(self, user_id: int) -> User:
        with self._lock:
            raw = self.data["users"].get(str(user_id))
            if raw is None:
                raise UserNotFoundError.for_id(user_id)
            return User.model_validate(raw)

    def health_check(self) -> None:
        """Perform a health check on the JSON database.

        Raises an exception if the database is not accessible.
        """
        with self._lock:
            for table in TABLES:
                if table not in self.data:
                    raise Exception(f"Table {table} should not be missing")
