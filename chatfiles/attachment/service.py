"""Attachment upload pipeline.

An upload is sniffed, stored, previewed and finally recorded together with
the message it was posted as, in a single transaction::

    sniff -> store original -> preview (best effort) -> transaction {
        attachment row, message row, binding row, load author
    } -> publish event

Blobs are written before the transaction opens and are not removed if it
rolls back.
"""

from __future__ import annotations

import copy
import logging
import posixpath
from dataclasses import dataclass
from typing import TYPE_CHECKING, BinaryIO

from opentelemetry import trace

from chatfiles.attachment.mime_sniffing import sniff_mimetype
from chatfiles.attachment.preview import PreviewGenerator, PreviewOutcome
from chatfiles.errors import ConfigurationError, PublishError, StorageError
from chatfiles.models import (
    IMAGE_MIMETYPE_PREFIX,
    Attachment,
    Message,
    MessageAttachment,
    MessageType,
)
from chatfiles.notification_result import NotificationResult

if TYPE_CHECKING:
    from chatfiles.db.db import DB
    from chatfiles.events import EventService
    from chatfiles.ids import IdGenerator
    from chatfiles.store.store import Store

logger = logging.getLogger(__name__)
tracer = trace.get_tracer(__name__)


def extract_extension(name: str) -> str:
    """Return the extension of an uploaded file name, without the dot.

    Surrounding dots are removed first so that names like ".bashrc" or
    "file." do not yield an extension.

    >>> extract_extension("archive.tar.gz.")
    'gz'
    >>> extract_extension(".bashrc")
    ''
    """
    _, ext = posixpath.splitext(name.strip().strip("."))
    return ext.lstrip(".")


@dataclass
class UploadResult:
    """Everything produced by a committed upload.

    Attributes:
        attachment: The stored and persisted attachment.
        message: The message the attachment is bound to.
        preview: Outcome of the preview step; failed outcomes carry the error.
        notification: Delivery result, None if publishing failed.
        notification_error: The exception raised while publishing, if any.
    """

    attachment: Attachment
    message: Message
    preview: PreviewOutcome
    notification: NotificationResult | None = None
    notification_error: Exception | None = None

    @property
    def degraded(self) -> bool:
        return not self.preview.ok or self.notification_error is not None


class AttachmentService:
    """Creates, finds and opens attachments.

    All collaborators are passed in explicitly. ``identity`` is the id of the
    user acting through this service instance; use :meth:`with_identity` to
    get a copy bound to another user.
    """

    def __init__(
        self,
        store: Store | None,
        db: DB,
        events: EventService,
        id_generator: IdGenerator,
        identity: int = 0,
        preview_generator: PreviewGenerator | None = None,
    ) -> None:
        self.store = store
        self.db = db
        self.events = events
        self.id_generator = id_generator
        self.identity = identity
        if preview_generator is None and store is not None:
            preview_generator = PreviewGenerator(store)
        self.preview_generator = preview_generator

    def with_identity(self, user_id: int) -> AttachmentService:
        service = copy.copy(self)
        service.identity = user_id
        return service

    def find_by_id(self, attachment_id: int) -> Attachment:
        return self.db.find_attachment_by_id(attachment_id)

    def find_by_message_ids(self, *message_ids: int) -> list[MessageAttachment]:
        return self.db.find_attachments_by_message_ids(*message_ids)

    def delete_by_id(self, attachment_id: int) -> None:
        self.db.delete_attachment_by_id(attachment_id)

    def open_original(self, attachment: Attachment) -> BinaryIO | None:
        if not attachment.url:
            return None
        return self._require_store().open(attachment.url)

    def open_preview(self, attachment: Attachment) -> BinaryIO | None:
        if not attachment.preview_url:
            return None
        return self._require_store().open(attachment.preview_url)

    def _require_store(self) -> Store:
        if self.store is None:
            raise ConfigurationError("Can not access attachments: store handler not set")
        return self.store

    def create(self, channel_id: int, name: str, size: int, stream: BinaryIO) -> Attachment:
        """Store an uploaded file and post it to a channel.

        Args:
            channel_id: Channel the file is uploaded to.
            name: File name supplied by the uploader.
            size: Size of the upload in bytes.
            stream: Seekable stream with the file content.

        Returns:
            The persisted attachment.

        Raises:
            ConfigurationError: If no content store is configured.
            StorageError: If the upload cannot be read or stored.
            TransactionError: If persisting the records fails; nothing is
                left in the database, stored blobs are kept.
            PublishError: If a notifier fails after the records were
                committed; the error carries the persisted attachment.
        """
        result = self.upload(channel_id, name, size, stream)
        if result.notification_error is not None:
            raise PublishError(
                f"Attachment {result.attachment.id} stored but message "
                f"{result.message.id} could not be published",
                result.attachment,
                result.message,
            ) from result.notification_error
        return result.attachment

    def upload(self, channel_id: int, name: str, size: int, stream: BinaryIO) -> UploadResult:
        """Same as :meth:`create`, reporting notifier failures in the result instead."""
        if self.store is None:
            raise ConfigurationError("Can not create attachment: store handler not set")

        with tracer.start_as_current_span("attachment.create") as span:
            attachment = Attachment(
                id=self.id_generator.next_id(),
                user_id=self.identity,
                name=name.strip(),
            )
            original = attachment.meta.original
            original.extension = extract_extension(name)
            original.size = size
            span.set_attribute("attachment.id", attachment.id)

            with tracer.start_as_current_span("attachment.sniff"):
                original.mimetype = sniff_mimetype(stream)

            logger.info(
                "Processing uploaded file (name: %s, size: %d, mimetype: %s)",
                attachment.name,
                original.size,
                original.mimetype,
            )

            with tracer.start_as_current_span("attachment.store_original"):
                url = self.store.original_path(attachment.id, original.extension)
                try:
                    self.store.save(url, stream)
                except StorageError:
                    logger.exception("Could not store %s as %s", attachment.name, url)
                    raise
                attachment.url = url

            with tracer.start_as_current_span("attachment.preview"):
                preview = self._generate_preview(stream, attachment)

            logger.info("File %s stored as %s", attachment.name, attachment.url)

            with tracer.start_as_current_span("attachment.transaction"):
                message = self._persist(channel_id, attachment)

            try:
                notification = self.events.publish(message)
            except Exception as err:
                logger.exception("Could not publish message %d", message.id)
                return UploadResult(attachment, message, preview, notification_error=err)

            return UploadResult(attachment, message, preview, notification)

    def _generate_preview(self, stream: BinaryIO, attachment: Attachment) -> PreviewOutcome:
        if self.preview_generator is None:
            return PreviewOutcome.skipped()

        outcome = self.preview_generator.generate(stream, attachment)
        if not outcome.ok:
            logger.warning(
                "Preview for %s (id: %d) not generated: %s",
                attachment.name,
                attachment.id,
                outcome.error,
            )
        return outcome

    def _persist(self, channel_id: int, attachment: Attachment) -> Message:
        with self.db.transaction():
            self.db.create_attachment(attachment)

            message = Message(
                message=attachment.name,
                type=MessageType.ATTACHMENT,
                channel_id=channel_id,
                user_id=self.identity,
            )
            if attachment.meta.original.mimetype.startswith(IMAGE_MIMETYPE_PREFIX):
                message.type = MessageType.INLINE_IMAGE

            message = self.db.create_message(message)
            self.db.bind_attachment(attachment.id, message.id)

            logger.info(
                "File %s (id: %d) attached to message (id: %d)",
                attachment.name,
                attachment.id,
                message.id,
            )

            return self.events.prepare(message, attachment)
