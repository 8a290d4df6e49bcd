"""Tests for the attachment upload pipeline."""

import io
import logging
from unittest.mock import MagicMock, patch

import pytest

from chatfiles.attachment.preview import PreviewStatus
from chatfiles.attachment.service import AttachmentService, extract_extension
from chatfiles.db.json_db import Json
from chatfiles.errors import (
    AttachmentNotFoundError,
    BlobNotFoundError,
    ConfigurationError,
    PublishError,
    StorageError,
    TransactionError,
    UserNotFoundError,
)
from chatfiles.events import EventService
from chatfiles.models import Attachment, MessageType
from chatfiles.store.memory_store import MemoryStore
from tests.unit_tests.images import CountingIds, image_bytes

CHANNEL_ID = 7
PDF_CONTENT = b"%PDF-1.7\n%\xe2\xe3\xcf\xd3\n1 0 obj"


def upload(service: AttachmentService, name: str, content: bytes):
    return service.upload(CHANNEL_ID, name, len(content), io.BytesIO(content))


class TestExtractExtension:
    @pytest.mark.parametrize(
        "name,expected",
        [
            ("photo.jpg", "jpg"),
            ("photo.JPG", "JPG"),
            ("archive.tar.gz", "gz"),
            ("archive.tar.gz.", "gz"),
            (".bashrc", ""),
            ("..hidden..", ""),
            ("README", ""),
            ("  report.pdf  ", "pdf"),
            ("", ""),
        ],
    )
    def test_extract_extension(self, name, expected):
        assert extract_extension(name) == expected


class TestCreate:
    def test_document_upload(self, service: AttachmentService, store: MemoryStore, db: Json):
        attachment = service.create(
            CHANNEL_ID, "report.pdf", len(PDF_CONTENT), io.BytesIO(PDF_CONTENT)
        )

        assert attachment.id == 1000
        assert attachment.user_id == service.identity
        assert attachment.name == "report.pdf"
        assert attachment.url == "attachments/original/1000.pdf"
        assert attachment.preview_url == ""
        assert attachment.meta.original.mimetype == "application/pdf"
        assert attachment.meta.original.extension == "pdf"
        assert attachment.meta.original.size == len(PDF_CONTENT)
        assert attachment.meta.preview is None
        assert attachment.created_at is not None
        assert store.blobs[attachment.url] == PDF_CONTENT

    def test_document_message(self, service: AttachmentService, db: Json):
        result = upload(service, "report.pdf", PDF_CONTENT)

        message = db.find_message_by_id(result.message.id)
        assert message.type is MessageType.ATTACHMENT
        assert message.message == "report.pdf"
        assert message.channel_id == CHANNEL_ID
        assert message.user_id == service.identity
        assert list(db.iter_bindings()) == [(result.attachment.id, message.id)]
        assert result.preview.status is PreviewStatus.SKIPPED
        assert not result.degraded

    def test_image_upload_gets_preview(self, service: AttachmentService, store: MemoryStore):
        content = image_bytes("PNG", size=(1600, 300))

        result = upload(service, "  wide.png ", content)

        attachment = result.attachment
        assert attachment.name == "wide.png"
        assert result.message.type is MessageType.INLINE_IMAGE
        assert result.message.message == "wide.png"
        assert attachment.meta.original.mimetype == "image/png"
        assert (attachment.meta.original.width, attachment.meta.original.height) == (1600, 300)
        assert attachment.preview_url == "attachments/preview/1000.jpg"
        assert attachment.meta.preview is not None
        assert attachment.meta.preview.width == 800
        assert store.blobs[attachment.url] == content
        assert attachment.preview_url in store.blobs

    def test_mimetype_comes_from_content_not_name(self, service: AttachmentService):
        result = upload(service, "not-an-image.jpg", PDF_CONTENT)

        assert result.attachment.meta.original.mimetype == "application/pdf"
        assert result.attachment.meta.original.extension == "jpg"
        assert result.message.type is MessageType.ATTACHMENT

    def test_image_with_unknown_extension_is_degraded(
        self, service: AttachmentService, caplog: pytest.LogCaptureFixture
    ):
        with caplog.at_level(logging.WARNING):
            result = upload(service, "picture.heic", image_bytes("PNG"))

        assert result.degraded
        assert result.preview.status is PreviewStatus.FAILED
        assert result.message.type is MessageType.INLINE_IMAGE
        assert result.attachment.preview_url == ""
        assert result.attachment.meta.preview is None
        assert "not generated" in caplog.text

    def test_persisted_attachment_matches_returned(self, service: AttachmentService):
        attachment = upload(service, "wide.png", image_bytes("PNG", size=(900, 10))).attachment

        found = service.find_by_id(attachment.id)

        assert found == attachment
        assert service.find_by_id(attachment.id) == found

    def test_find_by_message_ids(self, service: AttachmentService):
        first = upload(service, "a.pdf", PDF_CONTENT)
        second = upload(service, "b.pdf", PDF_CONTENT)

        found = service.find_by_message_ids(first.message.id, second.message.id)

        assert {(item.message_id, item.attachment.id) for item in found} == {
            (first.message.id, first.attachment.id),
            (second.message.id, second.attachment.id),
        }

    def test_event_is_published_after_commit(
        self, service: AttachmentService, db: Json, published: list
    ):
        seen_in_db = []
        service.events.add_notifier(
            lambda message: seen_in_db.append(db.find_message_by_id(message.id))
        )

        result = upload(service, "report.pdf", PDF_CONTENT)

        assert published == [result.message]
        event = published[0]
        assert event.attachment == result.attachment
        assert event.user is not None
        assert event.user.id == service.identity
        assert len(seen_in_db) == 1
        assert result.notification is not None
        assert result.notification.total_notifiers == 2
        assert result.notification.notifiers_with_attachment == 2

    def test_blob_is_saved_before_record(self, db: Json, events: EventService):
        calls = []
        store = MagicMock(spec=MemoryStore)
        store.original_path.return_value = "attachments/original/1000.pdf"
        store.save.side_effect = lambda path, stream: calls.append("save")
        service = AttachmentService(store, db, events, CountingIds(), identity=42)

        def insert(attachment):
            calls.append("insert")
            return attachment

        with patch.object(db, "create_attachment", side_effect=insert):
            upload(service, "report.pdf", PDF_CONTENT)

        assert calls == ["save", "insert"]


class TestCreateFailures:
    def test_without_store(self, db: Json, events: EventService):
        service = AttachmentService(None, db, events, CountingIds(), identity=42)

        with pytest.raises(ConfigurationError, match="store handler not set"):
            upload(service, "report.pdf", PDF_CONTENT)

        assert db.data["attachments"] == {}

    def test_empty_upload(self, service: AttachmentService, store: MemoryStore, db: Json):
        with pytest.raises(StorageError):
            upload(service, "empty.txt", b"")

        assert store.blobs == {}
        assert db.data["attachments"] == {}

    def test_store_failure(
        self, service: AttachmentService, store: MemoryStore, db: Json, published: list
    ):
        with (
            patch.object(store, "save", side_effect=StorageError("disk full")),
            pytest.raises(StorageError, match="disk full"),
        ):
            upload(service, "report.pdf", PDF_CONTENT)

        assert db.data["attachments"] == {}
        assert db.data["messages"] == {}
        assert published == []

    def test_transaction_rolls_back(
        self, service: AttachmentService, store: MemoryStore, db: Json, published: list
    ):
        with (
            patch.object(db, "create_message", side_effect=RuntimeError("insert failed")),
            pytest.raises(TransactionError) as exc_info,
        ):
            upload(service, "report.pdf", PDF_CONTENT)

        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert db.data["attachments"] == {}
        assert db.data["message_attachment"] == []
        assert published == []
        # blobs written before the transaction are kept
        assert "attachments/original/1000.pdf" in store.blobs

    def test_unknown_author_rolls_back(self, store: MemoryStore, db: Json, events: EventService):
        service = AttachmentService(store, db, events, CountingIds(), identity=999)

        with pytest.raises(TransactionError) as exc_info:
            upload(service, "report.pdf", PDF_CONTENT)

        assert isinstance(exc_info.value.__cause__, UserNotFoundError)
        assert db.data["attachments"] == {}
        assert db.data["messages"] == {}
        assert db.data["message_attachment"] == []

    def test_upload_reports_notifier_failure(
        self, service: AttachmentService, db: Json, caplog: pytest.LogCaptureFixture
    ):
        def broken(message):
            raise RuntimeError("websocket hub down")

        service.events.add_notifier(broken)

        with caplog.at_level(logging.ERROR):
            result = upload(service, "report.pdf", PDF_CONTENT)

        assert result.notification is None
        assert isinstance(result.notification_error, RuntimeError)
        assert result.degraded
        assert db.find_attachment_by_id(result.attachment.id) == result.attachment
        assert "Could not publish message" in caplog.text

    def test_create_raises_after_commit_when_notifier_fails(
        self, service: AttachmentService, db: Json
    ):
        def broken(message):
            raise RuntimeError("websocket hub down")

        service.events.add_notifier(broken)

        with pytest.raises(PublishError, match="could not be published") as exc_info:
            service.create(CHANNEL_ID, "report.pdf", len(PDF_CONTENT), io.BytesIO(PDF_CONTENT))

        error = exc_info.value
        assert isinstance(error.__cause__, RuntimeError)
        assert db.find_attachment_by_id(error.attachment.id) == error.attachment
        assert db.find_message_by_id(error.message.id).message == "report.pdf"
        assert list(db.iter_bindings()) == [(error.attachment.id, error.message.id)]


class TestLookups:
    def test_find_missing(self, service: AttachmentService):
        with pytest.raises(AttachmentNotFoundError):
            service.find_by_id(123)

    def test_delete_hides_attachment(self, service: AttachmentService):
        result = upload(service, "report.pdf", PDF_CONTENT)

        service.delete_by_id(result.attachment.id)

        with pytest.raises(AttachmentNotFoundError):
            service.find_by_id(result.attachment.id)
        assert service.find_by_message_ids(result.message.id) == []

    def test_open_original_and_preview(self, service: AttachmentService):
        content = image_bytes("PNG", size=(20, 20))
        attachment = upload(service, "tiny.png", content).attachment

        original = service.open_original(attachment)
        preview = service.open_preview(attachment)

        assert original is not None
        assert original.read() == content
        assert preview is not None
        assert preview.read()[:3] == b"\xff\xd8\xff"

    def test_open_without_urls(self, service: AttachmentService):
        attachment = Attachment(id=1)

        assert service.open_original(attachment) is None
        assert service.open_preview(attachment) is None

    def test_open_missing_blob(self, service: AttachmentService):
        attachment = Attachment(id=1, url="attachments/original/1.pdf")

        with pytest.raises(BlobNotFoundError):
            service.open_original(attachment)

    def test_open_without_store(self, db: Json, events: EventService):
        service = AttachmentService(None, db, events, CountingIds())

        with pytest.raises(ConfigurationError):
            service.open_original(Attachment(id=1, url="attachments/original/1.pdf"))

    def test_with_identity_returns_bound_copy(self, service: AttachmentService):
        other = service.with_identity(77)

        assert other.identity == 77
        assert service.identity != 77
        assert other.store is service.store
        assert other.db is service.db
