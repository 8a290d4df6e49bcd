import datetime
from enum import Enum

from pydantic import BaseModel, Field

IMAGE_MIMETYPE_PREFIX = "image/"


class FileMeta(BaseModel):
    """Describes one stored blob of an attachment (the original or its preview).

    Attributes:
        extension: File extension without the leading dot (e.g. "jpg")
        mimetype: Detected or derived MIME type
        size: Size of the blob in bytes
        width: Image width in pixels, 0 when unknown or not an image
        height: Image height in pixels, 0 when unknown or not an image
        animated: Whether the image has more than one frame or loops
    """

    extension: str = ""
    mimetype: str = ""
    size: int = 0
    width: int = 0
    height: int = 0
    animated: bool = False


class AttachmentMeta(BaseModel):
    """Metadata of the original upload and of the generated preview."""

    original: FileMeta = Field(default_factory=FileMeta)
    preview: FileMeta | None = None

    def set_original_image_meta(self, width: int, height: int, animated: bool) -> FileMeta:
        self.original.width = width
        self.original.height = height
        self.original.animated = animated
        return self.original

    def set_preview_image_meta(self, width: int, height: int, animated: bool) -> FileMeta:
        if self.preview is None:
            self.preview = FileMeta()
        self.preview.width = width
        self.preview.height = height
        self.preview.animated = animated
        return self.preview


class Attachment(BaseModel):
    """A single uploaded file.

    Attributes:
        id: Unique 64-bit identifier, assigned before the blob is stored
        user_id: Identifier of the uploading user
        url: Store path of the original blob, empty until it is saved
        preview_url: Store path of the preview blob, empty without a preview
        name: Display name supplied by the uploader (trimmed)
        meta: Original and preview metadata
        created_at: Set by the repository on insert
        updated_at: Last modification time, if any
        deleted_at: Tombstone timestamp for soft-deleted attachments
    """

    id: int = 0
    user_id: int = 0
    url: str = ""
    preview_url: str = ""
    name: str = ""
    meta: AttachmentMeta = Field(default_factory=AttachmentMeta)
    created_at: datetime.datetime | None = None
    updated_at: datetime.datetime | None = None
    deleted_at: datetime.datetime | None = None

    @property
    def is_image(self) -> bool:
        return self.meta.original.mimetype.startswith(IMAGE_MIMETYPE_PREFIX)


class MessageAttachment(BaseModel):
    """An attachment together with the id of the message it is bound to."""

    message_id: int
    attachment: Attachment


class MessageType(str, Enum):
    PLAIN = ""
    INLINE_IMAGE = "inlineImage"
    ATTACHMENT = "attachment"


class User(BaseModel):
    """Represents the author of a message."""

    id: int
    username: str = ""
    email: str = ""
    name: str = ""


class Message(BaseModel):
    """A conversation entry.

    ``attachment`` and ``user`` are hydrated for outgoing events only and are
    never persisted.
    """

    id: int = 0
    channel_id: int = 0
    user_id: int = 0
    type: MessageType = MessageType.PLAIN
    message: str = ""
    created_at: datetime.datetime | None = None

    attachment: Attachment | None = Field(default=None, exclude=True)
    user: User | None = Field(default=None, exclude=True)
