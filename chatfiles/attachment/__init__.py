"""Attachment ingestion: content sniffing, previews and the upload pipeline.

Example:
    >>> from chatfiles.attachment import AttachmentService
    >>> service = AttachmentService(store=store, db=db, events=events,
    ...                             id_generator=ids, identity=current_user_id)
    >>> with open("holiday.jpg", "rb") as f:
    ...     attachment = service.create(channel_id, "holiday.jpg", size, f)
"""

from chatfiles.attachment.mime_sniffing import SNIFF_LENGTH, detect_mimetype, sniff_mimetype
from chatfiles.attachment.preview import (
    ImageFormat,
    PreviewFormat,
    PreviewGenerator,
    PreviewOutcome,
    PreviewStatus,
    format_from_extension,
    preview_size,
)
from chatfiles.attachment.service import AttachmentService, extract_extension

__all__ = [
    "AttachmentService",
    "ImageFormat",
    "PreviewFormat",
    "PreviewGenerator",
    "PreviewOutcome",
    "PreviewStatus",
    "SNIFF_LENGTH",
    "detect_mimetype",
    "extract_extension",
    "format_from_extension",
    "preview_size",
    "sniff_mimetype",
]
