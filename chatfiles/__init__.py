from chatfiles.attachment.service import AttachmentService, UploadResult
from chatfiles.chatfiles import create_service, create_service_from_yaml
from chatfiles.config import Config
from chatfiles.models import Attachment, Message, MessageType, User

__all__ = [
    "Attachment",
    "AttachmentService",
    "Config",
    "Message",
    "MessageType",
    "UploadResult",
    "User",
    "create_service",
    "create_service_from_yaml",
]
