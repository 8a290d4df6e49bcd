from abc import ABC, abstractmethod
from typing import BinaryIO

from pydantic import BaseModel, ConfigDict, Field


class StoreConfig(BaseModel):
    """Base configuration shared by all content store backends."""

    model_config = ConfigDict(frozen=True)

    type: str = Field(alias="TYPE")


class Store(ABC):
    """Addressable blob storage for attachment originals and previews.

    Paths are relative, slash-separated keys such as
    ``attachments/original/123.jpg``.
    """

    def __init__(self, namespace: str = "attachments") -> None:
        self.namespace = namespace.strip("/")

    def original_path(self, attachment_id: int, extension: str) -> str:
        return self._path("original", attachment_id, extension)

    def preview_path(self, attachment_id: int, extension: str) -> str:
        return self._path("preview", attachment_id, extension)

    def _path(self, kind: str, attachment_id: int, extension: str) -> str:
        filename = f"{attachment_id}.{extension}" if extension else str(attachment_id)
        return f"{self.namespace}/{kind}/{filename}"

    @abstractmethod
    def open(self, path: str) -> BinaryIO:
        """Open a stored blob for reading.

        Raises:
            BlobNotFoundError: If nothing is stored under the path.
        """

    @abstractmethod
    def save(self, path: str, stream: BinaryIO) -> None:
        """Store everything readable from ``stream`` under ``path``.

        Raises:
            StorageError: If the blob cannot be written.
        """
