"""In-process content store, mostly useful for tests and embedded setups."""

import io
from typing import BinaryIO

from pydantic import Field

from chatfiles.errors import BlobNotFoundError, StorageError
from chatfiles.store.store import Store, StoreConfig


def store_config_type():
    """Return the configuration class for the in-memory store."""
    return MemoryStoreConfig


class MemoryStoreConfig(StoreConfig):
    namespace: str = Field(default="attachments", alias="NAMESPACE")


def get_store(config):
    """Get an in-memory store instance from raw configuration."""
    return store_from_config(MemoryStoreConfig.model_validate(config))


def store_from_config(config: MemoryStoreConfig):
    """Create an in-memory store instance from configuration."""
    return MemoryStore(config.namespace)


class MemoryStore(Store):
    """Keeps blobs in a dictionary keyed by path."""

    def __init__(self, namespace: str = "attachments") -> None:
        super().__init__(namespace)
        self.blobs: dict[str, bytes] = {}

    def open(self, path: str) -> BinaryIO:
        if path not in self.blobs:
            raise BlobNotFoundError.for_path(path)
        return io.BytesIO(self.blobs[path])

    def save(self, path: str, stream: BinaryIO) -> None:
        try:
            self.blobs[path] = stream.read()
        except (OSError, ValueError) as err:
            raise StorageError(f"Could not read data for '{path}'") from err
