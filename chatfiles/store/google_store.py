"""Google Cloud Storage-based content store."""

import io
import logging
from typing import Any, BinaryIO

from google.api_core.exceptions import GoogleAPIError, NotFound
from google.cloud.storage import Client
from pydantic import Field

from chatfiles.errors import BlobNotFoundError, StorageError
from chatfiles.store.store import Store, StoreConfig

logger = logging.getLogger(__name__)


def store_config_type() -> type["GoogleStoreConfig"]:
    """Return the configuration class for the Google Cloud Storage store."""
    return GoogleStoreConfig


class GoogleStoreConfig(StoreConfig):
    """Configuration for a Google Cloud Storage bucket."""

    bucket_name: str = Field(alias="BUCKET_NAME")
    namespace: str = Field(default="attachments", alias="NAMESPACE")


def store_from_config(config: GoogleStoreConfig) -> "GoogleStore":
    """Create a Google Cloud Storage store instance from configuration."""
    return GoogleStore(config.bucket_name, config.namespace)


def get_store(config: dict[str, Any]) -> "GoogleStore":
    """Get a Google Cloud Storage store instance from raw configuration."""
    return store_from_config(GoogleStoreConfig.model_validate(config))


def get_bucket(bucket_name: str) -> Any:
    """Retrieve a bucket handle from Google Cloud Storage."""
    storage_client = Client()
    return storage_client.bucket(bucket_name)


class GoogleStore(Store):
    """Stores blobs as objects in a Google Cloud Storage bucket."""

    def __init__(self, bucket_name: str, namespace: str = "attachments") -> None:
        super().__init__(namespace)
        self.bucket_name = bucket_name
        self.bucket = get_bucket(bucket_name)

    def open(self, path: str) -> BinaryIO:
        blob = self.bucket.blob(path)
        try:
            content = blob.download_as_bytes()
        except NotFound:
            raise BlobNotFoundError.for_path(path) from None
        except GoogleAPIError as err:
            raise StorageError(f"Could not download '{path}'") from err
        return io.BytesIO(content)

    def save(self, path: str, stream: BinaryIO) -> None:
        blob = self.bucket.blob(path)
        try:
            blob.upload_from_file(stream)
        except (GoogleAPIError, OSError, ValueError) as err:
            logger.exception("Could not upload blob '%s' to bucket %s", path, self.bucket_name)
            raise StorageError(f"Could not save '{path}'") from err
