"""Filesystem-backed content store."""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO

from pydantic import Field

from chatfiles.errors import BlobNotFoundError, StorageError
from chatfiles.store.store import Store, StoreConfig

logger = logging.getLogger(__name__)


def store_config_type():
    """Return the configuration class for the local store."""
    return LocalStoreConfig


class LocalStoreConfig(StoreConfig):
    root: str = Field(alias="ROOT")
    namespace: str = Field(default="attachments", alias="NAMESPACE")


def get_store(config):
    """Get a local store instance from raw configuration."""
    local_store_config = LocalStoreConfig.model_validate(config)
    return store_from_config(local_store_config)


def store_from_config(config: LocalStoreConfig):
    """Create a local store instance from configuration."""
    return LocalStore(config.root, config.namespace)


class LocalStore(Store):
    """Stores blobs as files below a root directory.

    Writes go to a temporary file in the target directory first and are
    renamed into place, so readers never see a half-written blob.
    """

    def __init__(self, root: str | Path, namespace: str = "attachments") -> None:
        super().__init__(namespace)
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        full_path = (self.root / path).resolve()
        if not full_path.is_relative_to(self.root):
            raise StorageError(f"Path '{path}' points outside of the store root")
        return full_path

    def open(self, path: str) -> BinaryIO:
        full_path = self._resolve(path)
        try:
            return full_path.open("rb")
        except (FileNotFoundError, IsADirectoryError):
            raise BlobNotFoundError.for_path(path) from None
        except OSError as err:
            raise StorageError(f"Could not open '{path}'") from err

    def save(self, path: str, stream: BinaryIO) -> None:
        full_path = self._resolve(path)
        tmp_name = None
        try:
            full_path.parent.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile(
                "wb", dir=full_path.parent, prefix=".upload-", delete=False
            ) as tmp:
                tmp_name = tmp.name
                shutil.copyfileobj(stream, tmp)
            os.replace(tmp_name, full_path)
        except OSError as err:
            logger.exception("Could not save blob '%s'", path)
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise StorageError(f"Could not save '{path}'") from err
