import importlib
from types import ModuleType
from typing import Any

from chatfiles.errors import ConfigurationError
from chatfiles.store.store import Store


def get_store_module(store_type: str) -> ModuleType:
    """Load the module implementing a content store backend.

    :param store_type: backend name, e.g. ``local_store``
    :return: module exposing ``store_config_type``, ``get_store`` and ``store_from_config``
    """
    try:
        return importlib.import_module(f"chatfiles.store.{store_type.lower()}")
    except ModuleNotFoundError as err:
        raise ConfigurationError(f"Unknown store type '{store_type}'") from err


def get_store(config: Any) -> Store:
    """Build a content store from validated or raw configuration."""
    if isinstance(config, dict):
        return get_store_module(config["TYPE"]).get_store(config)
    return get_store_module(config.type).store_from_config(config)
