import importlib
from types import ModuleType
from typing import Any

from chatfiles.db.db import DB
from chatfiles.errors import ConfigurationError
from chatfiles.ids import IdGenerator


def get_db_module(db_type: str) -> ModuleType:
    """Load the module implementing a database backend.

    :param db_type: backend name, e.g. ``json_db``
    :return: module exposing ``db_config_type``, ``get_db`` and ``db_from_config``
    """
    try:
        return importlib.import_module(f"chatfiles.db.{db_type.lower()}")
    except ModuleNotFoundError as err:
        raise ConfigurationError(f"Unknown database type '{db_type}'") from err


def get_db(config: Any, id_generator: IdGenerator | None = None) -> DB:
    """Build a database from validated or raw configuration.

    ``id_generator`` assigns ids to rows created without one; backends fall
    back to their own sequence when it is omitted.
    """
    if isinstance(config, dict):
        return get_db_module(config["TYPE"]).get_db(config, id_generator)
    return get_db_module(config.type).db_from_config(config, id_generator)
