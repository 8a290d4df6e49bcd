import json
import os
import tempfile

from pydantic import Field

from chatfiles.db.db import DBConfig
from chatfiles.db.json_db import Json
from chatfiles.ids import IdGenerator


def db_config_type():
    return JsonFileDbConfig


class JsonFileDbConfig(DBConfig):
    path: str = Field(alias="PATH")


def get_db(config, id_generator: IdGenerator | None = None):
    return db_from_config(JsonFileDbConfig.model_validate(config), id_generator)


def db_from_config(config: JsonFileDbConfig, id_generator: IdGenerator | None = None):
    return JsonFile(config.path, id_generator)


def _load(path: str) -> dict:
    if not os.path.exists(path):
        return {}
    with open(path) as json_file:
        return json.load(json_file)


class JsonFile(Json):
    """JSON database persisted to a file after every committed write.

    A missing file is treated as an empty database and created on the first
    commit. The file is replaced atomically, so a crash mid-write leaves the
    previous version in place. A failed write rolls the transaction back.
    """

    def __init__(self, path: str, id_generator: IdGenerator | None = None):
        self.data_file_path = path
        super().__init__(_load(path), id_generator)
        self.module_name = "json_file_db"
        self.db_name = "JsonFileDb"

    def _commit(self) -> None:
        directory = os.path.dirname(os.path.abspath(self.data_file_path))
        tmp_name = None
        try:
            with tempfile.NamedTemporaryFile("w", dir=directory, delete=False) as tmp:
                tmp_name = tmp.name
                json.dump(self.data, tmp)
            os.replace(tmp_name, self.data_file_path)
        except Exception:
            if tmp_name is not None and os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
