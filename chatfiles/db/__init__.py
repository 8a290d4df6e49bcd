from chatfiles.db.db import DB, DBConfig

__all__ = ["DB", "DBConfig"]
