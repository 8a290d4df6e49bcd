from chatfiles.store.store import Store, StoreConfig

__all__ = ["Store", "StoreConfig"]
