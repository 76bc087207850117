from .store_base import AccountingStoreBase
from .sqlite_store import SQLiteAccountingStore
from ...core.config import settings

_default_store: SQLiteAccountingStore | None = None


def get_store() -> AccountingStoreBase:
    """Shared store instance (in production, configure DATABASE_PATH)"""
    global _default_store
    if _default_store is None:
        _default_store = SQLiteAccountingStore(settings.database_path)
    return _default_store


__all__ = ["AccountingStoreBase", "SQLiteAccountingStore", "get_store"]
