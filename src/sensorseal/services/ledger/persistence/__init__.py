from .sqlite import AccountExistsError, AccountRow, SQLitePersistence

__all__ = ["AccountExistsError", "AccountRow", "SQLitePersistence"]
