from .state import SessionState, UnknownItemError, open_session
from .store import KeyValueStore, MemoryKeyValueStore, SqliteKeyValueStore, StoreError

__all__ = [
    "SessionState",
    "UnknownItemError",
    "open_session",
    "KeyValueStore",
    "MemoryKeyValueStore",
    "SqliteKeyValueStore",
    "StoreError",
]
