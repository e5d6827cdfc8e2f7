"""
Session persistence backends.
"""

from .store import (
    InMemoryStore,
    JsonlStore,
    PersistenceFailure,
    SessionStore,
    safe_write,
)

__all__ = [
    "InMemoryStore",
    "JsonlStore",
    "PersistenceFailure",
    "SessionStore",
    "safe_write",
]
