"""Store collaborator: interface plus in-memory and SQLite implementations."""

from .base import Store, call_store
from .memory import InMemoryStore
from .sqlite import SQLiteStore
