"""storage package - session/trial persistence backends."""

from storage.base import TrialStore
from storage.json_store import JsonSessionStore
from storage.memory import InMemoryTrialStore

__all__ = ["TrialStore", "InMemoryTrialStore", "JsonSessionStore"]
