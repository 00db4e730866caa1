"""Storage adapters for log records."""

from .http_remote import HttpRemoteStore
from .local_store import LocalStore
from .remote_store import InMemoryRemoteStore, RemoteStore

__all__ = ["HttpRemoteStore", "InMemoryRemoteStore", "LocalStore", "RemoteStore"]
