"""Remote collection service for cravelog clients."""

from .app import create_app
from .store import CollectionStore

__all__ = ["CollectionStore", "create_app"]
