"""Synchronization between the remote and local record stores.

The coordinator keeps one observable, newest-first record list backed by
either the remote store or the local fallback store.
"""

from .coordinator import Authority, SyncCoordinator, SyncError, SyncErrorKind

__all__ = ["Authority", "SyncCoordinator", "SyncError", "SyncErrorKind"]
