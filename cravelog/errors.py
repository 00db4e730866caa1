"""Exceptions raised by the storage adapters."""


class CravelogError(Exception):
    """Base class for cravelog errors."""


class RemoteStoreError(CravelogError):
    """The remote collection could not be read or written."""


class RemoteSubscribeError(RemoteStoreError):
    """Opening or keeping a remote subscription failed."""


class RemoteWriteError(RemoteStoreError):
    """A remote write was rejected or never reached the store."""


class LocalStoreError(CravelogError):
    """The local store is corrupt or inaccessible."""
