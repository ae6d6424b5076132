"""Exceptions raised by querycache."""


class CacheError(Exception):
    """Base class for all querycache errors."""


class PreconditionError(CacheError, ValueError):
    """Cache options failed validation before reaching the coordinator."""


class SerializationError(CacheError):
    """A query's identity could not be turned into a cache key."""


class StoreError(CacheError):
    """The backing store failed to complete an operation."""


class StoreReadError(StoreError):
    """The backing store could not be read."""


class StoreWriteError(StoreError):
    """The backing store could not be written or invalidated."""
