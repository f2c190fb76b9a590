"""Errors raised by persistence implementations."""


class PersistenceError(Exception):
    """A settings or audit record read/write failed.

    Raised by repository implementations in place of driver-specific errors
    so callers do not depend on the storage backend.
    """
