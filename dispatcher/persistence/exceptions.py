"""Persistence layer exceptions.

Every error raised by the repositories derives from PersistenceError, so the
dispatcher and the API can handle storage failures in one place.
"""


class PersistenceError(Exception):
    """Base class for storage failures."""


class DatabaseConnectionError(PersistenceError):
    """The engine could not be created or the database is unreachable."""


class RecordNotFoundError(PersistenceError):
    """An operation addressed a queue entry that does not exist.

    Lookups that may legitimately miss return None instead.
    """


class DataIntegrityError(PersistenceError):
    """A write violated a constraint (duplicate id, unknown recipient...)."""
