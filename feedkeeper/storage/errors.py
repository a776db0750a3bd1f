"""Storage error types, kept distinct from fetch/normalization errors."""


class StorageError(Exception):
    """A read, write or delete against the feed store failed."""


class MigrationError(StorageError):
    """The schema could not be brought to the expected fingerprint.

    The store is left in an unknown state, so this is fatal at startup.
    """
