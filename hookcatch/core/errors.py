"""Error types raised by the event store."""


class PersistenceError(Exception):
    """The underlying storage read or write failed; the operation did not complete."""
