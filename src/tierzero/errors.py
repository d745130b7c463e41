"""
Error taxonomy for the offline layer.

Only QueuePersistError is meant to reach callers of the public facade; every
other error is recovered where it is raised or one level above.
"""


class TierZeroError(RuntimeError):
    """Base class for all offline-layer errors."""


class ExtractionError(TierZeroError):
    """Input could not be turned into text; the extractor falls back to a zero vector."""


class StoreError(TierZeroError):
    """A durable store backend operation failed."""


class CacheIOError(StoreError):
    """The result cache could not read or write its store."""


class QueuePersistError(StoreError):
    """An operation could not be durably written to the sync queue."""


class TransportError(TierZeroError):
    """A delivery attempt failed and may succeed on a later pass."""


class PayloadError(TierZeroError):
    """A queued payload is structurally invalid and will never be accepted."""
