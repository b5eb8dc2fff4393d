"""Error taxonomy for the advisory context engine.

Only PersistenceError is meant to reach a caller: fetch and embedding
failures are recovered where they happen (fallback snapshot, empty
retrieval).
"""


class AdvisoryError(Exception):
    """Base class for engine errors."""


class FetchError(AdvisoryError):
    """Market feed unreachable, timed out, or returned an unusable payload."""


class EmbeddingError(AdvisoryError):
    """Embedding capability failed or returned an unusable vector."""


class PersistenceError(AdvisoryError):
    """A turn could not be written to the conversation log."""


class GenerationError(AdvisoryError):
    """The text-generation boundary failed to produce a reply."""
