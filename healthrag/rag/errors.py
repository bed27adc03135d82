"""Exceptions raised inside the retrieval core.

None of these cross the public boundary of ``KnowledgeBase``; they are caught
per record, per chunk or per call and turned into counts and messages.
"""


class RagError(Exception):
    """Base class for retrieval core errors."""


class EmbeddingError(RagError):
    """The embedding provider failed, timed out or returned an empty vector."""


class DimensionMismatchError(RagError, ValueError):
    """An embedding's length differs from the index dimensionality."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}"
        )
