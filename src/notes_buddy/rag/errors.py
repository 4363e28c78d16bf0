"""Error types raised by the RAG pipeline.

Whole-pipeline failures (backend or store not initialized) propagate to the
caller. Per-chunk failures during note indexing are logged and skipped.
"""


class RAGError(Exception):
    """Base class for all RAG pipeline errors."""


class EmbeddingUnavailable(RAGError):
    """The embedding backend has not been loaded.

    Callers must call ``EmbeddingService.load()`` before retrying. Never
    retried internally.
    """


class EmbeddingError(RAGError):
    """The embedding backend failed while encoding text."""


class DimensionMismatch(RAGError, ValueError):
    """Two embeddings of different length were compared or stored together."""

    def __init__(self, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(
            f"Embedding dimension mismatch: expected {expected}, got {actual}"
        )


class StoreUnavailable(RAGError):
    """The vector store has not been opened."""


class StoreError(RAGError):
    """The persistence layer failed while reading or writing records."""


class ChunkEmbedFailure(RAGError):
    """A single chunk could not be embedded or stored during note indexing."""

    def __init__(self, note_id: str, sequence_index: int, cause: Exception):
        self.note_id = note_id
        self.sequence_index = sequence_index
        self.cause = cause
        super().__init__(
            f"Chunk {sequence_index} of note {note_id} failed: {cause}"
        )


class StaleGenerationRace(RAGError):
    """An indexing run was superseded by a newer run for the same note."""

    def __init__(self, note_id: str, generation: int, current: int):
        self.note_id = note_id
        self.generation = generation
        self.current = current
        super().__init__(
            f"Generation {generation} of note {note_id} superseded by {current}"
        )
