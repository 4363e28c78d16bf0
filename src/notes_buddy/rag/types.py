"""
Common data types for RAG modules.

These types are shared by the chunker, embedding service, vector store,
context assembler and indexing pipeline.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np

from .errors import DimensionMismatch


@dataclass(frozen=True)
class Chunk:
    """A sentence-aligned segment of a note."""

    text: str
    source_note_id: str
    sequence_index: int

    def __post_init__(self):
        """Validate chunk."""
        if not self.text or not self.text.strip():
            raise ValueError("text cannot be empty")
        if self.sequence_index < 0:
            raise ValueError("sequence_index must be non-negative")


@dataclass
class Embedding:
    """A fixed-dimension float32 embedding vector."""

    vector: np.ndarray

    def __post_init__(self):
        self.vector = np.asarray(self.vector, dtype=np.float32).reshape(-1)
        if self.vector.size == 0:
            raise ValueError("Embedding vector cannot be empty")

    @property
    def dimension(self) -> int:
        return int(self.vector.shape[0])

    def check_dimension(self, expected: int) -> None:
        """Raise DimensionMismatch unless this embedding has ``expected`` entries."""
        if self.dimension != expected:
            raise DimensionMismatch(expected, self.dimension)

    def tolist(self):
        return self.vector.tolist()

    def __len__(self) -> int:
        return self.dimension


@dataclass
class EmbeddingRecord:
    """A persisted (note, chunk text, embedding) triple."""

    id: str
    note_id: str
    chunk_text: str
    embedding: Embedding
    sequence_index: int = 0
    generation: int = 0


@dataclass
class SearchResult:
    """Result from a similarity search.

    Attributes:
        note_id: Note the chunk belongs to
        chunk_text: Text content of the chunk
        distance: Cosine distance from the query (lower is more similar)
        record_id: Store identifier of the record
        similarity_score: Cosine similarity (1 - distance)
    """

    note_id: str
    chunk_text: str
    distance: float
    record_id: str = ""
    similarity_score: float = field(init=False)

    def __post_init__(self):
        self.similarity_score = 1.0 - self.distance


@dataclass
class ProcessResult:
    """Result from indexing one note."""

    success: bool
    note_id: str
    generation: int = 0
    chunks_created: int = 0
    embeddings_stored: int = 0
    chunks_failed: int = 0
    records_deleted: int = 0
    processing_time_seconds: float = 0.0
    error_message: Optional[str] = None
    skipped: bool = False
    skip_reason: Optional[str] = None
    superseded: bool = False

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for logging."""
        return {
            'success': self.success,
            'note_id': self.note_id,
            'generation': self.generation,
            'chunks_created': self.chunks_created,
            'embeddings_stored': self.embeddings_stored,
            'chunks_failed': self.chunks_failed,
            'records_deleted': self.records_deleted,
            'processing_time_seconds': self.processing_time_seconds,
            'error_message': self.error_message,
            'skipped': self.skipped,
            'skip_reason': self.skip_reason,
            'superseded': self.superseded,
        }
