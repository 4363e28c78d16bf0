"""RAG (Retrieval-Augmented Generation) pipeline for Notes Buddy.

This package grounds note chat in note content: note text is chunked,
embedded and stored per note, and chat questions retrieve the nearest chunks
as prompt context.

Core Components:
- config: Configuration management for RAG features
- text_chunker: Sentence-aligned chunking by word budget
- embedding_service: Text embedding generation using sentence-transformers
- vector_store: ChromaDB wrapper for chunk storage and similarity search
- context_assembler: Retrieval sessions and context block assembly
- pipeline_stage: Note indexing with per-note generation guarding
- parallel_embedder: Bounded concurrent chunk embedding
- index_tracker: Track indexed note content for incremental updates
"""

from .config import RAGConfig, load_config_from_env
from .context_assembler import (
    CONTEXT_CLOSE_TAG,
    CONTEXT_OPEN_TAG,
    EMPTY_CONTEXT_BLOCK,
    ContextAssembler,
    RetrievalSession,
    SessionState,
    TurnContext,
    format_context_block,
)
from .embedding_service import EmbeddingService, cosine_similarity
from .errors import (
    ChunkEmbedFailure,
    DimensionMismatch,
    EmbeddingError,
    EmbeddingUnavailable,
    RAGError,
    StaleGenerationRace,
    StoreError,
    StoreUnavailable,
)
from .index_tracker import IndexTracker
from .parallel_embedder import ChunkEmbedding, ParallelChunkEmbedder
from .pipeline_stage import RAGPipelineStage
from .text_chunker import TextChunker, chunk_text
from .types import Chunk, Embedding, EmbeddingRecord, ProcessResult, SearchResult
from .vector_store import VectorStore

__all__ = [
    "RAGConfig",
    "load_config_from_env",
    "CONTEXT_OPEN_TAG",
    "CONTEXT_CLOSE_TAG",
    "EMPTY_CONTEXT_BLOCK",
    "ContextAssembler",
    "RetrievalSession",
    "SessionState",
    "TurnContext",
    "format_context_block",
    "EmbeddingService",
    "cosine_similarity",
    "RAGError",
    "EmbeddingUnavailable",
    "EmbeddingError",
    "DimensionMismatch",
    "StoreUnavailable",
    "StoreError",
    "ChunkEmbedFailure",
    "StaleGenerationRace",
    "IndexTracker",
    "ChunkEmbedding",
    "ParallelChunkEmbedder",
    "RAGPipelineStage",
    "TextChunker",
    "chunk_text",
    "Chunk",
    "Embedding",
    "EmbeddingRecord",
    "ProcessResult",
    "SearchResult",
    "VectorStore",
]
