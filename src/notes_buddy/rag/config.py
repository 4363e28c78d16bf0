"""Configuration management for the note retrieval pipeline.

This module provides the configuration dataclass and environment variable
loading for the chunker, embedding model, vector store and chat context.
"""

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


DEFAULT_MODEL_NAME = "BAAI/bge-small-en-v1.5"
DEFAULT_EMBEDDING_DIM = 384


@dataclass
class RAGConfig:
    """Configuration for the RAG (Retrieval-Augmented Generation) pipeline.

    Attributes:
        enabled: Whether note indexing runs (process_note skips when False)
        model_name: Name of the sentence-transformer model to use
        model_cache_dir: Directory to cache downloaded models
        device: Compute device for the model (None to auto-detect)
        embedding_dim: Fixed output dimension of the embedding model
        vector_store_dir: Directory to persist ChromaDB data
        collection_name: Name of the ChromaDB collection
        target_word_count: Word budget per chunk
        top_k: Number of chunks retrieved per chat turn
        embed_workers: Concurrent chunk embeddings during note indexing
        prompt_format: Prompt serializer for the completion model
        index_tracker_file: JSON file recording indexed note content
    """

    enabled: bool = True
    model_name: str = DEFAULT_MODEL_NAME
    model_cache_dir: Path = Path.home() / ".cache" / "torch" / "sentence_transformers"
    device: Optional[str] = None
    embedding_dim: int = DEFAULT_EMBEDDING_DIM
    vector_store_dir: Path = Path(".chroma_db")
    collection_name: str = "note_embeddings"
    target_word_count: int = 300
    top_k: int = 5
    embed_workers: int = 1
    prompt_format: str = "chatml"
    index_tracker_file: Path = Path(".rag_index_tracker.json")

    def __post_init__(self):
        """Ensure Path objects are properly initialized."""
        if not isinstance(self.model_cache_dir, Path):
            self.model_cache_dir = Path(self.model_cache_dir)
        if not isinstance(self.vector_store_dir, Path):
            self.vector_store_dir = Path(self.vector_store_dir)
        if not isinstance(self.index_tracker_file, Path):
            self.index_tracker_file = Path(self.index_tracker_file)


def load_config_from_env() -> RAGConfig:
    """Load RAG configuration from environment variables.

    A ``.env`` file in the working directory is read first.

    Environment variables:
        RAG_ENABLED: Enable/disable note indexing (default: true)
        RAG_MODEL: Sentence-transformer model name (default: BAAI/bge-small-en-v1.5)
        RAG_MODEL_CACHE_DIR: Model cache directory path
        RAG_DEVICE: Compute device (cpu, cuda, mps; default: auto-detect)
        RAG_EMBEDDING_DIM: Embedding dimension (default: 384)
        RAG_VECTOR_STORE_DIR: ChromaDB persistence directory
        RAG_COLLECTION_NAME: ChromaDB collection name (default: note_embeddings)
        RAG_TARGET_WORD_COUNT: Words per chunk (default: 300)
        RAG_TOP_K: Chunks retrieved per chat turn (default: 5)
        RAG_EMBED_WORKERS: Concurrent chunk embeddings (default: 1)
        RAG_PROMPT_FORMAT: Prompt serializer, chatml or llama3 (default: chatml)
        RAG_INDEX_TRACKER_FILE: Index tracker JSON file

        # Legacy environment variables (for backwards compatibility)
        CHROMA_PERSIST_DIR: Alias for RAG_VECTOR_STORE_DIR
        MODEL_CACHE_DIR: Alias for RAG_MODEL_CACHE_DIR

    Returns:
        RAGConfig: Configuration object with values from environment
    """
    load_dotenv()

    def str_to_bool(value: Optional[str], default: bool = True) -> bool:
        """Convert string to boolean, handling various formats."""
        if value is None:
            return default
        return value.lower() in ('true', '1', 'yes', 'on', 'enabled')

    def str_to_int(value: Optional[str], default: int) -> int:
        """Convert string to int with error handling."""
        if value is None:
            return default
        try:
            return int(value)
        except ValueError:
            return default

    enabled = str_to_bool(os.getenv('RAG_ENABLED'), default=True)
    model_name = os.getenv('RAG_MODEL', DEFAULT_MODEL_NAME)
    device = os.getenv('RAG_DEVICE') or None

    # Model cache directory (with legacy support)
    model_cache_dir_str = os.getenv('RAG_MODEL_CACHE_DIR') or os.getenv('MODEL_CACHE_DIR')
    if model_cache_dir_str:
        model_cache_dir = Path(model_cache_dir_str)
    else:
        model_cache_dir = Path.home() / ".cache" / "torch" / "sentence_transformers"

    # Vector store directory (with legacy support)
    vector_store_dir_str = os.getenv('RAG_VECTOR_STORE_DIR') or os.getenv('CHROMA_PERSIST_DIR')
    if vector_store_dir_str:
        vector_store_dir = Path(vector_store_dir_str)
    else:
        vector_store_dir = Path(".chroma_db")

    collection_name = os.getenv('RAG_COLLECTION_NAME', 'note_embeddings')
    embedding_dim = str_to_int(os.getenv('RAG_EMBEDDING_DIM'), DEFAULT_EMBEDDING_DIM)
    target_word_count = str_to_int(os.getenv('RAG_TARGET_WORD_COUNT'), 300)
    top_k = str_to_int(os.getenv('RAG_TOP_K'), 5)
    embed_workers = str_to_int(os.getenv('RAG_EMBED_WORKERS'), 1)
    prompt_format = os.getenv('RAG_PROMPT_FORMAT', 'chatml').lower()

    index_tracker_str = os.getenv('RAG_INDEX_TRACKER_FILE')
    if index_tracker_str:
        index_tracker_file = Path(index_tracker_str)
    else:
        index_tracker_file = Path(".rag_index_tracker.json")

    return RAGConfig(
        enabled=enabled,
        model_name=model_name,
        model_cache_dir=model_cache_dir,
        device=device,
        embedding_dim=embedding_dim,
        vector_store_dir=vector_store_dir,
        collection_name=collection_name,
        target_word_count=target_word_count,
        top_k=top_k,
        embed_workers=embed_workers,
        prompt_format=prompt_format,
        index_tracker_file=index_tracker_file,
    )
