"""
Pytest configuration and fixtures for Notes Buddy tests.
"""
import hashlib
import re
import sys
from pathlib import Path
from unittest.mock import patch

import numpy as np
import pytest

# Add src to path for imports
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root / "src"))

from notes_buddy.rag.embedding_service import EmbeddingService  # noqa: E402
from notes_buddy.rag.vector_store import VectorStore  # noqa: E402


TEST_EMBEDDING_DIM = 64


class HashingEncoder:
    """Deterministic stand-in for SentenceTransformer.

    Hashes lowercase words into a fixed number of buckets and L2-normalizes,
    so texts sharing words have high cosine similarity.
    """

    max_seq_length = 512

    def __init__(self, model_name=None, cache_folder=None, device=None, dim=TEST_EMBEDDING_DIM):
        self.model_name = model_name
        self.dim = dim

    def get_sentence_embedding_dimension(self):
        return self.dim

    def _vector(self, text):
        vec = np.zeros(self.dim, dtype=np.float32)
        for word in re.findall(r"[a-z0-9']+", text.lower()):
            bucket = int(hashlib.md5(word.encode()).hexdigest(), 16) % self.dim
            vec[bucket] += 1.0
        norm = np.linalg.norm(vec)
        if norm > 0:
            vec = vec / norm
        return vec

    def encode(self, texts, batch_size=32, convert_to_numpy=True, show_progress_bar=False):
        if isinstance(texts, str):
            return self._vector(texts)
        return np.stack([self._vector(t) for t in texts])


@pytest.fixture
def sample_note_text():
    """Note text from a short voice memo."""
    return "Buy milk. Call Alice about the project. Alice's deadline is Friday."


@pytest.fixture
def embedding_service():
    """Loaded embedding service backed by the hashing encoder."""
    with patch('notes_buddy.rag.embedding_service.SentenceTransformer', HashingEncoder):
        service = EmbeddingService(
            model_name="test-model",
            device="cpu",
            expected_dim=TEST_EMBEDDING_DIM,
        )
        service.load()
        yield service
        service.unload()


@pytest.fixture
def vector_store(tmp_path):
    """Open vector store persisted under a temporary directory."""
    store = VectorStore(
        persist_dir=str(tmp_path / "chroma"),
        collection_name="test_notes",
        embedding_dim=TEST_EMBEDDING_DIM,
    )
    store.open()
    yield store
    store.close()


@pytest.fixture(autouse=True)
def setup_test_environment(monkeypatch, tmp_path):
    """Keep tests away from real model caches and stores."""
    monkeypatch.setenv("RAG_VECTOR_STORE_DIR", str(tmp_path / "env_chroma"))
    monkeypatch.setenv("RAG_INDEX_TRACKER_FILE", str(tmp_path / "env_tracker.json"))
