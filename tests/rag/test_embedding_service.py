"""Unit tests for embedding service module."""

import threading
from unittest.mock import Mock, patch

import numpy as np
import pytest

from notes_buddy.rag.embedding_service import EmbeddingService, cosine_similarity
from notes_buddy.rag.errors import DimensionMismatch, EmbeddingError, EmbeddingUnavailable
from notes_buddy.rag.types import Embedding

pytestmark = pytest.mark.unit


def make_mock_model(dim=4):
    model = Mock()
    model.get_sentence_embedding_dimension.return_value = dim
    model.max_seq_length = 512
    return model


class TestEmbeddingServiceLifecycle:
    """Tests for explicit load/unload."""

    def test_init_default_values(self):
        """Test initializing service with default values."""
        service = EmbeddingService()

        assert service.model_name == "BAAI/bge-small-en-v1.5"
        assert service.cache_dir is None
        assert service.device in ("cuda", "mps", "cpu")
        assert service.is_loaded is False

    def test_init_custom_values(self):
        """Test initializing service with custom values."""
        service = EmbeddingService(
            model_name="custom-model",
            cache_dir="/custom/cache",
            device="cpu",
            expected_dim=384,
        )

        assert service.model_name == "custom-model"
        assert service.cache_dir == "/custom/cache"
        assert service.device == "cpu"
        assert service.expected_dim == 384

    @patch('notes_buddy.rag.embedding_service.SentenceTransformer')
    def test_embed_without_load_fails_fast(self, mock_st):
        """Test that embedding never loads the model implicitly."""
        service = EmbeddingService(device="cpu")

        with pytest.raises(EmbeddingUnavailable, match="not loaded"):
            service.embed("hello")

        mock_st.assert_not_called()

    @patch('notes_buddy.rag.embedding_service.SentenceTransformer')
    def test_load(self, mock_st):
        """Test loading the model."""
        mock_model = make_mock_model(dim=4)
        mock_st.return_value = mock_model

        service = EmbeddingService(model_name="m", cache_dir="/c", device="cpu")
        assert service.load() is service

        assert service.is_loaded
        assert service.model is mock_model
        assert service.expected_dim == 4
        mock_st.assert_called_once_with("m", cache_folder="/c", device="cpu")

    @patch('notes_buddy.rag.embedding_service.SentenceTransformer')
    def test_load_is_idempotent(self, mock_st):
        """Test that loading twice creates a single model."""
        mock_st.return_value = make_mock_model()

        service = EmbeddingService(device="cpu")
        service.load()
        service.load()

        mock_st.assert_called_once()

    @patch('notes_buddy.rag.embedding_service.SentenceTransformer')
    def test_load_failure(self, mock_st):
        """Test handling of model loading failure."""
        mock_st.side_effect = Exception("Model not found")

        service = EmbeddingService(device="cpu")

        with pytest.raises(EmbeddingUnavailable, match="Could not load embedding model"):
            service.load()
        assert service.is_loaded is False

    @patch('notes_buddy.rag.embedding_service.SentenceTransformer')
    def test_load_dimension_mismatch(self, mock_st):
        """Test that a model with the wrong dimension is rejected."""
        mock_st.return_value = make_mock_model(dim=768)

        service = EmbeddingService(device="cpu", expected_dim=384)

        with pytest.raises(DimensionMismatch):
            service.load()
        assert service.is_loaded is False

    @patch('notes_buddy.rag.embedding_service.SentenceTransformer')
    def test_unload(self, mock_st):
        """Test that unloading releases the model."""
        mock_st.return_value = make_mock_model()

        service = EmbeddingService(device="cpu")
        service.load()
        service.unload()

        assert service.is_loaded is False
        with pytest.raises(EmbeddingUnavailable):
            service.embed("hello")

        # Unloading again is harmless
        service.unload()

    @patch('notes_buddy.rag.embedding_service.SentenceTransformer')
    def test_context_manager(self, mock_st):
        """Test loading on enter and unloading on exit."""
        mock_st.return_value = make_mock_model()

        with EmbeddingService(device="cpu") as service:
            assert service.is_loaded

        assert service.is_loaded is False


class TestEmbed:
    """Tests for embedding generation."""

    @patch('notes_buddy.rag.embedding_service.SentenceTransformer')
    def test_embed_success(self, mock_st):
        """Test successful text embedding."""
        mock_model = make_mock_model(dim=4)
        mock_model.encode.return_value = np.array([0.1, 0.2, 0.3, 0.4])
        mock_st.return_value = mock_model

        service = EmbeddingService(device="cpu").load()
        result = service.embed("test text")

        assert isinstance(result, Embedding)
        assert result.dimension == 4
        assert result.vector.dtype == np.float32
        np.testing.assert_allclose(result.vector, [0.1, 0.2, 0.3, 0.4], rtol=1e-6)
        mock_model.encode.assert_called_once_with(
            "test text",
            convert_to_numpy=True,
            show_progress_bar=False,
        )

    @patch('notes_buddy.rag.embedding_service.SentenceTransformer')
    def test_embed_empty_input(self, mock_st):
        """Test embedding with empty text."""
        mock_st.return_value = make_mock_model()
        service = EmbeddingService(device="cpu").load()

        with pytest.raises(ValueError, match="Text cannot be empty"):
            service.embed("")

        with pytest.raises(ValueError, match="Text cannot be empty"):
            service.embed("   ")

    @patch('notes_buddy.rag.embedding_service.SentenceTransformer')
    def test_embed_failure(self, mock_st):
        """Test handling of embedding generation failure."""
        mock_model = make_mock_model()
        mock_model.encode.side_effect = Exception("Encoding error")
        mock_st.return_value = mock_model

        service = EmbeddingService(device="cpu").load()

        with pytest.raises(EmbeddingError, match="Embedding generation failed"):
            service.embed("test")

    @patch('notes_buddy.rag.embedding_service.SentenceTransformer')
    def test_embed_wrong_dimension(self, mock_st):
        """Test that output of the wrong dimension is never truncated."""
        mock_model = make_mock_model(dim=4)
        mock_model.encode.return_value = np.array([0.1, 0.2, 0.3])
        mock_st.return_value = mock_model

        service = EmbeddingService(device="cpu").load()

        with pytest.raises(DimensionMismatch):
            service.embed("test")

    @patch('notes_buddy.rag.embedding_service.SentenceTransformer')
    def test_embed_calls_are_serialized(self, mock_st):
        """Test that concurrent callers never overlap inside the model."""
        active = []
        overlaps = []
        guard = threading.Lock()

        def encode(text, **kwargs):
            with guard:
                active.append(text)
                if len(active) > 1:
                    overlaps.append(text)
            threading.Event().wait(0.01)
            with guard:
                active.remove(text)
            return np.ones(4)

        mock_model = make_mock_model(dim=4)
        mock_model.encode.side_effect = encode
        mock_st.return_value = mock_model

        service = EmbeddingService(device="cpu").load()
        threads = [
            threading.Thread(target=service.embed, args=(f"text {i}",))
            for i in range(5)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []
        assert mock_model.encode.call_count == 5

    @patch('notes_buddy.rag.embedding_service.SentenceTransformer')
    def test_embed_batch_success(self, mock_st):
        """Test successful batch embedding."""
        mock_model = make_mock_model(dim=3)
        mock_model.encode.return_value = np.array([
            [0.1, 0.2, 0.3],
            [0.4, 0.5, 0.6],
        ])
        mock_st.return_value = mock_model

        service = EmbeddingService(device="cpu").load()
        result = service.embed_batch(["text 1", "text 2"], batch_size=16, show_progress=True)

        assert len(result) == 2
        assert all(isinstance(e, Embedding) for e in result)
        np.testing.assert_allclose(result[1].vector, [0.4, 0.5, 0.6], rtol=1e-6)
        mock_model.encode.assert_called_once_with(
            ["text 1", "text 2"],
            batch_size=16,
            convert_to_numpy=True,
            show_progress_bar=True,
        )

    @patch('notes_buddy.rag.embedding_service.SentenceTransformer')
    def test_embed_batch_invalid_input(self, mock_st):
        """Test batch embedding with empty inputs."""
        mock_st.return_value = make_mock_model()
        service = EmbeddingService(device="cpu").load()

        with pytest.raises(ValueError, match="Texts list cannot be empty"):
            service.embed_batch([])
        with pytest.raises(ValueError, match="Texts cannot be empty"):
            service.embed_batch(["ok", "  "])

    @patch('notes_buddy.rag.embedding_service.SentenceTransformer')
    def test_model_info(self, mock_st):
        """Test model info before and after loading."""
        mock_st.return_value = make_mock_model(dim=4)
        service = EmbeddingService(model_name="m", device="cpu")

        info = service.model_info()
        assert info["loaded"] is False
        assert info["max_seq_length"] is None

        service.load()
        info = service.model_info()
        assert info["loaded"] is True
        assert info["embedding_dim"] == 4
        assert info["max_seq_length"] == 512


class TestCosineSimilarity:
    """Tests for cosine_similarity."""

    def test_identical_vectors(self):
        """Test that a vector is perfectly similar to itself."""
        v = np.array([0.3, -1.2, 4.0, 0.01])
        assert cosine_similarity(v, v) == pytest.approx(1.0)

    def test_scale_invariant(self):
        """Test that scaling does not change similarity."""
        v = [1.0, 2.0, 3.0]
        assert cosine_similarity(v, [2.0, 4.0, 6.0]) == pytest.approx(1.0)

    def test_orthogonal_and_opposite(self):
        """Test the ends of the range."""
        assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
        assert cosine_similarity([1, 2], [-1, -2]) == pytest.approx(-1.0)

    def test_accepts_embeddings(self):
        """Test that Embedding objects are accepted."""
        a = Embedding([1.0, 0.0, 1.0])
        b = Embedding([1.0, 0.0, 0.0])
        assert cosine_similarity(a, b) == pytest.approx(1 / np.sqrt(2), rel=1e-5)

    def test_dimension_mismatch(self):
        """Test that vectors of different length are rejected."""
        with pytest.raises(DimensionMismatch) as exc_info:
            cosine_similarity([1.0, 2.0, 3.0], [1.0, 2.0])

        assert exc_info.value.expected == 3
        assert exc_info.value.actual == 2

    def test_zero_vector(self):
        """Test that zero vectors are rejected."""
        with pytest.raises(ValueError, match="zero vectors"):
            cosine_similarity([0.0, 0.0], [1.0, 0.0])
