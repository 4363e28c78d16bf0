"""Text embedding service using sentence-transformers.

This module wraps a fixed-dimension embedding model behind an explicit
load/unload lifecycle. Encoding never loads the model implicitly, so a cold
start cannot hide inside a retrieval call.
"""

import logging
import threading
from typing import Any, Dict, List, Optional, Sequence, Union

import numpy as np
from sentence_transformers import SentenceTransformer
import torch

from .errors import DimensionMismatch, EmbeddingError, EmbeddingUnavailable
from .types import Embedding


logger = logging.getLogger(__name__)

VectorLike = Union[Embedding, np.ndarray, Sequence[float]]


def _as_array(value: VectorLike) -> np.ndarray:
    if isinstance(value, Embedding):
        return value.vector
    return np.asarray(value, dtype=np.float32).reshape(-1)


def cosine_similarity(a: VectorLike, b: VectorLike) -> float:
    """Cosine similarity between two vectors.

    Args:
        a: First vector
        b: Second vector

    Returns:
        Dot product divided by the product of L2 norms, in [-1, 1]

    Raises:
        DimensionMismatch: If the vectors differ in length
        ValueError: If either vector has zero norm
    """
    va = _as_array(a).astype(np.float64)
    vb = _as_array(b).astype(np.float64)

    if va.shape[0] != vb.shape[0]:
        raise DimensionMismatch(va.shape[0], vb.shape[0])

    norm = np.linalg.norm(va) * np.linalg.norm(vb)
    if norm == 0:
        raise ValueError("Cosine similarity is undefined for zero vectors")

    return float(np.clip(np.dot(va, vb) / norm, -1.0, 1.0))


class EmbeddingService:
    """Service for generating text embeddings using sentence-transformers.

    The model handle is loaded with ``load()`` and released with
    ``unload()``. Calls into the handle are serialized.

    Attributes:
        model_name: Name of the sentence-transformer model
        cache_dir: Directory to cache downloaded models
        device: Compute device (cuda, mps, or cpu)
        expected_dim: Embedding dimension the model must produce, if known
    """

    def __init__(
        self,
        model_name: str = "BAAI/bge-small-en-v1.5",
        cache_dir: Optional[str] = None,
        device: Optional[str] = None,
        expected_dim: Optional[int] = None,
    ):
        """Initialize the embedding service.

        Args:
            model_name: Sentence-transformer model name (default: BAAI/bge-small-en-v1.5)
            cache_dir: Directory to cache models (default: None, uses default cache)
            device: Device to run model on (default: None, auto-detect)
            expected_dim: Required embedding dimension (default: None, taken from model)
        """
        self.model_name = model_name
        self.cache_dir = cache_dir
        self.expected_dim = expected_dim
        self._model: Optional[SentenceTransformer] = None
        self._lock = threading.Lock()

        # Detect device if not specified
        if device is None:
            if torch.cuda.is_available():
                self.device = "cuda"
            elif torch.backends.mps.is_available():
                self.device = "mps"
            else:
                self.device = "cpu"
        else:
            self.device = device

        logger.info(f"EmbeddingService initialized with model={model_name}, device={self.device}")

    @property
    def is_loaded(self) -> bool:
        return self._model is not None

    @property
    def model(self) -> SentenceTransformer:
        """The loaded sentence-transformer model.

        Raises:
            EmbeddingUnavailable: If ``load()`` has not been called
        """
        if self._model is None:
            raise EmbeddingUnavailable(
                f"Embedding model {self.model_name} is not loaded; call load() first"
            )
        return self._model

    def load(self) -> "EmbeddingService":
        """Load the model handle. Does nothing if already loaded.

        Raises:
            EmbeddingUnavailable: If the model fails to load
            DimensionMismatch: If the model dimension differs from expected_dim
        """
        with self._lock:
            if self._model is not None:
                return self

            try:
                logger.info(f"Loading sentence-transformer model: {self.model_name}")
                model = SentenceTransformer(
                    self.model_name,
                    cache_folder=self.cache_dir,
                    device=self.device,
                )
            except Exception as e:
                logger.error(f"Failed to load model {self.model_name}: {e}")
                raise EmbeddingUnavailable(f"Could not load embedding model: {e}") from e

            # Some models only report their dimension after the first encode.
            model_dim = model.get_sentence_embedding_dimension()
            if isinstance(model_dim, int):
                if self.expected_dim is None:
                    self.expected_dim = model_dim
                elif model_dim != self.expected_dim:
                    raise DimensionMismatch(self.expected_dim, model_dim)

            self._model = model
            logger.info(f"Model loaded successfully on device: {self.device}")
            return self

    def unload(self) -> None:
        """Release the model handle and free accelerator memory."""
        with self._lock:
            if self._model is None:
                return

            logger.debug("Unloading embedding model")
            self._model = None
            if self.device == "cuda":
                torch.cuda.empty_cache()

    def __enter__(self) -> "EmbeddingService":
        return self.load()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.unload()

    def embed(self, text: str) -> Embedding:
        """Generate the embedding for a single text.

        Args:
            text: Text to embed

        Returns:
            Embedding with a float32 vector

        Raises:
            ValueError: If text is empty
            EmbeddingUnavailable: If the model is not loaded
            EmbeddingError: If the backend fails to encode
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")

        with self._lock:
            model = self.model
            try:
                vector = model.encode(
                    text,
                    convert_to_numpy=True,
                    show_progress_bar=False,
                )
            except Exception as e:
                logger.error(f"Failed to generate embedding: {e}")
                raise EmbeddingError(f"Embedding generation failed: {e}") from e

        embedding = Embedding(vector)
        if self.expected_dim is not None:
            embedding.check_dimension(self.expected_dim)
        return embedding

    def embed_batch(
        self,
        texts: List[str],
        batch_size: int = 32,
        show_progress: bool = False,
    ) -> List[Embedding]:
        """Generate embeddings for multiple texts in one backend call.

        Args:
            texts: List of texts to embed
            batch_size: Batch size for processing (default: 32)
            show_progress: Show progress bar (default: False)

        Returns:
            List of Embedding objects, one per text

        Raises:
            ValueError: If the list is empty or contains empty texts
            EmbeddingUnavailable: If the model is not loaded
            EmbeddingError: If the backend fails to encode
        """
        if not texts:
            raise ValueError("Texts list cannot be empty")
        if any(not text or not text.strip() for text in texts):
            raise ValueError("Texts cannot be empty")

        with self._lock:
            model = self.model
            try:
                vectors = model.encode(
                    texts,
                    batch_size=batch_size,
                    convert_to_numpy=True,
                    show_progress_bar=show_progress,
                )
            except Exception as e:
                logger.error(f"Failed to generate batch embeddings: {e}")
                raise EmbeddingError(f"Batch embedding generation failed: {e}") from e

        embeddings = [Embedding(vector) for vector in vectors]
        if self.expected_dim is not None:
            for embedding in embeddings:
                embedding.check_dimension(self.expected_dim)
        return embeddings

    def model_info(self) -> Dict[str, Any]:
        """Get information about the model.

        Returns:
            Dictionary with model name, device, load state, embedding dimension
            and max sequence length
        """
        info = {
            "model_name": self.model_name,
            "device": self.device,
            "loaded": self.is_loaded,
            "embedding_dim": self.expected_dim,
            "cache_dir": self.cache_dir,
            "max_seq_length": None,
        }

        if self.is_loaded:
            try:
                info["max_seq_length"] = self._model.max_seq_length
            except AttributeError:
                pass

        return info
