"""Vector store implementation using ChromaDB.

This module persists (note, chunk text, embedding) records in a ChromaDB
collection with a cosine HNSW index and answers k-nearest-neighbor queries,
optionally scoped to a single note.
"""

import logging
import uuid
from pathlib import Path
from typing import Any, Dict, List, Optional

import chromadb
from chromadb.config import Settings

from .errors import StoreError, StoreUnavailable
from .types import Embedding, EmbeddingRecord, SearchResult


logger = logging.getLogger(__name__)


class VectorStore:
    """ChromaDB-based store for note chunk embeddings.

    Records are never updated in place: re-processing a note deletes its
    records and inserts fresh ones.

    Attributes:
        persist_dir: Directory to persist ChromaDB data
        collection_name: Name of the ChromaDB collection
        embedding_dim: Required embedding dimension, if fixed
    """

    def __init__(
        self,
        persist_dir: str,
        collection_name: str = "note_embeddings",
        embedding_dim: Optional[int] = None,
    ):
        """Initialize the vector store.

        Args:
            persist_dir: Directory to persist ChromaDB data
            collection_name: Name of the collection (default: note_embeddings)
            embedding_dim: Required embedding dimension (default: None, not checked)
        """
        self.persist_dir = Path(persist_dir)
        self.collection_name = collection_name
        self.embedding_dim = embedding_dim
        self._client: Optional[chromadb.ClientAPI] = None
        self._collection: Optional[chromadb.Collection] = None

        logger.info(f"VectorStore initialized: persist_dir={persist_dir}, collection={collection_name}")

    @property
    def is_open(self) -> bool:
        return self._collection is not None

    @property
    def collection(self) -> chromadb.Collection:
        """The open ChromaDB collection.

        Raises:
            StoreUnavailable: If ``open()`` has not been called
        """
        if self._collection is None:
            raise StoreUnavailable(
                f"Vector store {self.collection_name} is not open; call open() first"
            )
        return self._collection

    def open(self) -> "VectorStore":
        """Open the persistent client and get or create the collection.

        Raises:
            StoreUnavailable: If ChromaDB cannot be initialized
        """
        if self._collection is not None:
            return self

        try:
            self.persist_dir.mkdir(parents=True, exist_ok=True)
            logger.info("Initializing ChromaDB client")
            self._client = chromadb.PersistentClient(
                path=str(self.persist_dir),
                settings=Settings(anonymized_telemetry=False),
            )
            self._collection = self._client.get_or_create_collection(
                name=self.collection_name,
                metadata={
                    "description": "Note chunk embeddings",
                    "hnsw:space": "cosine",
                },
            )
            logger.info(f"Collection ready: {self.collection_name}")
        except Exception as e:
            logger.error(f"Failed to open vector store: {e}")
            self._client = None
            self._collection = None
            raise StoreUnavailable(f"Could not initialize ChromaDB: {e}") from e

        return self

    def close(self) -> None:
        """Drop the client handle. Data stays on disk."""
        self._collection = None
        self._client = None

    def __enter__(self) -> "VectorStore":
        return self.open()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def _check_dimension(self, embedding: Embedding) -> None:
        if self.embedding_dim is not None:
            embedding.check_dimension(self.embedding_dim)

    @staticmethod
    def _note_filter(note_id: str) -> Dict[str, Any]:
        return {"note_id": {"$eq": note_id}}

    def upsert_chunk(
        self,
        note_id: str,
        chunk_text: str,
        embedding: Embedding,
        sequence_index: int = 0,
        generation: int = 0,
    ) -> str:
        """Insert a chunk record under a freshly generated id.

        Args:
            note_id: Note the chunk belongs to
            chunk_text: Text of the chunk
            embedding: Embedding of the chunk text
            sequence_index: Position of the chunk within the note
            generation: Indexing generation that produced the record

        Returns:
            The new record id

        Raises:
            StoreUnavailable: If the store is not open
            DimensionMismatch: If the embedding has the wrong dimension
            StoreError: If ChromaDB rejects the write
        """
        if not chunk_text:
            raise ValueError("chunk_text cannot be empty")

        collection = self.collection
        self._check_dimension(embedding)
        record_id = uuid.uuid4().hex

        try:
            collection.add(
                ids=[record_id],
                documents=[chunk_text],
                metadatas=[{
                    "note_id": note_id,
                    "sequence_index": sequence_index,
                    "generation": generation,
                }],
                embeddings=[embedding.tolist()],
            )
        except Exception as e:
            logger.error(f"Failed to store chunk for note {note_id}: {e}")
            raise StoreError(f"Could not store chunk: {e}") from e

        logger.debug(f"Stored chunk {sequence_index} of note {note_id} as {record_id}")
        return record_id

    def delete_all_for_note(self, note_id: str) -> int:
        """Delete all records of a note.

        Args:
            note_id: Note to delete records for

        Returns:
            Number of records deleted (0 when the note has none)

        Raises:
            StoreUnavailable: If the store is not open
            StoreError: If ChromaDB fails
        """
        collection = self.collection

        try:
            results = collection.get(where=self._note_filter(note_id), include=[])
            ids_to_delete = results['ids'] if results else []

            if ids_to_delete:
                collection.delete(ids=ids_to_delete)
        except Exception as e:
            logger.error(f"Failed to delete chunks for note {note_id}: {e}")
            raise StoreError(f"Could not delete chunks: {e}") from e

        logger.info(f"Deleted {len(ids_to_delete)} chunks for note {note_id}")
        return len(ids_to_delete)

    def count(self, note_id: Optional[str] = None) -> int:
        """Number of records, optionally only for one note."""
        collection = self.collection
        try:
            if note_id is None:
                return collection.count()
            results = collection.get(where=self._note_filter(note_id), include=[])
            return len(results['ids']) if results else 0
        except Exception as e:
            raise StoreError(f"Could not count chunks: {e}") from e

    def get_records(self, note_id: str) -> List[EmbeddingRecord]:
        """All records of a note in chunk sequence order."""
        collection = self.collection
        try:
            results = collection.get(
                where=self._note_filter(note_id),
                include=["documents", "metadatas", "embeddings"],
            )
        except Exception as e:
            raise StoreError(f"Could not read chunks: {e}") from e

        records = []
        for i, record_id in enumerate(results['ids']):
            metadata = results['metadatas'][i]
            records.append(EmbeddingRecord(
                id=record_id,
                note_id=metadata.get('note_id', note_id),
                chunk_text=results['documents'][i],
                embedding=Embedding(results['embeddings'][i]),
                sequence_index=metadata.get('sequence_index', 0),
                generation=metadata.get('generation', 0),
            ))

        records.sort(key=lambda r: r.sequence_index)
        return records

    def has_any_records(self, note_id: str) -> bool:
        """Whether a note has at least one stored chunk."""
        collection = self.collection
        try:
            results = collection.get(where=self._note_filter(note_id), limit=1, include=[])
        except Exception as e:
            raise StoreError(f"Could not query chunks: {e}") from e
        return bool(results and results['ids'])

    def find_similar(
        self,
        query_embedding: Embedding,
        note_id: Optional[str] = None,
        k: int = 5,
    ) -> List[SearchResult]:
        """Find the k records nearest to a query embedding.

        Args:
            query_embedding: Query embedding
            note_id: Restrict the search to this note (default: all notes)
            k: Maximum number of results (default: 5)

        Returns:
            SearchResult objects in ascending distance order; empty when no
            record is eligible

        Raises:
            StoreUnavailable: If the store is not open
            DimensionMismatch: If the query has the wrong dimension
            StoreError: If ChromaDB fails
        """
        if k <= 0:
            raise ValueError("k must be positive")

        collection = self.collection
        self._check_dimension(query_embedding)

        where = self._note_filter(note_id) if note_id is not None else None

        try:
            eligible = self.count(note_id)
            if eligible == 0:
                return []

            logger.debug(f"Searching for top {k} similar chunks (note_id={note_id})")
            results = collection.query(
                query_embeddings=[query_embedding.tolist()],
                n_results=min(k, eligible),
                where=where,
                include=["documents", "metadatas", "distances"],
            )
        except StoreError:
            raise
        except Exception as e:
            logger.error(f"Search failed: {e}")
            raise StoreError(f"Similarity search failed: {e}") from e

        search_results = []

        if results and results['ids'] and len(results['ids']) > 0:
            ids = results['ids'][0]
            documents = results['documents'][0]
            metadatas = results['metadatas'][0]
            distances = results['distances'][0]

            for i in range(len(ids)):
                search_results.append(SearchResult(
                    note_id=metadatas[i].get('note_id', ''),
                    chunk_text=documents[i],
                    distance=float(distances[i]),
                    record_id=ids[i],
                ))

        search_results.sort(key=lambda r: r.distance)
        logger.debug(f"Found {len(search_results)} similar chunks")
        return search_results

    def collection_stats(self) -> Dict[str, Any]:
        """Get statistics about the collection.

        Returns:
            Dictionary with collection statistics
        """
        try:
            count = self.collection.count()

            stats = {
                "collection_name": self.collection_name,
                "total_chunks": count,
                "persist_dir": str(self.persist_dir),
            }

            if count > 0:
                sample = self.collection.get(limit=100, include=["metadatas"])
                if sample and sample['metadatas']:
                    note_ids = set(m.get('note_id') for m in sample['metadatas'] if m.get('note_id'))
                    stats["sample_notes"] = len(note_ids)

            return stats

        except Exception as e:
            logger.error(f"Failed to get collection stats: {e}")
            return {
                "collection_name": self.collection_name,
                "error": str(e),
            }

    def health_check(self) -> bool:
        """Check if the vector store is open and accessible.

        Returns:
            True if healthy, False otherwise
        """
        try:
            count = self.collection.count()
            logger.info(f"Health check passed: collection has {count} chunks")
            return True

        except Exception as e:
            logger.error(f"Health check failed: {e}")
            return False

    def reset_collection(self) -> None:
        """Delete and recreate the collection (use with caution).

        Raises:
            StoreUnavailable: If the store is not open
            StoreError: If ChromaDB fails
        """
        if self._client is None:
            raise StoreUnavailable("Vector store is not open; call open() first")

        logger.warning(f"Resetting collection: {self.collection_name}")
        try:
            self._client.delete_collection(name=self.collection_name)
            self._collection = self._client.get_or_create_collection(
                name=self.collection_name,
                metadata={
                    "description": "Note chunk embeddings",
                    "hnsw:space": "cosine",
                },
            )
        except Exception as e:
            logger.error(f"Failed to reset collection: {e}")
            self._collection = None
            raise StoreError(f"Could not reset collection: {e}") from e

        logger.info("Collection reset successfully")
