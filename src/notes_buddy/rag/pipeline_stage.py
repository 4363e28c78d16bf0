"""
RAG pipeline stage for note indexing.

This module chunks note text, embeds every chunk and replaces the note's
records in the vector store whenever the note content is (re-)processed.
"""

import logging
import threading
import time
from typing import Dict, List, Optional, Tuple

from .config import RAGConfig
from .embedding_service import EmbeddingService
from .errors import (
    ChunkEmbedFailure,
    DimensionMismatch,
    EmbeddingUnavailable,
    StaleGenerationRace,
    StoreError,
    StoreUnavailable,
)
from .index_tracker import IndexTracker
from .parallel_embedder import ParallelChunkEmbedder
from .text_chunker import TextChunker
from .types import ProcessResult
from .vector_store import VectorStore

logger = logging.getLogger(__name__)


class RAGPipelineStage:
    """
    Pipeline stage for note embedding generation and indexing.

    Workflow per note:
    1. Register a new generation for the note
    2. Enter the note's critical section (one lock per note id)
    3. Skip if the content was already indexed
    4. Delete the note's existing records
    5. Chunk, embed and store each chunk tagged with the generation
    6. Update index tracker

    A run that is superseded by a newer run for the same note stops at the
    next chunk boundary. The newer run can only delete after the stale run has
    left the critical section, so stale cleanup never removes fresher records.
    Different notes are processed fully concurrently.
    """

    def __init__(
        self,
        config: RAGConfig,
        embedding_service: Optional[EmbeddingService] = None,
        vector_store: Optional[VectorStore] = None,
        chunker: Optional[TextChunker] = None,
        index_tracker: Optional[IndexTracker] = None,
    ):
        """
        Initialize RAG pipeline stage.

        Components that are not provided are created from the config but not
        loaded; call ``embedding_service.load()`` and ``vector_store.open()``
        before processing notes.

        Args:
            config: RAG configuration
            embedding_service: Optional embedding service (created if None)
            vector_store: Optional vector store (created if None)
            chunker: Optional text chunker (created if None)
            index_tracker: Optional index tracker (created if None)
        """
        self.config = config

        self.embedding_service = embedding_service or EmbeddingService(
            model_name=config.model_name,
            cache_dir=str(config.model_cache_dir),
            device=config.device,
            expected_dim=config.embedding_dim,
        )
        self.vector_store = vector_store or VectorStore(
            persist_dir=str(config.vector_store_dir),
            collection_name=config.collection_name,
            embedding_dim=config.embedding_dim,
        )
        self.chunker = chunker or TextChunker(
            target_word_count=config.target_word_count,
        )
        self.index_tracker = index_tracker or IndexTracker(
            tracker_file=config.index_tracker_file
        )
        self.embedder = ParallelChunkEmbedder(
            embed_func=self.embedding_service.embed,
            max_workers=config.embed_workers,
        )

        self._generations: Dict[str, int] = {}
        self._note_locks: Dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def is_ready(self) -> bool:
        """
        Check if RAG pipeline is ready to process.

        Returns:
            True if the embedding model is loaded and the store is open
        """
        return self.embedding_service.is_loaded and self.vector_store.is_open

    def _begin_generation(self, note_id: str) -> int:
        with self._registry_lock:
            generation = self._generations.get(note_id, 0) + 1
            self._generations[note_id] = generation
            return generation

    def current_generation(self, note_id: str) -> int:
        """Latest generation registered for a note (0 if never processed)."""
        with self._registry_lock:
            return self._generations.get(note_id, 0)

    def _note_lock(self, note_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._note_locks.get(note_id)
            if lock is None:
                lock = self._note_locks[note_id] = threading.Lock()
            return lock

    def _check_current(self, note_id: str, generation: int) -> None:
        current = self.current_generation(note_id)
        if current != generation:
            raise StaleGenerationRace(note_id, generation, current)

    def process_note(
        self,
        note_id: str,
        text: str,
        force_reindex: bool = False,
    ) -> ProcessResult:
        """
        Replace a note's stored chunks with chunks of its current content.

        Args:
            note_id: Note identifier
            text: Current note content
            force_reindex: If True, reindex even if the content is unchanged

        Returns:
            ProcessResult with success status and metrics. Chunks that fail
            to embed or store are counted in ``chunks_failed`` and do not fail
            the run, but the note is not marked indexed so the next run
            retries it. Skipped without touching the store when
            ``config.enabled`` is False.

        Raises:
            EmbeddingUnavailable: If the embedding model is not loaded
            StoreUnavailable: If the vector store is not open
            DimensionMismatch: If the model output does not match the store
        """
        start_time = time.time()
        if not self.config.enabled:
            logger.info(f"Indexing disabled, skipping note {note_id}")
            return ProcessResult(
                success=True,
                note_id=note_id,
                skipped=True,
                skip_reason="Indexing is disabled",
            )

        generation = self._begin_generation(note_id)
        result = ProcessResult(success=False, note_id=note_id, generation=generation)

        with self._note_lock(note_id):
            try:
                self._check_current(note_id, generation)

                if not force_reindex and not self.index_tracker.needs_reindex(note_id, text):
                    logger.info(f"Note already indexed and up-to-date: {note_id}")
                    result.success = True
                    result.skipped = True
                    result.skip_reason = "Already indexed and up-to-date"
                    return result

                # The store no longer matches the tracked content once we delete.
                self.index_tracker.remove_entry(note_id)
                result.records_deleted = self.vector_store.delete_all_for_note(note_id)

                chunks = self.chunker.chunk_note(note_id, text)
                result.chunks_created = len(chunks)

                if not chunks:
                    logger.warning(f"No chunks created for note {note_id}")
                    result.skipped = True
                    result.skip_reason = "No text to index"
                else:
                    self._store_chunks(note_id, generation, chunks, result)

                self._check_current(note_id, generation)
                if result.chunks_failed:
                    # Left untracked so the next run retries the failed chunks.
                    logger.warning(
                        f"Note {note_id} partially indexed; will reindex on next run"
                    )
                else:
                    self.index_tracker.mark_indexed(
                        note_id=note_id,
                        text=text,
                        chunks_created=result.embeddings_stored,
                        generation=generation,
                    )
                result.success = True

                logger.info(
                    f"Indexed note {note_id} (generation {generation}): "
                    f"{result.embeddings_stored}/{result.chunks_created} chunks stored, "
                    f"{result.chunks_failed} failed"
                )

            except StaleGenerationRace as e:
                logger.info(f"Stopped superseded indexing run: {e}")
                result.superseded = True
                result.error_message = str(e)

            except (EmbeddingUnavailable, StoreUnavailable, DimensionMismatch):
                raise

            except Exception as e:
                logger.error(f"Failed to process note {note_id}: {e}", exc_info=True)
                result.error_message = str(e)

            finally:
                result.processing_time_seconds = time.time() - start_time

        return result

    def _store_chunks(self, note_id, generation, chunks, result: ProcessResult) -> None:
        """Embed and store chunks, counting per-chunk failures."""

        def is_current() -> bool:
            return self.current_generation(note_id) == generation

        for outcome in self.embedder.embed_chunks(chunks, should_continue=is_current):
            self._check_current(note_id, generation)
            chunk = outcome.chunk

            if outcome.error is not None:
                failure = ChunkEmbedFailure(note_id, chunk.sequence_index, outcome.error)
                logger.warning(f"Skipping chunk: {failure}")
                result.chunks_failed += 1
                continue

            try:
                self.vector_store.upsert_chunk(
                    note_id=note_id,
                    chunk_text=chunk.text,
                    embedding=outcome.embedding,
                    sequence_index=chunk.sequence_index,
                    generation=generation,
                )
                result.embeddings_stored += 1
            except StoreError as e:
                failure = ChunkEmbedFailure(note_id, chunk.sequence_index, e)
                logger.warning(f"Skipping chunk: {failure}")
                result.chunks_failed += 1

        # The embedder stops scheduling once superseded; report it as such.
        self._check_current(note_id, generation)

    def delete_note(self, note_id: str) -> int:
        """
        Delete all stored chunks of a note.

        Cancels any in-flight indexing run for the note.

        Args:
            note_id: Note identifier

        Returns:
            Number of records deleted
        """
        self._begin_generation(note_id)
        with self._note_lock(note_id):
            deleted = self.vector_store.delete_all_for_note(note_id)
            self.index_tracker.remove_entry(note_id)
        return deleted

    def process_batch(
        self,
        notes: List[Tuple[str, str]],
        force_reindex: bool = False,
    ) -> List[ProcessResult]:
        """
        Process multiple notes in batch.

        Args:
            notes: List of (note_id, text) tuples
            force_reindex: If True, reindex all notes

        Returns:
            List of ProcessResult objects
        """
        results = []

        for note_id, text in notes:
            result = self.process_note(
                note_id=note_id,
                text=text,
                force_reindex=force_reindex,
            )
            results.append(result)

        successful = sum(1 for r in results if r.success)
        failed = sum(1 for r in results if not r.success)
        skipped = sum(1 for r in results if r.skipped)

        logger.info(
            f"Batch processing complete: "
            f"{successful} successful, {failed} failed, {skipped} skipped"
        )

        return results

    def is_note_indexed(self, note_id: str) -> bool:
        return self.index_tracker.is_indexed(note_id)

    def get_stats(self) -> Dict:
        """
        Get statistics about RAG indexing.

        Returns:
            Dictionary with statistics
        """
        tracker_stats = self.index_tracker.get_stats()
        vector_stats = {}

        if self.vector_store.is_open:
            vector_stats = self.vector_store.collection_stats()

        return {
            'ready': self.is_ready(),
            'tracker': tracker_stats,
            'vector_store': vector_stats,
            'config': {
                'enabled': self.config.enabled,
                'model': self.config.model_name,
                'collection': self.config.collection_name,
            }
        }
