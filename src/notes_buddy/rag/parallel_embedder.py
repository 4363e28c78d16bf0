"""
Bounded concurrent chunk embedding for note indexing.

Uses ThreadPoolExecutor with a fixed number of in-flight chunks.
"""
import time
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from typing import Callable, Deque, Iterator, List, Optional, Tuple

from loguru import logger

from .errors import EmbeddingUnavailable
from .types import Chunk, Embedding


@dataclass
class ChunkEmbedding:
    """Outcome of embedding a single chunk."""
    chunk: Chunk
    embedding: Optional[Embedding] = None
    error: Optional[Exception] = None
    duration_seconds: float = 0.0

    @property
    def success(self) -> bool:
        return self.embedding is not None


class ParallelChunkEmbedder:
    """
    Embed the chunks of one note sequentially or with a small worker pool.

    When max_workers=1, chunks are embedded one at a time with the same
    interface as pool mode. Results are always yielded in sequence order.
    A failing chunk yields a result carrying the error; an unloaded backend
    stops the whole run.
    """

    def __init__(
        self,
        embed_func: Callable[[str], Embedding],
        max_workers: int = 1,
    ):
        """
        Initialize chunk embedder.

        Args:
            embed_func: Function that embeds one text (e.g. EmbeddingService.embed)
            max_workers: Maximum chunks embedded concurrently (default: 1)
        """
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.embed_func = embed_func
        self.max_workers = max_workers
        self.is_sequential = (max_workers == 1)

    def _embed_one(self, chunk: Chunk) -> ChunkEmbedding:
        start_time = time.time()
        try:
            embedding = self.embed_func(chunk.text)
        except EmbeddingUnavailable:
            raise
        except Exception as e:
            return ChunkEmbedding(
                chunk=chunk,
                error=e,
                duration_seconds=time.time() - start_time,
            )
        return ChunkEmbedding(
            chunk=chunk,
            embedding=embedding,
            duration_seconds=time.time() - start_time,
        )

    def embed_chunks(
        self,
        chunks: List[Chunk],
        should_continue: Optional[Callable[[], bool]] = None,
    ) -> Iterator[ChunkEmbedding]:
        """
        Embed chunks, yielding results in sequence order.

        Args:
            chunks: Chunks of one note
            should_continue: Checked before each chunk is scheduled; returning
                False stops the run and cancels queued work

        Yields:
            ChunkEmbedding per processed chunk

        Raises:
            EmbeddingUnavailable: If the embedding backend is not loaded
        """
        if not chunks:
            return

        if self.is_sequential:
            yield from self._embed_sequential(chunks, should_continue)
        else:
            yield from self._embed_parallel(chunks, should_continue)

    def _embed_sequential(
        self,
        chunks: List[Chunk],
        should_continue: Optional[Callable[[], bool]],
    ) -> Iterator[ChunkEmbedding]:
        logger.debug(f"Embedding {len(chunks)} chunks sequentially")

        for i, chunk in enumerate(chunks, 1):
            if should_continue and not should_continue():
                logger.info(f"Embedding stopped after {i - 1}/{len(chunks)} chunks")
                return

            result = self._embed_one(chunk)
            if result.error:
                logger.warning(f"[{i}/{len(chunks)}] ✗ chunk {chunk.sequence_index}: {result.error}")
            yield result

    def _embed_parallel(
        self,
        chunks: List[Chunk],
        should_continue: Optional[Callable[[], bool]],
    ) -> Iterator[ChunkEmbedding]:
        logger.debug(f"Embedding {len(chunks)} chunks with {self.max_workers} workers")

        pending: Deque[Tuple[Chunk, Future]] = deque()
        remaining = iter(chunks)

        def schedule(executor: ThreadPoolExecutor) -> bool:
            if should_continue and not should_continue():
                return False
            chunk = next(remaining, None)
            if chunk is None:
                return False
            pending.append((chunk, executor.submit(self._embed_one, chunk)))
            return True

        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            try:
                for _ in range(self.max_workers):
                    if not schedule(executor):
                        break

                completed = 0
                while pending:
                    chunk, future = pending.popleft()
                    result = future.result()
                    completed += 1
                    if result.error:
                        logger.warning(
                            f"[{completed}/{len(chunks)}] ✗ chunk {chunk.sequence_index}: {result.error}"
                        )
                    yield result
                    schedule(executor)
            finally:
                for _, future in pending:
                    future.cancel()
