"""Sentence-aligned text chunking for RAG indexing.

Transcribed notes are plain text without headings, so chunks are built by
greedily packing whole sentences up to a word budget. Chunks are slices of
the trimmed input, so whitespace between sentences is kept as written.
"""

import logging
import re
from typing import List, Tuple

from .types import Chunk


logger = logging.getLogger(__name__)

# Terminal punctuation followed by whitespace ends a sentence.
SENTENCE_BOUNDARY = re.compile(r'(?<=[.!?])\s+')


def sentence_spans(text: str) -> List[Tuple[int, int]]:
    """(start, end) offsets of each sentence in already trimmed text."""
    spans = []
    start = 0
    for match in SENTENCE_BOUNDARY.finditer(text):
        spans.append((start, match.start()))
        start = match.end()
    if start < len(text):
        spans.append((start, len(text)))
    return spans


def split_sentences(text: str) -> List[str]:
    """Split text into sentences.

    A trailing fragment without terminal punctuation is returned as its own
    sentence.

    Args:
        text: Raw text

    Returns:
        List of non-empty sentences in input order
    """
    text = text.strip()
    return [text[start:end] for start, end in sentence_spans(text)]


def count_words(text: str) -> int:
    return len(text.split())


def chunk_text(text: str, target_word_count: int = 300) -> List[str]:
    """Split text into chunks of whole sentences.

    Sentences are accumulated until adding the next one would push the
    buffer past ``target_word_count`` words; the buffer is then emitted and
    the next chunk starts with that sentence. A sentence longer than the
    budget becomes a chunk on its own.

    Args:
        text: Raw note text
        target_word_count: Word budget per chunk (default: 300)

    Returns:
        Ordered list of non-empty chunk strings

    Raises:
        ValueError: If target_word_count is not positive
    """
    if target_word_count <= 0:
        raise ValueError("target_word_count must be positive")

    text = text.strip() if text else ""
    if not text:
        return []

    chunks = []
    chunk_start = None
    chunk_end = 0
    buffer_words = 0

    for start, end in sentence_spans(text):
        sentence_words = count_words(text[start:end])

        if chunk_start is not None and buffer_words + sentence_words > target_word_count:
            chunks.append(text[chunk_start:chunk_end])
            chunk_start = None
            buffer_words = 0

        if chunk_start is None:
            chunk_start = start
        chunk_end = end
        buffer_words += sentence_words

    if chunk_start is not None:
        chunks.append(text[chunk_start:chunk_end])

    return chunks


class TextChunker:
    """Chunks note text into ``Chunk`` objects tagged with their note.

    Attributes:
        target_word_count: Word budget per chunk
    """

    def __init__(self, target_word_count: int = 300):
        if target_word_count <= 0:
            raise ValueError("target_word_count must be positive")
        self.target_word_count = target_word_count

    def chunk_note(self, note_id: str, text: str) -> List[Chunk]:
        """Chunk a note's text.

        Args:
            note_id: Identifier of the source note
            text: Note content

        Returns:
            List of Chunk objects in sequence order
        """
        pieces = chunk_text(text, self.target_word_count)
        chunks = [
            Chunk(text=piece, source_note_id=note_id, sequence_index=i)
            for i, piece in enumerate(pieces)
        ]

        logger.info(f"Created {len(chunks)} chunks for note {note_id}")
        return chunks
