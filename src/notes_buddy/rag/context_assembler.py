"""Retrieval context assembly for note chat.

This module turns a chat question into a delimited context block of note
chunks, never resupplying a chunk that was already shown to the model in the
same conversation.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Set

from ..prompting import PromptTurn, Role
from .embedding_service import EmbeddingService
from .types import SearchResult
from .vector_store import VectorStore

logger = logging.getLogger(__name__)

# The prompt templates rely on these tags literally.
CONTEXT_OPEN_TAG = "<context>"
CONTEXT_CLOSE_TAG = "</context>"
EMPTY_CONTEXT_BLOCK = f"{CONTEXT_OPEN_TAG}\n{CONTEXT_CLOSE_TAG}"


def format_context_block(chunk_texts: List[str]) -> str:
    """Wrap chunk texts, separated by a blank line, in the context tags.

    An empty list yields the empty context marker.
    """
    if not chunk_texts:
        return EMPTY_CONTEXT_BLOCK
    body = "\n\n".join(chunk_texts)
    return f"{CONTEXT_OPEN_TAG}\n{body}\n{CONTEXT_CLOSE_TAG}"


class SessionState(Enum):
    EMPTY = "empty"
    ACTIVE = "active"


@dataclass
class RetrievalSession:
    """Per-conversation retrieval state for one note.

    Attributes:
        note_id: The note this conversation is grounded in
        used_chunk_texts: Chunk texts already surfaced to the model
        turns: Completed user/assistant turns, oldest first
    """

    note_id: str
    used_chunk_texts: Set[str] = field(default_factory=set)
    turns: List[PromptTurn] = field(default_factory=list)

    @property
    def state(self) -> SessionState:
        return SessionState.ACTIVE if self.turns else SessionState.EMPTY

    def record_exchange(self, user_text: str, assistant_text: str) -> None:
        """Append a completed question/answer round-trip."""
        self.turns.append(PromptTurn(Role.USER, user_text))
        self.turns.append(PromptTurn(Role.ASSISTANT, assistant_text))

    @property
    def history(self) -> List[PromptTurn]:
        return list(self.turns)


@dataclass
class TurnContext:
    """Context prepared for one chat turn."""

    context_block: str
    session: RetrievalSession
    chunks: List[SearchResult] = field(default_factory=list)


class ContextAssembler:
    """Builds retrieval context for chat turns.

    Attributes:
        embedding_service: Embeds the user's question
        vector_store: Searched for the nearest note chunks
        top_k: Number of chunks retrieved per turn
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        vector_store: VectorStore,
        top_k: int = 5,
    ):
        if top_k <= 0:
            raise ValueError("top_k must be positive")
        self.embedding_service = embedding_service
        self.vector_store = vector_store
        self.top_k = top_k

    def prepare_turn(
        self,
        session: RetrievalSession,
        query_text: str,
        note_id: str,
    ) -> TurnContext:
        """Retrieve unseen note chunks for a question.

        Chunks already in ``session.used_chunk_texts`` are dropped; the rest
        keep the store's ranking and are marked as used.

        Args:
            session: The conversation's retrieval session
            query_text: The user's question
            note_id: Note to search; must be the session's note

        Returns:
            TurnContext with the context block (the empty marker when no new
            chunk remains) and the surfaced chunks

        Raises:
            ValueError: If note_id is not the session's note
            EmbeddingUnavailable: If the embedding model is not loaded
            StoreUnavailable: If the vector store is not open
        """
        if note_id != session.note_id:
            raise ValueError(
                f"Session is scoped to note {session.note_id}, not {note_id}"
            )

        query_embedding = self.embedding_service.embed(query_text)
        results = self.vector_store.find_similar(query_embedding, note_id=note_id, k=self.top_k)

        fresh = []
        seen = set(session.used_chunk_texts)
        for result in results:
            if result.chunk_text in seen:
                continue
            seen.add(result.chunk_text)
            fresh.append(result)

        logger.debug(
            f"Retrieved {len(results)} chunks for note {note_id}, "
            f"{len(results) - len(fresh)} already used"
        )

        session.used_chunk_texts.update(r.chunk_text for r in fresh)
        return TurnContext(
            context_block=format_context_block([r.chunk_text for r in fresh]),
            session=session,
            chunks=fresh,
        )
