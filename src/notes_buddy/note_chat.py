"""
Chat with a note, grounded in its retrieved chunks.

Composes the context assembler, a prompt serializer and an opaque streaming
completion function into a single question/answer turn.
"""
from typing import Callable, List, Optional

from loguru import logger

from .prompting import PromptSerializer, PromptTurn, Role
from .rag.context_assembler import ContextAssembler, RetrievalSession, TurnContext

# complete(prompt, on_token) -> full completion text
CompletionFunc = Callable[[str, Callable[[str], None]], str]

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant answering questions about the user's note. "
    "Use only the information between the <context> tags and earlier turns of "
    "this conversation. If the answer is not there, say you don't know."
)


class NoteChat:
    """
    One conversation about one note.

    The retrieval session lives as long as this object; nothing is persisted.
    """

    def __init__(
        self,
        note_id: str,
        assembler: ContextAssembler,
        serializer: PromptSerializer,
        complete: CompletionFunc,
        system_prompt: str = DEFAULT_SYSTEM_PROMPT,
    ):
        """
        Initialize a note chat.

        Args:
            note_id: Note the conversation is grounded in
            assembler: Builds the retrieval context for each turn
            serializer: Prompt format of the completion model
            complete: Streaming completion function
            system_prompt: System instructions placed before the history
        """
        self.note_id = note_id
        self.assembler = assembler
        self.serializer = serializer
        self.complete = complete
        self.system_prompt = system_prompt
        self.session = RetrievalSession(note_id=note_id)

    def is_available(self) -> bool:
        """Whether the note has indexed chunks to chat about."""
        return self.assembler.vector_store.has_any_records(self.note_id)

    def build_prompt(self, turn_context: TurnContext, question: str) -> str:
        """
        Serialize system prompt, history and the new question.

        The context block goes into the new user message only; earlier
        context is not repeated.
        """
        turns: List[PromptTurn] = [PromptTurn(Role.SYSTEM, self.system_prompt)]
        turns.extend(self.session.history)
        turns.append(PromptTurn(
            Role.USER,
            f"{turn_context.context_block}\n\nQuestion: {question}",
        ))
        return self.serializer.serialize(turns)

    def ask(
        self,
        question: str,
        on_token: Optional[Callable[[str], None]] = None,
    ) -> str:
        """
        Answer a question about the note.

        Args:
            question: The user's question
            on_token: Called with each streamed token, end markers excluded

        Returns:
            The cleaned assistant answer
        """
        if not question or not question.strip():
            raise ValueError("Question cannot be empty")
        question = question.strip()

        turn_context = self.assembler.prepare_turn(self.session, question, self.note_id)
        prompt = self.build_prompt(turn_context, question)
        logger.debug(
            f"Asking about note {self.note_id} with {len(turn_context.chunks)} new chunks "
            f"(prompt {len(prompt)} chars)"
        )

        def forward(token: str) -> None:
            if on_token and not self.serializer.is_stop_token(token):
                on_token(token)

        raw = self.complete(prompt, forward)
        answer = self.serializer.clean_completion(raw)

        self.session.record_exchange(question, answer)
        logger.info(f"Answered turn {len(self.session.turns) // 2} for note {self.note_id}")
        return answer
