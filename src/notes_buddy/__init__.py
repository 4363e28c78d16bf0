"""Notes Buddy package exports."""

from .note_chat import NoteChat
from .prompting import PromptTurn, Role, get_serializer
from .rag import (
    ContextAssembler,
    EmbeddingService,
    RAGConfig,
    RAGPipelineStage,
    RetrievalSession,
    VectorStore,
)

__all__ = [
    "__version__",
    "NoteChat",
    "PromptTurn",
    "Role",
    "get_serializer",
    "ContextAssembler",
    "EmbeddingService",
    "RAGConfig",
    "RAGPipelineStage",
    "RetrievalSession",
    "VectorStore",
]

__version__ = "0.1.0"
