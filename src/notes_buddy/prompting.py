"""
Prompt turns and per-model-family prompt serializers.

Chat history is kept as role-tagged turns; each completion model family has
its own serializer that knows the model's token markers.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Type


class Role(Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class PromptTurn:
    """A single role-tagged message in a prompt."""
    role: Role
    text: str


class PromptSerializer:
    """Base class for rendering turns into a raw completion prompt."""

    name = ""
    stop_tokens: List[str] = []

    def format_turn(self, turn: PromptTurn) -> str:
        raise NotImplementedError

    def assistant_header(self) -> str:
        raise NotImplementedError

    def serialize(self, turns: List[PromptTurn]) -> str:
        """
        Render turns followed by an open assistant turn.

        Args:
            turns: Prompt turns, oldest first

        Returns:
            Prompt string ready for completion
        """
        return "".join(self.format_turn(turn) for turn in turns) + self.assistant_header()

    def is_stop_token(self, token: str) -> bool:
        return token.strip() in self.stop_tokens

    def clean_completion(self, text: str) -> str:
        """Strip end-of-turn markers and surrounding whitespace."""
        for marker in self.stop_tokens:
            text = text.replace(marker, "")
        return text.strip()


class ChatMLSerializer(PromptSerializer):
    """ChatML format used by Qwen instruct models."""

    name = "chatml"
    stop_tokens = ["<|im_end|>", "<|endoftext|>"]

    def format_turn(self, turn: PromptTurn) -> str:
        return f"<|im_start|>{turn.role.value}\n{turn.text}<|im_end|>\n"

    def assistant_header(self) -> str:
        return "<|im_start|>assistant\n"


class Llama3Serializer(PromptSerializer):
    """Llama 3 instruct header format."""

    name = "llama3"
    stop_tokens = ["<|eot_id|>", "<|end_of_text|>"]

    def format_turn(self, turn: PromptTurn) -> str:
        return f"<|start_header_id|>{turn.role.value}<|end_header_id|>\n\n{turn.text}<|eot_id|>"

    def assistant_header(self) -> str:
        return "<|start_header_id|>assistant<|end_header_id|>\n\n"

    def serialize(self, turns: List[PromptTurn]) -> str:
        return "<|begin_of_text|>" + super().serialize(turns)


SERIALIZERS: Dict[str, Type[PromptSerializer]] = {
    ChatMLSerializer.name: ChatMLSerializer,
    Llama3Serializer.name: Llama3Serializer,
}


def get_serializer(name: str) -> PromptSerializer:
    """
    Look up a prompt serializer by model family name.

    Raises:
        ValueError: If the family is unknown
    """
    try:
        return SERIALIZERS[name.lower()]()
    except KeyError:
        raise ValueError(
            f"Unknown prompt format '{name}'. Available: {', '.join(sorted(SERIALIZERS))}"
        ) from None
