"""Abstract LLM provider interface.

All LLM implementations must inherit from this class.
Business logic never imports a concrete provider directly.
The concrete provider is instantiated once in state.py and injected.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass


@dataclass(frozen=True)
class LLMResponse:
    """Structured response from an LLM call, including token usage."""

    text: str
    input_tokens: int = 0
    output_tokens: int = 0


@dataclass(frozen=True)
class ChatTurn:
    """One prior conversation turn handed to the model."""

    role: str  # 'user' | 'assistant'
    content: str


class LLMProvider(ABC):
    """Abstract base class for LLM providers."""

    @abstractmethod
    async def generate(
        self,
        turns: list[ChatTurn],
        system_prompt: str,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """Generate the next assistant turn.

        Args:
            turns: Conversation so far, oldest first, ending with the
                customer's latest message.
            system_prompt: System-level instructions for the model.
            max_tokens: Maximum tokens in the generated response.
            temperature: Sampling temperature (0.0 to 2.0).

        Returns:
            LLMResponse with text content and token usage counts.

        Raises:
            AIResponderError: If the call fails, times out, or returns no text.
        """
        ...
