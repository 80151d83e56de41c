"""AI responder: turns a session's history into the next assistant reply.

Customer turns map to 'user', AI turns to 'assistant'. Human-agent turns
are left out of the prompt; once a session is handed off the AI path is
no longer used for it.
"""

from __future__ import annotations

import structlog

from heritagebox_chat.models.session import Message, Sender
from heritagebox_chat.services.llm.base import ChatTurn, LLMProvider, LLMResponse

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = """You are a helpful AI assistant for Heritagebox, a premium media digitization service. Your role is to help customers with:

1. Photo digitization pricing and services
2. Video transfer options (8mm, VHS, Hi8, etc.)
3. Project status updates
4. Turnaround times and delivery methods
5. General digitization questions

Key Information:
- Photo scanning starts at $0.49 per photo
- Video transfer pricing varies by format
- Standard turnaround is 2-3 weeks
- Rush service available for 1 week turnaround
- We offer USB drive and cloud backup options
- All work is done in-house with professional equipment
- We handle fragile and damaged media with special care

Keep responses helpful, concise, and focused on digitization services. If asked about order status, recommend they provide their email or order number for specific details. For complex technical questions or special requests, suggest speaking with a human agent.

Do not provide specific pricing without knowing the exact service needed, but give general ranges and encourage getting a custom quote."""

_ROLES = {Sender.CUSTOMER: "user", Sender.AI: "assistant"}


def build_turns(history: list[Message]) -> list[ChatTurn]:
    return [
        ChatTurn(role=_ROLES[m.sender], content=m.content)
        for m in history
        if m.sender in _ROLES
    ]


class AIResponder:
    """Produces the AI reply for a session in AI mode."""

    def __init__(
        self,
        llm: LLMProvider,
        system_prompt: str = SYSTEM_PROMPT,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> None:
        self._llm = llm
        self._system_prompt = system_prompt
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def reply(self, history: list[Message]) -> LLMResponse:
        """Generate a reply to the last customer message in *history*.

        Raises:
            AIResponderError: Propagated from the provider.
        """
        turns = build_turns(history)
        response = await self._llm.generate(
            turns,
            system_prompt=self._system_prompt,
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )
        logger.debug(
            "ai_reply_generated",
            turns=len(turns),
            output_tokens=response.output_tokens,
        )
        return response
