"""OpenAI chat-completions provider.

Default model: gpt-4o-mini.
All external calls have a bounded timeout and structured error logging.
"""

import asyncio

import structlog
from openai import AsyncOpenAI

from heritagebox_chat.core.exceptions import AIResponderError
from heritagebox_chat.services.llm.base import ChatTurn, LLMProvider, LLMResponse

logger = structlog.get_logger(__name__)

_TIMEOUT_SECONDS = 10


def _provider_code(error: Exception) -> str:
    status = getattr(error, "status_code", None)
    if status is not None:
        return f"http_{status}"
    text = str(error).lower()
    if "429" in text or "rate limit" in text:
        return "rate_limited"
    return type(error).__name__


class OpenAIProvider(LLMProvider):
    """gpt-4o-mini (by default) via the OpenAI API."""

    def __init__(
        self,
        api_key: str,
        model: str = "gpt-4o-mini",
        timeout_seconds: float = _TIMEOUT_SECONDS,
    ) -> None:
        self._client = AsyncOpenAI(api_key=api_key)
        self._model = model
        self._timeout_seconds = timeout_seconds
        logger.info("openai_provider_initialized", model=model)

    async def generate(
        self,
        turns: list[ChatTurn],
        system_prompt: str,
        max_tokens: int = 500,
        temperature: float = 0.7,
    ) -> LLMResponse:
        """Generate a complete response using chat completions."""
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend({"role": t.role, "content": t.content} for t in turns)
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._model,
                    messages=messages,
                    max_tokens=max_tokens,
                    temperature=temperature,
                ),
                timeout=self._timeout_seconds,
            )
        except asyncio.TimeoutError as e:
            logger.error("openai_generate_timeout", turns=len(turns))
            raise AIResponderError(
                "OpenAI generate timed out", provider_code="timeout"
            ) from e
        except Exception as e:
            logger.error(
                "openai_generate_failed",
                error=str(e),
                model=self._model,
                turns=len(turns),
            )
            raise AIResponderError(
                f"OpenAI generate failed: {e}", provider_code=_provider_code(e)
            ) from e

        text = (response.choices[0].message.content or "").strip() if response.choices else ""
        if not text:
            logger.warning("openai_empty_response", model=self._model)
            raise AIResponderError(
                "OpenAI returned no content", provider_code="empty_response"
            )

        usage = response.usage
        result = LLMResponse(
            text=text,
            input_tokens=usage.prompt_tokens if usage else 0,
            output_tokens=usage.completion_tokens if usage else 0,
        )
        logger.debug(
            "openai_generate_ok",
            input_tokens=result.input_tokens,
            output_tokens=result.output_tokens,
        )
        return result
