"""LLM client for answer generation over any OpenAI-compatible endpoint.

Security: Reads API key from settings (environment) only, never hardcoded.
Provides a deterministic stub when no key is configured, for local runs and
tests. Provider failures are surfaced as UpstreamServiceError; there is no
silent fallback once a real provider is configured.
"""

import logging
import re
from collections.abc import AsyncIterator, Sequence
from typing import Any, Protocol

from openai import AsyncOpenAI, OpenAIError

from backend.app.config import Settings
from backend.app.errors import UpstreamServiceError
from backend.app.models.chat import ChatTurn, ConversationMessage

logger = logging.getLogger(__name__)

_PROVIDER_ROLES = {"user": "user", "model": "assistant"}


class LLMClient(Protocol):
    """Protocol for LLM client implementations."""

    async def generate(
        self, system_instruction: str, history: Sequence[ChatTurn], prompt: str
    ) -> str:
        """Generate a complete reply.

        Args:
            system_instruction: System instruction for this turn
            history: Prior turns, oldest first, alternating user/model
            prompt: Current user message

        Returns:
            Reply text

        Raises:
            UpstreamServiceError: If the provider call fails
        """
        ...

    def stream(
        self, system_instruction: str, history: Sequence[ChatTurn], prompt: str
    ) -> AsyncIterator[str]:
        """Generate a reply incrementally; same contract as generate()."""
        ...


def to_chat_turns(messages: Sequence[ConversationMessage]) -> list[ChatTurn]:
    """Expand question/answer pairs into alternating user/model turns."""
    turns: list[ChatTurn] = []
    for message in messages:
        turns.append(ChatTurn(role="user", text=message.question))
        turns.append(ChatTurn(role="model", text=message.answer))
    return turns


class DeterministicStubClient:
    """Deterministic stub client for testing (no API key required)."""

    async def generate(
        self, system_instruction: str, history: Sequence[ChatTurn], prompt: str
    ) -> str:
        """Generate deterministic stub answer."""
        has_references = "Reference Documents:" in system_instruction
        return (
            f"Stub answer to: {prompt}\n\n"
            f"History turns: {len(history)}. "
            f"Reference documents: {'yes' if has_references else 'no'}.\n\n"
            f"*This is a stub response generated without an LLM.*"
        )

    async def stream(
        self, system_instruction: str, history: Sequence[ChatTurn], prompt: str
    ) -> AsyncIterator[str]:
        """Stream the stub answer word by word."""
        text = await self.generate(system_instruction, history, prompt)
        for piece in re.split(r"(\s+)", text):
            if piece:
                yield piece


class OpenAIClient:
    """OpenAI-compatible chat completions client."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str | None = None,
        temperature: float = 0.7,
        max_tokens: int = 1000,
    ):
        """Initialize client.

        Args:
            api_key: Provider API key (read from environment)
            model: Model name to use
            base_url: OpenAI-compatible endpoint; None for api.openai.com
            temperature: Sampling temperature
            max_tokens: Maximum tokens per reply
        """
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url)
        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens

    def _build_messages(
        self, system_instruction: str, history: Sequence[ChatTurn], prompt: str
    ) -> list[dict[str, Any]]:
        messages: list[dict[str, Any]] = [{"role": "system", "content": system_instruction}]
        messages.extend(
            {"role": _PROVIDER_ROLES[turn.role], "content": turn.text} for turn in history
        )
        messages.append({"role": "user", "content": prompt})
        return messages

    async def generate(
        self, system_instruction: str, history: Sequence[ChatTurn], prompt: str
    ) -> str:
        """Generate reply using the chat completions API."""
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=self._build_messages(system_instruction, history, prompt),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
            )
        except OpenAIError as e:
            logger.error(f"LLM API call failed: {e}")
            raise UpstreamServiceError() from e

        text = response.choices[0].message.content if response.choices else None
        if not text or not text.strip():
            logger.error("LLM returned an empty response")
            raise UpstreamServiceError("Empty response from AI assistant")

        return text

    async def stream(
        self, system_instruction: str, history: Sequence[ChatTurn], prompt: str
    ) -> AsyncIterator[str]:
        """Stream reply deltas as the provider produces them."""
        try:
            stream = await self.client.chat.completions.create(
                model=self.model,
                messages=self._build_messages(system_instruction, history, prompt),
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                stream=True,
            )
            async for chunk in stream:
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta.content
                if delta:
                    yield delta
        except OpenAIError as e:
            logger.error(f"LLM streaming call failed: {e}")
            raise UpstreamServiceError() from e


def get_llm_client(settings: Settings) -> LLMClient:
    """Factory function to get appropriate LLM client based on config.

    Returns:
        OpenAIClient if API key is configured, DeterministicStubClient otherwise
    """
    api_key = settings.llm_api_key

    if api_key and api_key.get_secret_value():
        logger.info(f"Using LLM model {settings.llm_model}")
        return OpenAIClient(
            api_key=api_key.get_secret_value(),
            model=settings.llm_model,
            base_url=settings.llm_base_url,
            temperature=settings.llm_temperature,
            max_tokens=settings.llm_max_output_tokens,
        )
    else:
        logger.warning("No LLM API key configured, using deterministic stub client")
        return DeterministicStubClient()
