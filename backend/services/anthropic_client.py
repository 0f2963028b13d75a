"""
Anthropic streaming client.

Connects to Anthropic Messages API, streams response text chunks. Used by the
page generator; generated pages can be long, so streaming keeps the request
inside the SDK's non-streaming time limits.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from typing import Any

import anthropic

logger = logging.getLogger(__name__)


class AnthropicClient:
    """Streams responses from Anthropic Messages API."""

    def __init__(self, api_key: str):
        """
        Initialize Anthropic client.

        Args:
            api_key: Anthropic API key
        """
        self.client = anthropic.AsyncAnthropic(api_key=api_key)
        self._last_usage: dict[str, int] | None = None

    async def stream(
        self,
        messages: list[dict[str, Any]],
        system: str | list[dict[str, Any]],
        model: str = "claude-sonnet-4-20250514",
        max_tokens: int = 8192,
        cache_system: bool = False,
        temperature: float | None = None,
    ) -> AsyncIterator[str]:
        """
        Stream response from Anthropic API.

        Args:
            messages: Messages array for the conversation
            system: System prompt (string or list of content blocks)
            model: Model identifier
            max_tokens: Maximum tokens to generate
            cache_system: Wrap a string system prompt in an ephemeral cache block
            temperature: Optional sampling temperature

        Yields:
            Text chunks (str) as they arrive
        """
        system_content: str | list[dict[str, Any]]
        if isinstance(system, str) and cache_system:
            system_content = [{"type": "text", "text": system, "cache_control": {"type": "ephemeral"}}]
        else:
            system_content = system

        kwargs: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "system": system_content,
            "messages": messages,
        }
        if temperature is not None:
            kwargs["temperature"] = temperature

        async with self.client.messages.stream(**kwargs) as stream:
            async for text in stream.text_stream:
                yield text

            final_message = await stream.get_final_message()
            if final_message and hasattr(final_message, "usage"):
                self._last_usage = {
                    "input_tokens": final_message.usage.input_tokens,
                    "output_tokens": final_message.usage.output_tokens,
                    "cache_creation_input_tokens": getattr(final_message.usage, "cache_creation_input_tokens", 0) or 0,
                    "cache_read_input_tokens": getattr(final_message.usage, "cache_read_input_tokens", 0) or 0,
                }
                logger.debug("anthropic: usage %s", self._last_usage)

    async def complete(
        self, messages: list[dict[str, Any]], system: str | list[dict[str, Any]], **kwargs: Any
    ) -> str:
        """Stream a response and return the concatenated text."""
        chunks = [chunk async for chunk in self.stream(messages, system, **kwargs)]
        return "".join(chunks)

    async def get_usage_stats(self) -> dict[str, int] | None:
        """
        Get usage statistics from the most recent API call.

        Returns:
            Dictionary with token counts or None if not available
        """
        return self._last_usage
