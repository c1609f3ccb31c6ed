"""Client for the downstream chat completion API.

Only the authorized turn is forwarded: the text, the prior history and the
model choice. The request body follows the OpenAI-compatible
``{model, messages, max_tokens}`` shape.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx

from stakechat.core.errors import UpstreamError
from stakechat.core.settings import settings

logger = logging.getLogger(__name__)

HTTP_OK = 200
NO_RESPONSE_TEXT = "No response from API"


@dataclass(frozen=True)
class ChatConfig:
    """Immutable configuration for chat completion calls."""

    url: str | None
    api_key: str | None
    model_id: str | None
    elevated_model_id: str | None
    max_tokens: int
    instructions: str | None
    timeout_seconds: float


def load_chat_config() -> ChatConfig:
    """Build configuration object from global settings."""

    return ChatConfig(
        url=settings.chat_completion_url,
        api_key=settings.chat_api_key,
        model_id=settings.model_id,
        elevated_model_id=settings.elevated_model_id,
        max_tokens=settings.max_tokens,
        instructions=settings.chat_instructions,
        timeout_seconds=float(settings.chat_timeout_seconds),
    )


class ChatCompletionClient:
    """Thin async wrapper over the chat completion endpoint."""

    def __init__(
        self,
        config: ChatConfig | None = None,
        *,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or load_chat_config()
        self._client = client
        self._owns_client = client is None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.config.timeout_seconds),
                )
        return self._client

    def build_messages(
        self,
        text: str,
        history: Sequence[dict[str, str]] = (),
    ) -> list[dict[str, str]]:
        messages: list[dict[str, str]] = []
        if self.config.instructions:
            messages.append({"role": "system", "content": self.config.instructions})
        messages.extend(
            {"role": str(item["role"]), "content": str(item["content"])} for item in history
        )
        messages.append({"role": "user", "content": text})
        return messages

    def model_for(self, elevated: bool) -> str | None:
        if elevated and self.config.elevated_model_id:
            return self.config.elevated_model_id
        return self.config.model_id

    async def complete(
        self,
        text: str,
        history: Sequence[dict[str, str]] = (),
        *,
        elevated: bool = False,
    ) -> str:
        """Return the assistant reply for ``text``.

        Args:
            text: The user's message for this turn.
            history: Prior ``{role, content}`` messages.
            elevated: True when the caller unlocked the privileged model.

        Raises:
            UpstreamError: If the API is unconfigured, unreachable or returns
                an error status or malformed body.
        """
        if not self.config.url:
            logger.error("API_URL_CHAT_COMPLETION is not configured")
            raise UpstreamError()

        body: dict[str, Any] = {
            "model": self.model_for(elevated),
            "messages": self.build_messages(text, history),
            "max_tokens": self.config.max_tokens,
        }
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"

        client = await self._ensure_client()
        try:
            response = await client.post(self.config.url, json=body, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("Chat completion request failed: %s", exc)
            raise UpstreamError() from exc

        if response.status_code != HTTP_OK:
            logger.warning("Chat completion API responded with %s", response.status_code)
            raise UpstreamError()

        try:
            payload = response.json()
        except ValueError as exc:
            raise UpstreamError() from exc
        return _extract_content(payload)

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""

        async with self._client_lock:
            if self._client is not None and self._owns_client:
                await self._client.aclose()
                self._client = None


def _extract_content(payload: Any) -> str:
    try:
        content = payload["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return NO_RESPONSE_TEXT
    if not content:
        return NO_RESPONSE_TEXT
    return str(content)


class _ChatClientSingleton:
    """Singleton wrapper for ChatCompletionClient."""

    _instance: ChatCompletionClient | None = None

    @classmethod
    def get_instance(cls) -> ChatCompletionClient:
        if cls._instance is None:
            cls._instance = ChatCompletionClient()
        return cls._instance


def get_chat_client() -> ChatCompletionClient:
    """Return the shared chat completion client."""
    return _ChatClientSingleton.get_instance()
