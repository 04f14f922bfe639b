import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional, Union

import httpx

from bantuanku_bot.logging_config import get_logger

logger = get_logger("llm")

DEFAULT_TIMEOUT_SECONDS = 30.0
RATE_LIMIT_RETRIES = 2
RATE_LIMIT_DELAY_SECONDS = 3.0
MAX_OUTPUT_TOKENS = 1024


class LLMProviderError(Exception):
    """The provider call failed (HTTP error, timeout or unreadable response)."""

    def __init__(self, provider: str, message: str, status_code: Optional[int] = None):
        self.provider = provider
        self.status_code = status_code
        super().__init__(f"{provider}: {message}")


@dataclass
class ImageAttachment:
    data: bytes
    mime_type: str = "image/jpeg"


@dataclass
class ToolDefinition:
    name: str
    description: str
    parameters: dict


@dataclass
class PlainReply:
    text: str


@dataclass
class ToolInvocation:
    name: str
    arguments: dict = field(default_factory=dict)
    call_id: Optional[str] = None


@dataclass
class ChatTurn:
    role: str  # user, assistant
    content: str


@dataclass
class ToolResult:
    name: str
    content: str
    call_id: Optional[str] = None


# Transcript entries in order: prior chat turns, the current user message,
# then ToolInvocation/ToolResult pairs for every executed round.
TranscriptItem = Union[ChatTurn, ToolInvocation, ToolResult]
Completion = Union[PlainReply, ToolInvocation]


class LLMProvider(ABC):
    """Abstract base class for LLM providers.

    `complete` sends one request and returns either the model's plain reply or
    the single tool it wants to run. The image, if any, belongs to the last
    user turn of the transcript.
    """

    name = "llm"

    def __init__(
        self,
        api_key: str,
        model: str,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        retry_delay_seconds: float = RATE_LIMIT_DELAY_SECONDS,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.retry_delay_seconds = retry_delay_seconds
        self._transport = transport

    @abstractmethod
    async def complete(
        self,
        system_prompt: str,
        transcript: list[TranscriptItem],
        tools: list[ToolDefinition],
        image: Optional[ImageAttachment] = None,
    ) -> Completion:
        """Run one model round."""
        pass

    async def _post_json(self, url: str, payload: dict, headers: Optional[dict] = None) -> dict[str, Any]:
        """POST with the rate-limit retry shared by every adapter: HTTP 429 is
        retried RATE_LIMIT_RETRIES times after a fixed delay."""
        headers = {"Content-Type": "application/json", **(headers or {})}
        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                for attempt in range(RATE_LIMIT_RETRIES + 1):
                    response = await client.post(url, json=payload, headers=headers)
                    if response.status_code == 429 and attempt < RATE_LIMIT_RETRIES:
                        logger.warning(
                            "LLM rate limited, retrying",
                            extra={"context": {"provider": self.name, "attempt": attempt + 1}},
                        )
                        await asyncio.sleep(self.retry_delay_seconds)
                        continue
                    break
        except httpx.HTTPError as e:
            raise LLMProviderError(self.name, f"request failed: {e}") from e

        logger.debug(f"{self.name} response status: {response.status_code}")
        if response.status_code != 200:
            logger.error(
                "LLM API error",
                extra={"context": {"provider": self.name, "status": response.status_code, "body": response.text[:500]}},
            )
            raise LLMProviderError(self.name, f"API error {response.status_code}", response.status_code)

        try:
            return response.json()
        except ValueError as e:
            raise LLMProviderError(self.name, "response is not JSON") from e


def last_user_index(transcript: list[TranscriptItem]) -> int:
    """Index of the last user ChatTurn (where an image is attached), or -1."""
    for i in range(len(transcript) - 1, -1, -1):
        item = transcript[i]
        if isinstance(item, ChatTurn) and item.role == "user":
            return i
    return -1
