from typing import Optional

from bantuanku_bot.services.llm.base import (
    ChatTurn,
    ImageAttachment,
    LLMProvider,
    LLMProviderError,
    PlainReply,
    ToolDefinition,
    ToolInvocation,
    ToolResult,
)
from bantuanku_bot.services.llm.claude_provider import ClaudeProvider
from bantuanku_bot.services.llm.gemini_provider import GeminiProvider
from bantuanku_bot.services.llm.openai_provider import GROK_BASE_URL, OpenAIProvider

DEFAULT_MODELS = {
    "gemini": "gemini-2.0-flash",
    "claude": "claude-3-5-haiku-latest",
    "openai": "gpt-4o-mini",
    "grok": "grok-3-mini-fast",
}


def create_provider(
    provider: str,
    api_key: str,
    model: Optional[str] = None,
    timeout_seconds: float = 30.0,
) -> LLMProvider:
    """Build the adapter named by `provider` (gemini, claude, openai, grok)."""
    provider = (provider or "gemini").strip().lower()
    if provider not in DEFAULT_MODELS:
        raise ValueError(f"Unknown LLM provider: {provider}")
    model = model or DEFAULT_MODELS[provider]

    if provider == "claude":
        return ClaudeProvider(api_key, model, timeout_seconds=timeout_seconds)
    if provider == "openai":
        return OpenAIProvider(api_key, model, timeout_seconds=timeout_seconds)
    if provider == "grok":
        return OpenAIProvider(api_key, model, base_url=GROK_BASE_URL, timeout_seconds=timeout_seconds)
    return GeminiProvider(api_key, model, timeout_seconds=timeout_seconds)


__all__ = [
    "ChatTurn",
    "ClaudeProvider",
    "GeminiProvider",
    "ImageAttachment",
    "LLMProvider",
    "LLMProviderError",
    "OpenAIProvider",
    "PlainReply",
    "ToolDefinition",
    "ToolInvocation",
    "ToolResult",
    "create_provider",
]
