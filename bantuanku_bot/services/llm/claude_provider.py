import base64
from typing import Optional

from bantuanku_bot.logging_config import get_logger
from bantuanku_bot.services.llm.base import (
    MAX_OUTPUT_TOKENS,
    ChatTurn,
    Completion,
    ImageAttachment,
    LLMProvider,
    LLMProviderError,
    PlainReply,
    ToolDefinition,
    ToolInvocation,
    ToolResult,
    TranscriptItem,
    last_user_index,
)

logger = get_logger("llm.claude")

ANTHROPIC_BASE_URL = "https://api.anthropic.com/v1"
ANTHROPIC_VERSION = "2023-06-01"


class ClaudeProvider(LLMProvider):
    """Anthropic Messages API with tool use."""

    name = "claude"

    def __init__(
        self,
        api_key: str,
        model: str = "claude-3-5-haiku-latest",
        base_url: str = ANTHROPIC_BASE_URL,
        **kwargs,
    ):
        super().__init__(api_key, model, **kwargs)
        self.base_url = base_url.rstrip("/")

    async def complete(
        self,
        system_prompt: str,
        transcript: list[TranscriptItem],
        tools: list[ToolDefinition],
        image: Optional[ImageAttachment] = None,
    ) -> Completion:
        payload = {
            "model": self.model,
            "max_tokens": MAX_OUTPUT_TOKENS,
            "system": system_prompt,
            "messages": self._messages(transcript, image),
            "tools": [{"name": t.name, "description": t.description, "input_schema": t.parameters} for t in tools],
        }
        logger.debug(f"Claude request: model={self.model}, messages_count={len(payload['messages'])}")
        data = await self._post_json(
            f"{self.base_url}/messages",
            payload,
            headers={"x-api-key": self.api_key, "anthropic-version": ANTHROPIC_VERSION},
        )
        return self._parse(data)

    @staticmethod
    def _messages(transcript: list[TranscriptItem], image: Optional[ImageAttachment]) -> list[dict]:
        last_user = last_user_index(transcript)
        messages: list[dict] = []

        def append(role: str, blocks: list[dict]) -> None:
            # The API rejects two consecutive messages with the same role.
            if messages and messages[-1]["role"] == role:
                messages[-1]["content"].extend(blocks)
            else:
                messages.append({"role": role, "content": blocks})

        for i, item in enumerate(transcript):
            if isinstance(item, ChatTurn):
                blocks: list[dict] = []
                if i == last_user and image is not None:
                    blocks.append(
                        {
                            "type": "image",
                            "source": {
                                "type": "base64",
                                "media_type": image.mime_type,
                                "data": base64.b64encode(image.data).decode("ascii"),
                            },
                        }
                    )
                blocks.append({"type": "text", "text": item.content})
                append("assistant" if item.role == "assistant" else "user", blocks)
            elif isinstance(item, ToolInvocation):
                append("assistant", [{"type": "tool_use", "id": item.call_id, "name": item.name, "input": item.arguments}])
            elif isinstance(item, ToolResult):
                append("user", [{"type": "tool_result", "tool_use_id": item.call_id, "content": item.content}])

        # A conversation must open with a user turn.
        while messages and messages[0]["role"] != "user":
            messages.pop(0)
        return messages

    def _parse(self, data: dict) -> Completion:
        blocks = data.get("content")
        if blocks is None:
            raise LLMProviderError(self.name, "response has no content")

        for block in blocks:
            if block.get("type") == "tool_use":
                return ToolInvocation(name=block.get("name", ""), arguments=block.get("input") or {}, call_id=block.get("id"))

        text = "".join(block.get("text", "") for block in blocks if block.get("type") == "text")
        return PlainReply(text=text)
