import base64
import json
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

logger = get_logger("llm.openai")

OPENAI_BASE_URL = "https://api.openai.com/v1"
GROK_BASE_URL = "https://api.x.ai/v1"


class OpenAIProvider(LLMProvider):
    """OpenAI-compatible chat completions (OpenAI itself, xAI Grok via base_url)."""

    name = "openai"

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", base_url: str = OPENAI_BASE_URL, **kwargs):
        super().__init__(api_key, model, **kwargs)
        self.base_url = base_url.rstrip("/")
        if self.base_url == GROK_BASE_URL:
            self.name = "grok"

    async def complete(
        self,
        system_prompt: str,
        transcript: list[TranscriptItem],
        tools: list[ToolDefinition],
        image: Optional[ImageAttachment] = None,
    ) -> Completion:
        payload = {
            "model": self.model,
            "messages": [{"role": "system", "content": system_prompt}, *self._messages(transcript, image)],
            "tools": [
                {
                    "type": "function",
                    "function": {"name": t.name, "description": t.description, "parameters": t.parameters},
                }
                for t in tools
            ],
            "max_tokens": MAX_OUTPUT_TOKENS,
        }
        logger.debug(f"{self.name} request: model={self.model}, messages_count={len(payload['messages'])}")
        data = await self._post_json(
            f"{self.base_url}/chat/completions",
            payload,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        return self._parse(data)

    @staticmethod
    def _messages(transcript: list[TranscriptItem], image: Optional[ImageAttachment]) -> list[dict]:
        last_user = last_user_index(transcript)
        messages: list[dict] = []
        for i, item in enumerate(transcript):
            if isinstance(item, ChatTurn):
                if i == last_user and image is not None:
                    encoded = base64.b64encode(image.data).decode("ascii")
                    messages.append(
                        {
                            "role": "user",
                            "content": [
                                {"type": "image_url", "image_url": {"url": f"data:{image.mime_type};base64,{encoded}"}},
                                {"type": "text", "text": item.content},
                            ],
                        }
                    )
                else:
                    messages.append({"role": item.role, "content": item.content})
            elif isinstance(item, ToolInvocation):
                messages.append(
                    {
                        "role": "assistant",
                        "content": None,
                        "tool_calls": [
                            {
                                "id": item.call_id,
                                "type": "function",
                                "function": {"name": item.name, "arguments": json.dumps(item.arguments)},
                            }
                        ],
                    }
                )
            elif isinstance(item, ToolResult):
                messages.append({"role": "tool", "tool_call_id": item.call_id, "content": item.content})
        return messages

    def _parse(self, data: dict) -> Completion:
        choices = data.get("choices") or []
        if not choices:
            raise LLMProviderError(self.name, "response has no choices")
        message = choices[0].get("message") or {}

        tool_calls = message.get("tool_calls") or []
        if not tool_calls:
            return PlainReply(text=message.get("content") or "")

        call = tool_calls[0]
        function = call.get("function") or {}
        try:
            arguments = json.loads(function.get("arguments") or "{}")
        except ValueError:
            logger.warning(f"{self.name} tool arguments are not JSON: {function.get('arguments')!r}")
            arguments = {}
        return ToolInvocation(name=function.get("name", ""), arguments=arguments or {}, call_id=call.get("id"))
