import base64
from typing import Optional

from bantuanku_bot.logging_config import get_logger
from bantuanku_bot.services.llm.base import (
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

logger = get_logger("llm.gemini")

GEMINI_BASE_URL = "https://generativelanguage.googleapis.com/v1beta"


class GeminiProvider(LLMProvider):
    """Google Gemini generateContent with function calling forced on (mode ANY);
    plain replies come back through the respond_to_user tool."""

    name = "gemini"

    def __init__(self, api_key: str, model: str = "gemini-2.0-flash", base_url: str = GEMINI_BASE_URL, **kwargs):
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
            "system_instruction": {"parts": [{"text": system_prompt}]},
            "contents": self._contents(transcript, image),
            "tools": [
                {
                    "function_declarations": [
                        {"name": t.name, "description": t.description, "parameters": t.parameters} for t in tools
                    ]
                }
            ],
            "tool_config": {"function_calling_config": {"mode": "ANY"}},
        }
        logger.debug(f"Gemini request: model={self.model}, contents_count={len(payload['contents'])}")
        data = await self._post_json(
            f"{self.base_url}/models/{self.model}:generateContent",
            payload,
            headers={"x-goog-api-key": self.api_key},
        )
        return self._parse(data)

    @staticmethod
    def _contents(transcript: list[TranscriptItem], image: Optional[ImageAttachment]) -> list[dict]:
        last_user = last_user_index(transcript)
        contents: list[dict] = []
        for i, item in enumerate(transcript):
            if isinstance(item, ChatTurn):
                parts: list[dict] = [{"text": item.content}]
                if i == last_user and image is not None:
                    parts.append(
                        {
                            "inline_data": {
                                "mime_type": image.mime_type,
                                "data": base64.b64encode(image.data).decode("ascii"),
                            }
                        }
                    )
                contents.append({"role": "model" if item.role == "assistant" else "user", "parts": parts})
            elif isinstance(item, ToolInvocation):
                contents.append({"role": "model", "parts": [{"functionCall": {"name": item.name, "args": item.arguments}}]})
            elif isinstance(item, ToolResult):
                contents.append(
                    {
                        "role": "user",
                        "parts": [{"functionResponse": {"name": item.name, "response": {"result": item.content}}}],
                    }
                )
        return contents

    def _parse(self, data: dict) -> Completion:
        candidates = data.get("candidates") or []
        if not candidates:
            raise LLMProviderError(self.name, "response has no candidates")
        parts = (candidates[0].get("content") or {}).get("parts") or []

        for part in parts:
            call = part.get("functionCall")
            if call:
                return ToolInvocation(name=call.get("name", ""), arguments=call.get("args") or {})

        text = "".join(part.get("text", "") for part in parts)
        return PlainReply(text=text)
