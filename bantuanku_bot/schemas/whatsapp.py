from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field

JID_SUFFIX = "@s.whatsapp.net"
GROUP_SUFFIX = "@g.us"
IMAGE_PLACEHOLDER = "[Pengguna mengirim gambar/bukti transfer]"
DOCUMENT_PLACEHOLDER = "[Pengguna mengirim dokumen]"


class GowaMessagePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    from_: str = Field(default="", alias="from")
    body: Optional[str] = ""
    id: Optional[str] = ""
    from_name: Optional[str] = ""
    chat_id: Optional[str] = ""
    is_from_me: bool = False
    timestamp: Optional[str] = None
    image: Optional[Any] = None
    document: Optional[Any] = None

    @property
    def phone(self) -> str:
        return self.from_.replace(JID_SUFFIX, "")

    @property
    def is_group(self) -> bool:
        return GROUP_SUFFIX in (self.chat_id or "")

    @property
    def image_ref(self) -> Optional[str]:
        """Path, URL or media id of an attached image, as GOWA sends it."""
        image = self.image
        if not image:
            return None
        if isinstance(image, str):
            return image
        if isinstance(image, dict):
            return image.get("url") or image.get("path") or image.get("id") or None
        return None

    @property
    def effective_text(self) -> str:
        if self.body:
            return self.body
        if self.image:
            return IMAGE_PLACEHOLDER
        if self.document:
            return DOCUMENT_PLACEHOLDER
        return ""


class GowaWebhookRequest(BaseModel):
    model_config = ConfigDict(extra="ignore")

    event: Optional[str] = None
    device_id: Optional[str] = None
    payload: GowaMessagePayload = Field(default_factory=GowaMessagePayload)


class ConversationSummary(BaseModel):
    phone: str
    profile_name: str = ""
    donatur_id: Optional[str] = None
    donor_name: Optional[str] = None
    flow: Optional[str] = None
    step: Optional[str] = None
    flow_data: dict = Field(default_factory=dict)
    history: list[dict] = Field(default_factory=list)
    last_activity: float = 0.0


class ConversationListResponse(BaseModel):
    total: int
    conversations: list[ConversationSummary]
