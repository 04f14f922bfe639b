"""Outbound WhatsApp messaging through a GOWA (go-whatsapp-web-multidevice) server."""

from typing import Optional, Protocol
from urllib.parse import urlparse

import httpx

from bantuanku_bot.logging_config import get_logger
from bantuanku_bot.services.formatting import normalize_phone

logger = get_logger("whatsapp_service")

JID_SUFFIX = "@s.whatsapp.net"
DEFAULT_IMAGE_MIME = "image/jpeg"


class MessagingGateway(Protocol):
    async def send_message(self, phone: str, text: str) -> bool: ...

    async def send_image(self, phone: str, image_url: str, caption: Optional[str] = None) -> bool: ...

    async def send_file(self, phone: str, content: bytes, filename: str, caption: Optional[str] = None) -> bool: ...

    async def download_media(self, ref: str) -> Optional[tuple[bytes, str]]: ...


def format_jid(phone: str) -> str:
    """08xx / +62xx / 620xx -> 62xx@s.whatsapp.net"""
    digits = normalize_phone(phone)
    if digits.startswith("0"):
        digits = "62" + digits[1:]
    if digits.startswith("620"):
        digits = "62" + digits[3:]
    return f"{digits}{JID_SUFFIX}"


class WhatsAppService:
    """GOWA client. Sends are best-effort: failures are logged and reported as False."""

    def __init__(
        self,
        api_url: str,
        username: str = "",
        password: str = "",
        device_id: str = "",
        timeout_seconds: float = 15.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_url = (api_url or "").rstrip("/")
        self.username = username
        self.password = password
        self.device_id = device_id
        self.timeout_seconds = timeout_seconds
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_url)

    def _client(self) -> httpx.AsyncClient:
        headers = {}
        if self.device_id:
            headers["X-Device-Id"] = self.device_id
        auth = (self.username, self.password) if self.username else None
        return httpx.AsyncClient(
            timeout=self.timeout_seconds,
            auth=auth,
            headers=headers,
            transport=self._transport,
        )

    async def _post(self, path: str, *, json: Optional[dict] = None, data: Optional[dict] = None, files=None) -> bool:
        if not self.is_configured:
            logger.warning("GOWA not configured, message dropped", extra={"context": {"path": path}})
            return False
        try:
            async with self._client() as client:
                response = await client.post(f"{self.api_url}{path}", json=json, data=data, files=files)
            result = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"GOWA {path} error: {e}")
            return False

        ok = isinstance(result, dict) and result.get("code") == "SUCCESS"
        if not ok:
            logger.warning(
                "GOWA send failed",
                extra={"context": {"path": path, "status": response.status_code, "body": str(result)[:300]}},
            )
        return ok

    async def send_message(self, phone: str, text: str) -> bool:
        return await self._post("/send/message", json={"phone": format_jid(phone), "message": text})

    async def send_image(self, phone: str, image_url: str, caption: Optional[str] = None) -> bool:
        data = {"phone": format_jid(phone), "image_url": image_url}
        if caption:
            data["caption"] = caption
        return await self._post("/send/image", data=data)

    async def send_file(self, phone: str, content: bytes, filename: str, caption: Optional[str] = None) -> bool:
        data = {"phone": format_jid(phone)}
        if caption:
            data["caption"] = caption
        return await self._post("/send/file", data=data, files={"file": (filename, content)})

    def media_url(self, ref: str) -> str:
        """Absolute URLs pass through; paths resolve against the GOWA base; bare ids use /media/download."""
        if ref.startswith("http://") or ref.startswith("https://"):
            return ref
        if "/" in ref:
            return f"{self.api_url}/{ref.lstrip('/')}"
        return f"{self.api_url}/media/download/{ref}"

    async def download_media(self, ref: str) -> Optional[tuple[bytes, str]]:
        """Fetch an inbound image. Returns (bytes, mime type) or None."""
        if not ref:
            return None
        url = self.media_url(ref)
        same_host = self.is_configured and urlparse(url).netloc == urlparse(self.api_url).netloc
        try:
            if same_host:
                async with self._client() as client:
                    response = await client.get(url)
            else:
                async with httpx.AsyncClient(timeout=self.timeout_seconds, transport=self._transport) as client:
                    response = await client.get(url, follow_redirects=True)
        except httpx.HTTPError as e:
            logger.warning("Media download error", extra={"context": {"url": url, "error": str(e)}})
            return None

        if response.status_code != 200 or not response.content:
            logger.warning("Media download failed", extra={"context": {"url": url, "status": response.status_code}})
            return None

        mime_type = (response.headers.get("content-type") or DEFAULT_IMAGE_MIME).split(";")[0].strip()
        logger.info("Media downloaded", extra={"context": {"bytes": len(response.content), "mime": mime_type}})
        return response.content, mime_type
