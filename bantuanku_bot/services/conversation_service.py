"""Per-message handling: session lookup, routing and the single outbound reply."""

import asyncio
from dataclasses import dataclass
from typing import Callable, Optional

from bantuanku_bot.config import settings
from bantuanku_bot.database import SessionLocal
from bantuanku_bot.logging_config import get_logger
from bantuanku_bot.services.catalog_service import CatalogService, DonaturInfo
from bantuanku_bot.services.flows.common import FlowContext
from bantuanku_bot.services.flows.engine import handle_flow_step
from bantuanku_bot.services.gold_price_service import GoldPriceService
from bantuanku_bot.services.llm import ImageAttachment, LLMProvider, create_provider
from bantuanku_bot.services.orchestrator import MSG_APOLOGY, Orchestrator
from bantuanku_bot.services.prompt_service import build_system_prompt
from bantuanku_bot.services.session_service import Session, SessionStore
from bantuanku_bot.services.tool_executor import ToolExecutor
from bantuanku_bot.services.transaction_service import TransactionService
from bantuanku_bot.services.whatsapp_service import MessagingGateway

logger = get_logger("conversation_service")

MSG_FLOW_INTERRUPTED = "Proses sebelumnya dihentikan karena Anda mengirim gambar."


@dataclass
class IncomingMessage:
    phone: str
    text: str
    message_id: str = ""
    profile_name: str = ""
    image_ref: Optional[str] = None


def default_provider() -> Optional[LLMProvider]:
    if not settings.llm_api_key:
        return None
    return create_provider(
        settings.llm_provider,
        settings.llm_api_key,
        settings.llm_model or None,
        timeout_seconds=settings.llm_timeout_seconds,
    )


def _apply_donatur(session: Session, donatur: DonaturInfo) -> None:
    session.donatur_id = donatur.id
    session.donor_name = donatur.name
    session.donor_email = donatur.email


class ConversationService:
    def __init__(
        self,
        sessions: SessionStore,
        gateway: MessagingGateway,
        gold_prices: GoldPriceService,
        db_factory: Callable = SessionLocal,
        provider_factory: Callable[[], Optional[LLMProvider]] = default_provider,
        frontend_url: str = "",
    ):
        self.sessions = sessions
        self.gateway = gateway
        self.gold_prices = gold_prices
        self.db_factory = db_factory
        self.provider_factory = provider_factory
        self.frontend_url = frontend_url

    async def handle(self, message: IncomingMessage) -> str:
        """Process one inbound message and send exactly one reply.

        Messages from the same phone are handled one at a time.
        """
        async with self.sessions.lock(message.phone):
            session = self.sessions.get_or_create(message.phone, message.profile_name)
            db = await asyncio.to_thread(self.db_factory)
            try:
                reply = await self._process(db, session, message)
            except Exception as e:
                logger.error(
                    "Message handling failed",
                    extra={"context": {"phone": message.phone, "message_id": message.message_id, "error": str(e)}},
                    exc_info=True,
                )
                session.end_flow()
                reply = MSG_APOLOGY
            finally:
                await asyncio.to_thread(db.close)

            session.remember("user", message.text)
            session.remember("assistant", reply)

            sent = await self.gateway.send_message(message.phone, reply)
            if not sent:
                logger.warning("Reply not delivered", extra={"context": {"phone": message.phone}})
            return reply

    async def _process(self, db, session: Session, message: IncomingMessage) -> str:
        catalog = CatalogService(db)
        transactions = TransactionService(db)

        donatur = await asyncio.to_thread(catalog.find_donatur_by_phone, message.phone)
        if donatur:
            _apply_donatur(session, donatur)

        ctx = FlowContext(
            session=session,
            catalog=catalog,
            facade=transactions,
            gold_prices=self.gold_prices,
            frontend_url=self.frontend_url,
        )

        notice = ""
        if message.image_ref and session.flow is not None:
            logger.info(
                "Image received mid-flow, flow dropped",
                extra={"context": {"phone": message.phone, "flow": session.flow.type.value, "step": session.flow.step.value}},
            )
            session.end_flow()
            notice = MSG_FLOW_INTERRUPTED

        if session.flow is not None:
            return await handle_flow_step(ctx, message.text)

        provider = self.provider_factory()
        if provider is None:
            logger.warning("LLM API key not configured", extra={"context": {"phone": message.phone}})
            return MSG_APOLOGY

        image = await self._download_image(message.image_ref)
        executor = ToolExecutor(catalog, transactions, self.gateway, session, image)
        system_prompt = await asyncio.to_thread(build_system_prompt, catalog, message.phone, donatur, self.frontend_url)
        orchestrator = Orchestrator(provider, executor, ctx, system_prompt)
        reply = await orchestrator.run(message.text, image)

        logger.info(
            "Orchestrator reply",
            extra={
                "context": {
                    "phone": message.phone,
                    "provider": provider.name,
                    "tools": [call["name"] for call in orchestrator.tool_calls],
                    "flow": session.flow.type.value if session.flow else None,
                }
            },
        )
        return f"{notice}\n\n{reply}" if notice else reply

    async def _download_image(self, image_ref: Optional[str]) -> Optional[ImageAttachment]:
        if not image_ref:
            return None
        media = await self.gateway.download_media(image_ref)
        if media is None:
            return None
        data, mime_type = media
        return ImageAttachment(data=data, mime_type=mime_type)
