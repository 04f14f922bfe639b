from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from bantuanku_bot.config import settings
from bantuanku_bot.logging_config import get_logger, setup_logging
from bantuanku_bot.routers import admin, whatsapp
from bantuanku_bot.services.conversation_service import ConversationService
from bantuanku_bot.services.dedup_service import DedupGuard
from bantuanku_bot.services.gold_price_service import GoldPriceService
from bantuanku_bot.services.session_service import SessionStore
from bantuanku_bot.services.whatsapp_service import WhatsAppService

setup_logging(settings.log_level, mask_phones=settings.log_mask_phones)

logger = get_logger("main")

app = FastAPI(
    title="Bantuanku Bot",
    description="WhatsApp donation assistant",
    version="0.1.0",
)

cors_origins = [origin.strip() for origin in settings.cors_allow_origins.split(",") if origin.strip()]
if not cors_origins:
    cors_origins = ["*"]

app.add_middleware(
    CORSMiddleware,
    allow_origins=cors_origins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(whatsapp.router)
app.include_router(admin.router)


def init_services(target: FastAPI) -> None:
    """Create the long-lived collaborators shared by all requests."""
    state = target.state
    state.gold_prices = GoldPriceService(settings.gold_price_url, cache_seconds=settings.gold_price_cache_seconds)
    state.gateway = WhatsAppService(
        settings.gowa_api_url,
        settings.gowa_username,
        settings.gowa_password,
        settings.gowa_device_id,
        timeout_seconds=settings.gowa_timeout_seconds,
    )
    state.sessions = SessionStore(
        ttl_seconds=settings.session_ttl_seconds,
        history_limit=settings.session_history_limit,
    )
    state.dedup = DedupGuard(ttl_seconds=settings.dedup_ttl_seconds)
    state.conversations = ConversationService(
        state.sessions,
        state.gateway,
        state.gold_prices,
        frontend_url=settings.frontend_url,
    )


@app.on_event("startup")
async def startup() -> None:
    init_services(app)
    logger.info(
        "Bot started",
        extra={
            "context": {
                "llm_provider": settings.llm_provider,
                "gateway_configured": app.state.gateway.is_configured,
                "bot_enabled": settings.bot_enabled,
            }
        },
    )


@app.get("/health")
async def health():
    return {"status": "ok"}
