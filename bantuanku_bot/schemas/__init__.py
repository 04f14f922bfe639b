from bantuanku_bot.schemas.whatsapp import (
    ConversationListResponse,
    ConversationSummary,
    GowaMessagePayload,
    GowaWebhookRequest,
)

__all__ = ["GowaMessagePayload", "GowaWebhookRequest", "ConversationSummary", "ConversationListResponse"]
