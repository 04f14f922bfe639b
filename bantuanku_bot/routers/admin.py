"""Admin endpoints for inspecting live bot conversations."""

from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Request

from bantuanku_bot.config import settings
from bantuanku_bot.schemas.whatsapp import ConversationListResponse, ConversationSummary
from bantuanku_bot.services.session_service import Session

router = APIRouter(prefix="/admin", tags=["admin"])


def _require_admin_token(provided: Optional[str]) -> None:
    expected = settings.admin_token
    if not expected:
        raise HTTPException(status_code=500, detail="ADMIN_TOKEN not configured")
    if not provided or provided != expected:
        raise HTTPException(status_code=401, detail="Invalid admin token")


def _summary(session: Session) -> ConversationSummary:
    flow = session.flow
    return ConversationSummary(
        phone=session.phone,
        profile_name=session.profile_name,
        donatur_id=session.donatur_id,
        donor_name=session.donor_name,
        flow=flow.type.value if flow else None,
        step=flow.step.value if flow else None,
        flow_data=flow.data if flow else {},
        history=[{"role": m.role, "content": m.content} for m in session.history],
        last_activity=session.last_activity,
    )


@router.get("/whatsapp/conversations", response_model=ConversationListResponse)
async def list_conversations(
    request: Request,
    limit: int = 50,
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    """Active in-memory sessions, most recent first."""
    _require_admin_token(x_admin_token)
    sessions = request.app.state.sessions.active_sessions()
    return ConversationListResponse(
        total=len(sessions),
        conversations=[_summary(s) for s in sessions[: max(limit, 0)]],
    )


@router.get("/health")
async def health(
    request: Request,
    x_admin_token: Optional[str] = Header(default=None, alias="X-Admin-Token"),
):
    _require_admin_token(x_admin_token)
    state = request.app.state
    return {
        "status": "ok",
        "bot_enabled": settings.bot_enabled,
        "llm_provider": settings.llm_provider,
        "llm_configured": bool(settings.llm_api_key),
        "gateway_configured": state.gateway.is_configured,
        "active_sessions": len(state.sessions),
        "dedup_entries": len(state.dedup),
    }
