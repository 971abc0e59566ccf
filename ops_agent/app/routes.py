from __future__ import annotations

import json
import logging
from typing import Iterator, Optional

from fastapi import APIRouter, Depends, status
from fastapi.responses import StreamingResponse

from ops_agent.app.config import Settings
from ops_agent.app.dependencies import (
    get_authorization,
    get_identity_resolver,
    get_orchestrator,
    get_session_store,
    get_settings,
)
from ops_agent.orchestrator.graph import AgentOrchestrator
from ops_agent.schemas.chat import ChatRequest, ChatResponse, ToolCallSummary
from ops_agent.services.identity import IdentityResolver
from ops_agent.services.sessions import SessionStore

logger = logging.getLogger(__name__)

router = APIRouter()


def sse_frames(content: str) -> Iterator[str]:
    """Frame a finished reply as an OpenAI-style delta stream."""
    yield f"data: {json.dumps({'choices': [{'delta': {'content': content}}]})}\n\n"
    yield "data: [DONE]\n\n"


@router.get("/health", status_code=status.HTTP_200_OK)
def health(settings: Settings = Depends(get_settings)) -> dict:
    return {"app": settings.app_name, "status": "ok"}


@router.post("/api/v1/tenant-chat", response_model=ChatResponse)
def tenant_chat(
    payload: ChatRequest,
    authorization: Optional[str] = Depends(get_authorization),
    identity: IdentityResolver = Depends(get_identity_resolver),
    sessions: SessionStore = Depends(get_session_store),
    orchestrator: AgentOrchestrator = Depends(get_orchestrator),
):
    scope = identity.resolve(payload.tenant_id, authorization)
    session = sessions.get_or_create(scope, payload.ui_context)
    logger.info(
        "Tenant chat turn",
        extra={"tenant_id": scope.tenant_id, "user_id": scope.user_id, "session_id": session.id},
    )
    result = orchestrator.run(
        scope,
        session,
        payload.message,
        history=[message.model_dump() for message in payload.conversation_history],
        ui_context=payload.ui_context,
    )
    if payload.stream:
        return StreamingResponse(sse_frames(result.final_content), media_type="text/event-stream")
    return ChatResponse(
        reply=result.final_content,
        rounds=result.rounds,
        tool_calls=[ToolCallSummary(**entry) for entry in result.tool_log],
    )
