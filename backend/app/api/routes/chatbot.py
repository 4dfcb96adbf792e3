"""Chatbot endpoints - chat, SSE streaming chat and conversation history."""

from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import APIRouter, Depends, Header, Query, Request, Response
from fastapi.responses import StreamingResponse

from backend.app.api.auth import get_current_context, require_user
from backend.app.api.deps import get_chatbot_service
from backend.app.chat.service import ChatbotService
from backend.app.db.context import RequestContext
from backend.app.errors import ValidationError
from backend.app.models.chat import (
    ChatHistoryResponse,
    ChatRequest,
    ChatResponse,
    ConversationListResponse,
    GuestHistoryResponse,
)

router = APIRouter(prefix="/chatbot", tags=["chatbot"])

GUEST_ID_HEADER = "X-Guest-ID"


@router.post("/chat", response_model=ChatResponse, response_model_by_alias=True)
async def chat(
    request: ChatRequest,
    response: Response,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    service: Annotated[ChatbotService, Depends(get_chatbot_service)],
    x_guest_id: Annotated[str | None, Header(alias=GUEST_ID_HEADER)] = None,
) -> ChatResponse:
    """Answer one chat message.

    Guests (no Authorization header, or isGuest=true) keep their session id
    in the X-Guest-ID header; the id is echoed back on every guest response.
    """
    result = await service.chat(ctx.user_id, request, guest_id=x_guest_id)

    if result.is_guest and result.guest_session_id:
        response.headers[GUEST_ID_HEADER] = result.guest_session_id

    return result


@router.post("/chat/stream")
async def chat_stream(
    request: ChatRequest,
    http_request: Request,
    ctx: Annotated[RequestContext, Depends(get_current_context)],
    service: Annotated[ChatbotService, Depends(get_chatbot_service)],
    x_guest_id: Annotated[str | None, Header(alias=GUEST_ID_HEADER)] = None,
) -> StreamingResponse:
    """Answer one chat message as Server-Sent Events.

    Each frame is `data: {json}` with type start, token, complete or error.
    Generation stops when the client disconnects.
    """

    async def event_generator() -> AsyncGenerator[str, None]:
        """Generate SSE events."""
        events = service.chat_stream(ctx.user_id, request, guest_id=x_guest_id)
        try:
            async for event in events:
                if await http_request.is_disconnected():
                    break
                yield event.to_sse()
        finally:
            await events.aclose()

    return StreamingResponse(
        event_generator(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Accel-Buffering": "no",
        },
    )


@router.get("/guest/history", response_model=GuestHistoryResponse, response_model_by_alias=True)
async def guest_history(
    service: Annotated[ChatbotService, Depends(get_chatbot_service)],
    x_guest_id: Annotated[str | None, Header(alias=GUEST_ID_HEADER)] = None,
    guest_session_id: Annotated[str | None, Query(alias="guestSessionId")] = None,
) -> GuestHistoryResponse:
    """Exchanges of the current guest session (empty once it expired)."""
    guest_id = x_guest_id or guest_session_id
    if not guest_id:
        raise ValidationError("Guest session id is required")
    return service.get_guest_chat_history(guest_id)


@router.get(
    "/conversations", response_model=ConversationListResponse, response_model_by_alias=True
)
async def list_conversations(
    user_id: Annotated[int, Depends(require_user)],
    service: Annotated[ChatbotService, Depends(get_chatbot_service)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
) -> ConversationListResponse:
    """Conversations of the current user, most recently updated first."""
    return await service.get_user_conversations(user_id, page=page, limit=limit)


@router.get(
    "/conversations/{conversation_id}/history",
    response_model=ChatHistoryResponse,
    response_model_by_alias=True,
)
async def conversation_history(
    conversation_id: int,
    user_id: Annotated[int, Depends(require_user)],
    service: Annotated[ChatbotService, Depends(get_chatbot_service)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 20,
) -> ChatHistoryResponse:
    """Messages of one of the user's conversations, oldest first."""
    return await service.get_chat_history(user_id, conversation_id, page=page, limit=limit)
