"""Chat request/response DTOs and conversation models.

Client-visible shapes serialize with camelCase aliases (conversationId,
isGuest, ...) while Python code uses snake_case attribute names.
"""

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model serialized with camelCase aliases."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ChatRequest(CamelModel):
    """Request body for the chat endpoints."""

    message: str = Field(..., min_length=1, max_length=1000)
    conversation_id: int | None = Field(None, ge=1)
    is_guest: bool | None = None
    guest_session_id: str | None = Field(None, max_length=100)


class ChatResponse(CamelModel):
    """Response body for the non-streaming chat endpoint."""

    response: str
    conversation_id: int | None = None
    message_id: int | None = None
    timestamp: datetime
    is_guest: bool
    guest_session_id: str | None = None


class ConversationMessage(BaseModel):
    """One question/answer exchange used as LLM history, oldest first."""

    question: str
    answer: str


class ChatTurn(BaseModel):
    """Provider-neutral chat history turn."""

    role: Literal["user", "model"]
    text: str


class GuestMessage(BaseModel):
    """Question/answer pair held in a guest session."""

    question: str
    answer: str
    timestamp: datetime


class GuestConversation(BaseModel):
    """In-memory guest session; lost on process restart."""

    id: str
    messages: list[GuestMessage] = Field(default_factory=list)
    created_at: datetime


class HistoryMessage(CamelModel):
    """Message entry in a history listing."""

    id: int | str
    question: str
    answer: str
    created_at: datetime


class ConversationSummary(CamelModel):
    """Conversation entry in a conversation listing."""

    id: int
    title: str
    created_at: datetime
    updated_at: datetime | None = None


class PaginationMeta(CamelModel):
    """Pagination metadata."""

    total: int
    page: int
    last_page: int
    has_next_page: bool
    has_previous_page: bool

    @classmethod
    def build(cls, total: int, page: int, limit: int) -> "PaginationMeta":
        """Compute metadata for a page of `limit` items."""
        last_page = -(-total // limit) if limit > 0 else 0
        return cls(
            total=total,
            page=page,
            last_page=last_page,
            has_next_page=page < last_page,
            has_previous_page=page > 1,
        )


class GuestHistoryMeta(CamelModel):
    """Metadata for guest history."""

    total: int
    is_guest: bool = True
    conversation_id: str | None = None


class GuestHistoryResponse(CamelModel):
    """Guest chat history."""

    data: list[HistoryMessage]
    meta: GuestHistoryMeta


class ChatHistoryResponse(CamelModel):
    """Paginated history of one persistent conversation."""

    data: list[HistoryMessage]
    meta: PaginationMeta
    conversation: ConversationSummary


class ConversationListResponse(CamelModel):
    """Paginated list of a user's conversations."""

    data: list[ConversationSummary]
    meta: PaginationMeta
