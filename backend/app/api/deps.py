"""FastAPI dependencies wiring application state into services.

Process-wide state (document cache, guest store, LLM client, metrics) lives
on app.state and is created in the lifespan; repositories are per request.
Tests replace any of these through app.dependency_overrides.
"""

from typing import Annotated

from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.chat.guest_store import GuestConversationStore
from backend.app.chat.service import ChatbotService
from backend.app.config import Settings
from backend.app.db.engine import get_session
from backend.app.db.repositories import (
    ConversationRepository,
    DocumentRepository,
    MessageRepository,
)
from backend.app.db.sql_repositories import (
    SqlConversationRepository,
    SqlDocumentRepository,
    SqlMessageRepository,
)
from backend.app.docs.cache import DocumentCacheManager
from backend.app.docs.service import DocumentService
from backend.app.llm.client import LLMClient
from backend.app.utils.metrics import PrometheusChatMetrics


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_document_cache(request: Request) -> DocumentCacheManager:
    return request.app.state.document_cache


def get_guest_store(request: Request) -> GuestConversationStore:
    return request.app.state.guest_store


def get_llm(request: Request) -> LLMClient:
    return request.app.state.llm


def get_metrics(request: Request) -> PrometheusChatMetrics:
    return request.app.state.metrics


async def get_conversation_repository(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> ConversationRepository:
    return SqlConversationRepository(session)


async def get_message_repository(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> MessageRepository:
    return SqlMessageRepository(session)


async def get_document_repository(
    session: Annotated[AsyncSession, Depends(get_session)],
) -> DocumentRepository:
    return SqlDocumentRepository(session)


def get_chatbot_service(
    conversations: Annotated[ConversationRepository, Depends(get_conversation_repository)],
    messages: Annotated[MessageRepository, Depends(get_message_repository)],
    document_cache: Annotated[DocumentCacheManager, Depends(get_document_cache)],
    guest_store: Annotated[GuestConversationStore, Depends(get_guest_store)],
    llm: Annotated[LLMClient, Depends(get_llm)],
    metrics: Annotated[PrometheusChatMetrics, Depends(get_metrics)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> ChatbotService:
    return ChatbotService(
        conversations=conversations,
        messages=messages,
        document_cache=document_cache,
        guest_store=guest_store,
        llm=llm,
        settings=settings,
        metrics=metrics,
    )


def get_document_service(
    repository: Annotated[DocumentRepository, Depends(get_document_repository)],
    document_cache: Annotated[DocumentCacheManager, Depends(get_document_cache)],
) -> DocumentService:
    """Document service whose mutations refresh the document cache."""
    service = DocumentService(repository)
    service.add_listener(document_cache.on_documents_changed)
    return service
