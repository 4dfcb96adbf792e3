"""Shared pytest fixtures for all test suites."""

import os
from collections.abc import AsyncGenerator, AsyncIterator, Generator, Sequence
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool

from backend.app.api.deps import (
    get_conversation_repository,
    get_document_repository,
    get_message_repository,
)
from backend.app.chat.guest_store import GuestConversationStore
from backend.app.chat.service import ChatbotService
from backend.app.config import Settings
from backend.app.db.inmemory import (
    InMemoryConversationRepository,
    InMemoryDocumentRepository,
    InMemoryMessageRepository,
)
from backend.app.db.models import Base
from backend.app.docs.cache import DocumentCacheManager
from backend.app.docs.chunker import DocumentChunker
from backend.app.docs.service import DocumentService
from backend.app.errors import UpstreamServiceError
from backend.app.main import create_app
from backend.app.models.chat import ChatTurn
from backend.app.models.docs import DocumentCreate, DocumentRecord
from backend.app.nlp.knowledge_base import KnowledgeBase, get_knowledge_base

DECREE_168_TEXT = (
    "Nghị định 168/2024/NĐ-CP quy định xử phạt vi phạm hành chính về trật tự, an toàn giao "
    "thông trong lĩnh vực giao thông đường bộ.\n"
    "Điều 6. Xử phạt, trừ điểm giấy phép lái xe của người điều khiển xe ô tô vi phạm quy tắc "
    "giao thông đường bộ.\n"
    "Khoản 9. Phạt tiền từ 18.000.000 đồng đến 20.000.000 đồng đối với người điều khiển xe "
    "thực hiện hành vi không chấp hành hiệu lệnh của đèn tín hiệu giao thông.\n"
    "Điều 7. Xử phạt người điều khiển xe mô tô, xe gắn máy vi phạm quy tắc giao thông.\n"
    "Khoản 2. Phạt tiền từ 400.000 đồng đến 600.000 đồng đối với người không đội mũ bảo hiểm "
    "khi điều khiển xe mô tô.\n"
)

ROAD_RULES_TEXT = (
    "Luật Trật tự, an toàn giao thông đường bộ quy định quy tắc vượt xe.\n"
    "Xe xin vượt phải có báo hiệu bằng đèn hoặc còi và chỉ được vượt xe khi không có chướng "
    "ngại vật phía trước.\n"
    "Người lái xe phải giảm tốc độ khi đi qua khu dân cư và nơi có biển báo nguy hiểm.\n"
)


class RecordingLLMClient:
    """LLM double that records every call and replies with fixed text."""

    def __init__(self, reply: str = "Mức phạt là 18.000.000 đồng.", fail: bool = False) -> None:
        self.reply = reply
        self.fail = fail
        self.calls: list[dict[str, object]] = []

    def _record(
        self, mode: str, system_instruction: str, history: Sequence[ChatTurn], prompt: str
    ) -> None:
        self.calls.append(
            {
                "mode": mode,
                "system_instruction": system_instruction,
                "history": list(history),
                "prompt": prompt,
            }
        )
        if self.fail:
            raise UpstreamServiceError()

    async def generate(
        self, system_instruction: str, history: Sequence[ChatTurn], prompt: str
    ) -> str:
        self._record("generate", system_instruction, history, prompt)
        return self.reply

    async def stream(
        self, system_instruction: str, history: Sequence[ChatTurn], prompt: str
    ) -> AsyncIterator[str]:
        self._record("stream", system_instruction, history, prompt)
        # Provider deltas do not align with word boundaries
        for start in range(0, len(self.reply), 7):
            yield self.reply[start : start + 7]


class FakeClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2025, 1, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def kb() -> KnowledgeBase:
    """Bundled knowledge base."""
    return get_knowledge_base()


@pytest.fixture
def chat_settings() -> Settings:
    """Settings with streaming pacing disabled and no schema creation at startup."""
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        auto_create_tables=False,
        stream_token_delay_ms=0,
        canned_token_delay_ms=0,
        guest_max_messages=50,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def llm() -> RecordingLLMClient:
    return RecordingLLMClient()


@pytest.fixture
def guest_store(clock: FakeClock) -> GuestConversationStore:
    return GuestConversationStore(ttl_seconds=3600, max_messages=50, clock=clock)


@pytest.fixture
def conversation_repo() -> InMemoryConversationRepository:
    return InMemoryConversationRepository()


@pytest.fixture
def message_repo() -> InMemoryMessageRepository:
    return InMemoryMessageRepository()


@pytest.fixture
def document_repo() -> InMemoryDocumentRepository:
    return InMemoryDocumentRepository()


@pytest.fixture
def document_service(document_repo: InMemoryDocumentRepository) -> DocumentService:
    return DocumentService(document_repo)


@pytest.fixture
def document_cache(document_service: DocumentService) -> DocumentCacheManager:
    """Cache over the in-memory document repository, refreshed on every mutation."""
    cache = DocumentCacheManager(
        loader=document_service.get_active_documents_with_content,
        chunker=DocumentChunker(chunk_size=300, chunk_overlap=50),
    )
    document_service.add_listener(cache.on_documents_changed)
    return cache


@pytest.fixture
def chatbot_service(
    conversation_repo: InMemoryConversationRepository,
    message_repo: InMemoryMessageRepository,
    document_cache: DocumentCacheManager,
    guest_store: GuestConversationStore,
    llm: RecordingLLMClient,
    chat_settings: Settings,
    kb: KnowledgeBase,
) -> ChatbotService:
    return ChatbotService(
        conversations=conversation_repo,
        messages=message_repo,
        document_cache=document_cache,
        guest_store=guest_store,
        llm=llm,
        settings=chat_settings,
        kb=kb,
    )


@pytest_asyncio.fixture
async def sqlite_engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    await engine.dispose()


@pytest_asyncio.fixture
async def sqlite_session(sqlite_engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    async with AsyncSession(sqlite_engine, expire_on_commit=False) as session:
        yield session


@pytest_asyncio.fixture
async def postgres_engine() -> AsyncGenerator[AsyncEngine, None]:
    """Create async engine for PostgreSQL integration tests.

    Requires DATABASE_URL to be set to a real PostgreSQL connection string.
    Tests using this fixture should be marked with @pytest.mark.postgres.
    """
    database_url = os.getenv("DATABASE_URL")
    if not database_url:
        pytest.skip("DATABASE_URL not set - skipping postgres test")

    # Ensure it's a postgres URL
    if not database_url.startswith(("postgresql://", "postgresql+asyncpg://")):
        pytest.skip(f"DATABASE_URL is not PostgreSQL: {database_url}")

    # Convert to async driver if needed
    if database_url.startswith("postgresql://"):
        database_url = database_url.replace("postgresql://", "postgresql+asyncpg://", 1)

    engine = create_async_engine(
        database_url,
        poolclass=NullPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def decree_text() -> str:
    return DECREE_168_TEXT


@pytest.fixture
def road_rules_text() -> str:
    return ROAD_RULES_TEXT


@pytest_asyncio.fixture
async def seeded_documents(document_service: DocumentService) -> list[DocumentRecord]:
    """Two active legal documents stored through the document service."""
    return [
        await document_service.create(
            DocumentCreate(title="Nghị định 168/2024", content=DECREE_168_TEXT)
        ),
        await document_service.create(
            DocumentCreate(title="Luật TTATGTĐB", content=ROAD_RULES_TEXT)
        ),
    ]


@pytest.fixture
def api_client(
    chat_settings: Settings,
    document_cache: DocumentCacheManager,
    guest_store: GuestConversationStore,
    llm: RecordingLLMClient,
    conversation_repo: InMemoryConversationRepository,
    message_repo: InMemoryMessageRepository,
    document_repo: InMemoryDocumentRepository,
) -> Generator[TestClient, None, None]:
    """Application over in-memory repositories and the recording LLM."""
    app = create_app(chat_settings, document_cache=document_cache, guest_store=guest_store, llm=llm)
    app.dependency_overrides[get_conversation_repository] = lambda: conversation_repo
    app.dependency_overrides[get_message_repository] = lambda: message_repo
    app.dependency_overrides[get_document_repository] = lambda: document_repo

    with TestClient(app) as client:
        yield client
