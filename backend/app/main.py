"""FastAPI application - Vietnamese traffic-law assistant."""

import asyncio
import contextlib
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from functools import partial

from fastapi import FastAPI

from backend.app.api.routes.chatbot import router as chatbot_router
from backend.app.api.routes.documents import router as documents_router
from backend.app.api.routes.health import router as health_router
from backend.app.api.routes.metrics import router as metrics_router
from backend.app.chat.guest_store import GuestConversationStore
from backend.app.config import Settings, get_settings
from backend.app.db.engine import create_session_factory, create_tables, get_async_engine
from backend.app.docs.cache import DocumentCacheManager, load_active_documents
from backend.app.docs.chunker import DocumentChunker
from backend.app.errors import ChatServiceError, chat_service_error_handler
from backend.app.llm.client import LLMClient, get_llm_client
from backend.app.nlp.knowledge_base import get_knowledge_base
from backend.app.utils.metrics import PrometheusChatMetrics

logger = logging.getLogger(__name__)

API_PREFIX = "/api/v1"


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Create process-wide state, warm the document cache, run the guest sweeper."""
    settings: Settings = app.state.settings
    metrics: PrometheusChatMetrics = app.state.metrics

    # Fail fast on a broken keyword/pattern file
    get_knowledge_base()

    engine = get_async_engine()
    app.state.engine = engine
    if settings.auto_create_tables:
        await create_tables(engine)

    if getattr(app.state, "document_cache", None) is None:
        app.state.document_cache = DocumentCacheManager(
            loader=partial(load_active_documents, create_session_factory(engine)),
            chunker=DocumentChunker(settings.chunk_size, settings.chunk_overlap),
            metrics=metrics,
        )
    if getattr(app.state, "guest_store", None) is None:
        app.state.guest_store = GuestConversationStore(
            ttl_seconds=settings.guest_ttl_seconds,
            max_messages=settings.guest_max_messages,
            metrics=metrics,
        )
    if getattr(app.state, "llm", None) is None:
        app.state.llm = get_llm_client(settings)

    try:
        await app.state.document_cache.refresh()
    except Exception:
        logger.error("Initial document cache load failed; will retry on first use", exc_info=True)

    sweeper = asyncio.create_task(
        app.state.guest_store.run_sweeper(settings.guest_sweep_interval_seconds)
    )
    try:
        yield
    finally:
        sweeper.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sweeper


def create_app(
    settings: Settings | None = None,
    *,
    document_cache: DocumentCacheManager | None = None,
    guest_store: GuestConversationStore | None = None,
    llm: LLMClient | None = None,
) -> FastAPI:
    """Build the application; any state passed in replaces what the lifespan would create."""
    settings = settings or get_settings()
    logging.basicConfig(level=settings.log_level.upper())

    app = FastAPI(title="Traffic Law Assistant API", version="0.1.0", lifespan=lifespan)
    app.state.settings = settings
    app.state.metrics = PrometheusChatMetrics()
    app.state.document_cache = document_cache
    app.state.guest_store = guest_store
    app.state.llm = llm

    app.add_exception_handler(ChatServiceError, chat_service_error_handler)

    # Register routes
    app.include_router(health_router, tags=["health"])
    app.include_router(metrics_router, tags=["metrics"])
    app.include_router(chatbot_router, prefix=API_PREFIX)
    app.include_router(documents_router, prefix=API_PREFIX)

    @app.get("/")
    async def root() -> dict[str, str]:
        """Root endpoint."""
        return {"message": "Traffic Law Assistant API", "version": "0.1.0"}

    return app


app = create_app()
