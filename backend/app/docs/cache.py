"""In-memory document cache: chunked snapshot of all active documents.

The snapshot is immutable and replaced wholesale on refresh, so readers
holding the previous reference keep a consistent view while a rebuild runs.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from backend.app.db.sql_repositories import SqlDocumentRepository
from backend.app.docs.chunker import DocumentChunker
from backend.app.models.docs import ActiveDocument, CachedDocument, DocumentCache, DocumentChunk
from backend.app.utils.metrics import PrometheusChatMetrics

logger = logging.getLogger(__name__)

DocumentLoader = Callable[[], Awaitable[Sequence[ActiveDocument]]]


class DocumentCacheManager:
    """Owns the current DocumentCache snapshot."""

    def __init__(
        self,
        loader: DocumentLoader,
        chunker: DocumentChunker | None = None,
        metrics: PrometheusChatMetrics | None = None,
    ) -> None:
        """Initialize cache manager.

        Args:
            loader: Async callable returning active documents with content
            chunker: Chunker used on every rebuild
            metrics: Optional metrics sink
        """
        self._loader = loader
        self._chunker = chunker or DocumentChunker()
        self._metrics = metrics
        self._snapshot: DocumentCache | None = None
        self._refresh_lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._snapshot is not None

    async def refresh(self) -> DocumentCache:
        """Reload active documents and swap in a new snapshot.

        Refreshes are serialized; the swap is a single reference assignment.

        Raises:
            Exception: Whatever the loader or chunker raised; the previous
                snapshot stays in place
        """
        async with self._refresh_lock:
            try:
                documents = await self._loader()
                snapshot = self._chunker.build_cache(documents)
            except Exception:
                logger.error("Document cache refresh failed", exc_info=True)
                if self._metrics:
                    self._metrics.inc_cache_refresh("error")
                raise

            self._snapshot = snapshot

        chunk_count = sum(len(doc.chunks) for doc in snapshot.documents)
        logger.info(
            f"Document cache refreshed with {len(snapshot.documents)} documents "
            f"({chunk_count} chunks)"
        )
        if self._metrics:
            self._metrics.inc_cache_refresh("success")

        return snapshot

    async def on_documents_changed(self, document_id: int | None, event: str) -> None:
        """Lifecycle listener: any document mutation triggers a full rebuild."""
        target = f"Document {document_id}" if document_id is not None else "Documents"
        logger.info(f"{target} {event}; refreshing cache")
        await self.refresh()

    async def get_snapshot(self) -> DocumentCache:
        """Current snapshot, loading it first if the cache is empty."""
        snapshot = self._snapshot
        if snapshot is None:
            snapshot = await self.refresh()
        return snapshot

    async def all_chunks(self) -> list[DocumentChunk]:
        return (await self.get_snapshot()).all_chunks()

    async def documents(self) -> tuple[CachedDocument, ...]:
        return (await self.get_snapshot()).documents


async def load_active_documents(
    session_factory: async_sessionmaker[AsyncSession],
) -> list[ActiveDocument]:
    """SQL-backed loader: active documents with their text content."""
    async with session_factory() as session:
        records = await SqlDocumentRepository(session).find_active()

    return [
        ActiveDocument(id=record.id, title=record.title, content=record.content or "")
        for record in records
    ]
