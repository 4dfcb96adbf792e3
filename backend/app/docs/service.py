"""Document lifecycle: CRUD over the repository plus change notification."""

import logging
from collections.abc import Awaitable, Callable, Sequence
from typing import Any

from backend.app.db.repositories import DocumentRepository, Page, SortOrder
from backend.app.errors import DocumentNotFoundError
from backend.app.models.docs import ActiveDocument, DocumentCreate, DocumentRecord, DocumentUpdate

logger = logging.getLogger(__name__)

# Called with (document_id, event) after a mutation is stored; document_id is
# None for changes spanning several documents
DocumentListener = Callable[[int | None, str], Awaitable[None]]


class DocumentService:
    """Document CRUD that notifies registered listeners after every mutation."""

    def __init__(self, repository: DocumentRepository) -> None:
        self._repository = repository
        self._listeners: list[DocumentListener] = []

    def add_listener(self, listener: DocumentListener) -> None:
        self._listeners.append(listener)

    async def _notify(self, document_id: int | None, event: str) -> None:
        # The mutation is already committed; a failing listener is logged only
        for listener in self._listeners:
            try:
                await listener(document_id, event)
            except Exception:
                logger.error(
                    f"Document listener failed for {event} of document {document_id}",
                    exc_info=True,
                )

    async def create(self, payload: DocumentCreate) -> DocumentRecord:
        record = await self._repository.create(
            title=payload.title,
            content=payload.content,
            file_type=payload.file_type,
            is_active=payload.is_active,
        )
        logger.info(f"Created document {record.id}: {record.title!r}")
        await self._notify(record.id, "created")
        return record

    async def update(self, document_id: int, payload: DocumentUpdate) -> DocumentRecord:
        changes = payload.model_dump(exclude_unset=True, exclude_none=True)
        record = await self._repository.update(document_id, **changes)
        if record is None:
            raise DocumentNotFoundError()
        await self._notify(document_id, "updated")
        return record

    async def set_active(self, document_id: int, is_active: bool) -> DocumentRecord:
        record = await self._repository.update(document_id, is_active=is_active)
        if record is None:
            raise DocumentNotFoundError()
        await self._notify(document_id, "activated" if is_active else "deactivated")
        return record

    async def set_active_documents(self, document_ids: Sequence[int]) -> list[DocumentRecord]:
        """Make exactly document_ids the active set.

        Every id is checked before anything changes; listeners are notified
        once for the whole swap.

        Raises:
            DocumentNotFoundError: An id does not exist (nothing is changed)
        """
        unique_ids = list(dict.fromkeys(document_ids))
        for document_id in unique_ids:
            if await self._repository.find_by_id(document_id) is None:
                raise DocumentNotFoundError(f"Document with id {document_id} not found")

        active = await self._repository.replace_active_set(unique_ids)
        logger.info(f"Active document set replaced: {[record.id for record in active]}")
        await self._notify(None, "active_set_changed")
        return active

    async def delete(self, document_id: int) -> None:
        if not await self._repository.delete(document_id):
            raise DocumentNotFoundError()
        logger.info(f"Deleted document {document_id}")
        await self._notify(document_id, "deleted")

    async def get(self, document_id: int) -> DocumentRecord:
        record = await self._repository.find_by_id(document_id)
        if record is None:
            raise DocumentNotFoundError()
        return record

    async def list_documents(
        self,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: SortOrder = "desc",
        filters: dict[str, Any] | None = None,
    ) -> Page[DocumentRecord]:
        return await self._repository.find_all(page, limit, sort_by, sort_order, filters)

    async def get_active_documents(self) -> list[DocumentRecord]:
        return await self._repository.find_active()

    async def get_active_documents_with_content(self) -> list[ActiveDocument]:
        """Active documents in id order, as consumed by the document cache."""
        records = await self._repository.find_active()
        return [
            ActiveDocument(id=record.id, title=record.title, content=record.content or "")
            for record in records
        ]
