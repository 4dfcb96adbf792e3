"""In-memory implementations of repository interfaces."""

from collections.abc import Sequence
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, TypeVar

from backend.app.db.repositories import ConversationRecord, MessageRecord, Page, SortOrder
from backend.app.errors import ValidationError
from backend.app.models.docs import DocumentRecord

T = TypeVar("T")


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _find_page(
    records: list[T],
    page: int,
    limit: int,
    sort_by: str,
    sort_order: SortOrder,
    filters: dict[str, Any] | None,
) -> Page[T]:
    """Filter, sort and slice like the SQL repositories do."""
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")

    for name in [sort_by, *(filters or {})]:
        if records and not hasattr(records[0], name):
            raise ValidationError(f"Unknown field: {name}")

    matching = [
        record
        for record in records
        if all(getattr(record, name) == value for name, value in (filters or {}).items())
    ]
    matching.sort(
        key=lambda record: (getattr(record, sort_by), getattr(record, "id")),
        reverse=sort_order == "desc",
    )

    start = (page - 1) * limit
    return Page(items=matching[start : start + limit], total=len(matching))


class InMemoryConversationRepository:
    """In-memory implementation of ConversationRepository."""

    def __init__(self) -> None:
        self._conversations: dict[int, ConversationRecord] = {}
        self._next_id = 1

    async def create(self, user_id: int, title: str) -> ConversationRecord:
        """Create a new conversation."""
        now = _now()
        record = ConversationRecord(
            id=self._next_id, user_id=user_id, title=title, created_at=now, updated_at=now
        )
        self._conversations[record.id] = record
        self._next_id += 1
        return record

    async def find_by_id(self, conversation_id: int) -> ConversationRecord | None:
        """Get conversation by ID."""
        return self._conversations.get(conversation_id)

    async def touch(self, conversation_id: int) -> None:
        """Bump updated_at."""
        record = self._conversations.get(conversation_id)
        if record is not None:
            self._conversations[conversation_id] = replace(record, updated_at=_now())

    async def find_all(
        self,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "updated_at",
        sort_order: SortOrder = "desc",
        filters: dict[str, Any] | None = None,
    ) -> Page[ConversationRecord]:
        """List conversations."""
        return _find_page(
            list(self._conversations.values()), page, limit, sort_by, sort_order, filters
        )


class InMemoryMessageRepository:
    """In-memory implementation of MessageRepository."""

    def __init__(self) -> None:
        self._messages: dict[int, MessageRecord] = {}
        self._next_id = 1

    async def create(self, conversation_id: int, question: str, answer: str) -> MessageRecord:
        """Persist one exchange."""
        record = MessageRecord(
            id=self._next_id,
            conversation_id=conversation_id,
            question=question,
            answer=answer,
            created_at=_now(),
        )
        self._messages[record.id] = record
        self._next_id += 1
        return record

    async def find_by_id(self, message_id: int) -> MessageRecord | None:
        """Get message by ID."""
        return self._messages.get(message_id)

    async def find_all(
        self,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: SortOrder = "asc",
        filters: dict[str, Any] | None = None,
    ) -> Page[MessageRecord]:
        """List messages."""
        return _find_page(list(self._messages.values()), page, limit, sort_by, sort_order, filters)


class InMemoryDocumentRepository:
    """In-memory implementation of DocumentRepository."""

    _UPDATABLE = frozenset({"title", "content", "file_type", "is_active"})

    def __init__(self) -> None:
        self._documents: dict[int, DocumentRecord] = {}
        self._next_id = 1

    async def create(
        self, title: str, content: str, file_type: str = "txt", is_active: bool = True
    ) -> DocumentRecord:
        """Create a new document."""
        now = _now()
        record = DocumentRecord(
            id=self._next_id,
            title=title,
            content=content,
            file_type=file_type,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )
        self._documents[record.id] = record
        self._next_id += 1
        return record

    async def find_by_id(self, document_id: int) -> DocumentRecord | None:
        """Get document by ID."""
        return self._documents.get(document_id)

    async def find_all(
        self,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: SortOrder = "desc",
        filters: dict[str, Any] | None = None,
    ) -> Page[DocumentRecord]:
        """List documents."""
        return _find_page(
            list(self._documents.values()), page, limit, sort_by, sort_order, filters
        )

    async def update(self, document_id: int, **changes: Any) -> DocumentRecord | None:
        """Apply field changes."""
        unknown = set(changes) - self._UPDATABLE
        if unknown:
            raise ValidationError(f"Cannot update document fields: {sorted(unknown)}")

        record = self._documents.get(document_id)
        if record is None:
            return None

        updated = record.model_copy(update={**changes, "updated_at": _now()})
        self._documents[document_id] = updated
        return updated

    async def delete(self, document_id: int) -> bool:
        """Delete a document."""
        return self._documents.pop(document_id, None) is not None

    async def find_active(self) -> list[DocumentRecord]:
        """All active documents ordered by id."""
        return [doc for _, doc in sorted(self._documents.items()) if doc.is_active]

    async def replace_active_set(self, document_ids: Sequence[int]) -> list[DocumentRecord]:
        """Activate exactly document_ids and deactivate every other document."""
        wanted = set(document_ids)
        now = _now()
        for document_id, record in self._documents.items():
            is_active = document_id in wanted
            if record.is_active != is_active:
                self._documents[document_id] = record.model_copy(
                    update={"is_active": is_active, "updated_at": now}
                )
        return await self.find_active()
