"""SQL implementations of repository interfaces."""

from collections.abc import Sequence
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import Select, func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.db.models import Base, Conversation, Document, Message
from backend.app.db.repositories import ConversationRecord, MessageRecord, Page, SortOrder
from backend.app.errors import ValidationError
from backend.app.models.docs import DocumentRecord


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _column(model: type[Base], name: str) -> Any:
    column = model.__table__.columns.get(name)
    if column is None:
        raise ValidationError(f"Unknown field for {model.__tablename__}: {name}")
    return getattr(model, name)


def _apply_filters(query: Select, model: type[Base], filters: dict[str, Any] | None) -> Select:
    for name, value in (filters or {}).items():
        query = query.where(_column(model, name) == value)
    return query


async def _find_page(
    session: AsyncSession,
    model: type[Base],
    page: int,
    limit: int,
    sort_by: str,
    sort_order: SortOrder,
    filters: dict[str, Any] | None,
) -> tuple[list[Any], int]:
    """Run a filtered, ordered, paginated query plus its total count."""
    if page < 1 or limit < 1:
        raise ValidationError("page and limit must be positive")

    sort_column = _column(model, sort_by)
    id_column = _column(model, "id")
    if sort_order == "desc":
        ordering = (sort_column.desc(), id_column.desc())
    else:
        ordering = (sort_column.asc(), id_column.asc())

    query = _apply_filters(select(model), model, filters)
    count_query = _apply_filters(select(func.count()).select_from(model), model, filters)

    total = (await session.execute(count_query)).scalar_one()
    result = await session.execute(
        query.order_by(*ordering).offset((page - 1) * limit).limit(limit)
    )
    return list(result.scalars().all()), total


def _conversation_record(row: Conversation) -> ConversationRecord:
    return ConversationRecord(
        id=row.id,
        user_id=row.user_id,
        title=row.title,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def _message_record(row: Message) -> MessageRecord:
    return MessageRecord(
        id=row.id,
        conversation_id=row.conversation_id,
        question=row.question,
        answer=row.answer,
        created_at=row.created_at,
    )


class SqlConversationRepository:
    """SQL implementation of ConversationRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, user_id: int, title: str) -> ConversationRecord:
        """Create a new conversation."""
        now = _now()
        row = Conversation(user_id=user_id, title=title, created_at=now, updated_at=now)

        self._session.add(row)
        await self._session.flush()
        record = _conversation_record(row)
        await self._session.commit()

        return record

    async def find_by_id(self, conversation_id: int) -> ConversationRecord | None:
        """Get conversation by ID."""
        row = await self._session.get(Conversation, conversation_id)
        return _conversation_record(row) if row is not None else None

    async def touch(self, conversation_id: int) -> None:
        """Bump updated_at."""
        row = await self._session.get(Conversation, conversation_id)
        if row is None:
            return
        row.updated_at = _now()
        await self._session.commit()

    async def find_all(
        self,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "updated_at",
        sort_order: SortOrder = "desc",
        filters: dict[str, Any] | None = None,
    ) -> Page[ConversationRecord]:
        """List conversations."""
        rows, total = await _find_page(
            self._session, Conversation, page, limit, sort_by, sort_order, filters
        )
        return Page(items=[_conversation_record(row) for row in rows], total=total)


class SqlMessageRepository:
    """SQL implementation of MessageRepository."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(self, conversation_id: int, question: str, answer: str) -> MessageRecord:
        """Persist one exchange."""
        row = Message(
            conversation_id=conversation_id,
            question=question,
            answer=answer,
            created_at=_now(),
        )

        self._session.add(row)
        await self._session.flush()
        record = _message_record(row)
        await self._session.commit()

        return record

    async def find_by_id(self, message_id: int) -> MessageRecord | None:
        """Get message by ID."""
        row = await self._session.get(Message, message_id)
        return _message_record(row) if row is not None else None

    async def find_all(
        self,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: SortOrder = "asc",
        filters: dict[str, Any] | None = None,
    ) -> Page[MessageRecord]:
        """List messages."""
        rows, total = await _find_page(
            self._session, Message, page, limit, sort_by, sort_order, filters
        )
        return Page(items=[_message_record(row) for row in rows], total=total)


class SqlDocumentRepository:
    """SQL implementation of DocumentRepository."""

    _UPDATABLE = frozenset({"title", "content", "file_type", "is_active"})

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def create(
        self, title: str, content: str, file_type: str = "txt", is_active: bool = True
    ) -> DocumentRecord:
        """Create a new document."""
        now = _now()
        row = Document(
            title=title,
            content=content,
            file_type=file_type,
            is_active=is_active,
            created_at=now,
            updated_at=now,
        )

        self._session.add(row)
        await self._session.flush()
        record = DocumentRecord.model_validate(row)
        await self._session.commit()

        return record

    async def find_by_id(self, document_id: int) -> DocumentRecord | None:
        """Get document by ID."""
        row = await self._session.get(Document, document_id)
        return DocumentRecord.model_validate(row) if row is not None else None

    async def find_all(
        self,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: SortOrder = "desc",
        filters: dict[str, Any] | None = None,
    ) -> Page[DocumentRecord]:
        """List documents."""
        rows, total = await _find_page(
            self._session, Document, page, limit, sort_by, sort_order, filters
        )
        return Page(items=[DocumentRecord.model_validate(row) for row in rows], total=total)

    async def update(self, document_id: int, **changes: Any) -> DocumentRecord | None:
        """Apply field changes."""
        unknown = set(changes) - self._UPDATABLE
        if unknown:
            raise ValidationError(f"Cannot update document fields: {sorted(unknown)}")

        row = await self._session.get(Document, document_id)
        if row is None:
            return None

        for name, value in changes.items():
            setattr(row, name, value)
        row.updated_at = _now()

        await self._session.flush()
        record = DocumentRecord.model_validate(row)
        await self._session.commit()

        return record

    async def delete(self, document_id: int) -> bool:
        """Delete a document."""
        row = await self._session.get(Document, document_id)
        if row is None:
            return False

        await self._session.delete(row)
        await self._session.commit()
        return True

    async def find_active(self) -> list[DocumentRecord]:
        """All active documents ordered by id."""
        result = await self._session.execute(
            select(Document).where(Document.is_active.is_(True)).order_by(Document.id)
        )
        return [DocumentRecord.model_validate(row) for row in result.scalars().all()]

    async def replace_active_set(self, document_ids: Sequence[int]) -> list[DocumentRecord]:
        """Activate exactly document_ids and deactivate the rest in one transaction."""
        wanted = set(document_ids)
        now = _now()

        await self._session.execute(
            update(Document)
            .where(Document.id.not_in(wanted), Document.is_active.is_(True))
            .values(is_active=False, updated_at=now)
        )
        await self._session.execute(
            update(Document)
            .where(Document.id.in_(wanted), Document.is_active.is_(False))
            .values(is_active=True, updated_at=now)
        )
        await self._session.commit()

        return await self.find_active()
