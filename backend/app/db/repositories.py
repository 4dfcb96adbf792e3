"""Repository protocol interfaces for data access."""

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Generic, Literal, Protocol, TypeVar

from backend.app.models.docs import DocumentRecord

T = TypeVar("T")

SortOrder = Literal["asc", "desc"]


@dataclass
class ConversationRecord:
    """Conversation data record."""

    id: int
    user_id: int
    title: str
    created_at: datetime
    updated_at: datetime


@dataclass
class MessageRecord:
    """Message data record."""

    id: int
    conversation_id: int
    question: str
    answer: str
    created_at: datetime


@dataclass
class Page(Generic[T]):
    """One page of a find_all query together with the unpaginated total."""

    items: list[T] = field(default_factory=list)
    total: int = 0


class ConversationRepository(Protocol):
    """Repository for conversation operations."""

    async def create(self, user_id: int, title: str) -> ConversationRecord:
        """Create a new conversation.

        Args:
            user_id: Owner of the conversation
            title: Display title

        Returns:
            Created conversation
        """
        ...

    async def find_by_id(self, conversation_id: int) -> ConversationRecord | None:
        """Get conversation by ID, or None if not found."""
        ...

    async def touch(self, conversation_id: int) -> None:
        """Bump updated_at so the conversation sorts as most recent."""
        ...

    async def find_all(
        self,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "updated_at",
        sort_order: SortOrder = "desc",
        filters: dict[str, Any] | None = None,
    ) -> Page[ConversationRecord]:
        """List conversations.

        Args:
            page: 1-based page number
            limit: Page size
            sort_by: Column to order by (id breaks ties)
            sort_order: "asc" or "desc"
            filters: Column equality filters, e.g. {"user_id": 7}

        Returns:
            Page of conversations with the total match count
        """
        ...


class MessageRepository(Protocol):
    """Repository for message operations."""

    async def create(self, conversation_id: int, question: str, answer: str) -> MessageRecord:
        """Persist one question/answer exchange."""
        ...

    async def find_by_id(self, message_id: int) -> MessageRecord | None:
        """Get message by ID, or None if not found."""
        ...

    async def find_all(
        self,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: SortOrder = "asc",
        filters: dict[str, Any] | None = None,
    ) -> Page[MessageRecord]:
        """List messages; same paging contract as ConversationRepository.find_all."""
        ...


class DocumentRepository(Protocol):
    """Repository for legal document operations."""

    async def create(
        self, title: str, content: str, file_type: str = "txt", is_active: bool = True
    ) -> DocumentRecord:
        """Create a new document."""
        ...

    async def find_by_id(self, document_id: int) -> DocumentRecord | None:
        """Get document by ID, or None if not found."""
        ...

    async def find_all(
        self,
        page: int = 1,
        limit: int = 10,
        sort_by: str = "created_at",
        sort_order: SortOrder = "desc",
        filters: dict[str, Any] | None = None,
    ) -> Page[DocumentRecord]:
        """List documents; same paging contract as ConversationRepository.find_all."""
        ...

    async def update(self, document_id: int, **changes: Any) -> DocumentRecord | None:
        """Apply field changes; returns the updated document or None if not found."""
        ...

    async def delete(self, document_id: int) -> bool:
        """Delete a document; returns False if it did not exist."""
        ...

    async def find_active(self) -> list[DocumentRecord]:
        """All active documents ordered by id."""
        ...

    async def replace_active_set(self, document_ids: Sequence[int]) -> list[DocumentRecord]:
        """Activate exactly document_ids and deactivate every other document.

        Applied as one unit; returns the new active documents ordered by id.
        """
        ...
