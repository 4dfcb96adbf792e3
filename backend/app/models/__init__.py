"""Models package - re-exports for convenience."""

from backend.app.models.chat import (
    ChatHistoryResponse,
    ChatRequest,
    ChatResponse,
    ChatTurn,
    ConversationListResponse,
    ConversationMessage,
    ConversationSummary,
    GuestConversation,
    GuestHistoryMeta,
    GuestHistoryResponse,
    GuestMessage,
    HistoryMessage,
    PaginationMeta,
)
from backend.app.models.docs import (
    ActiveDocument,
    CachedDocument,
    DocumentActiveSetUpdate,
    DocumentActiveUpdate,
    DocumentCache,
    DocumentChunk,
    DocumentCreate,
    DocumentRecord,
    DocumentUpdate,
)
from backend.app.models.events import StreamEvent, StreamMetadata
from backend.app.models.legal import LegalArticleReference

__all__ = [
    # Chat
    "ChatHistoryResponse",
    "ChatRequest",
    "ChatResponse",
    "ChatTurn",
    "ConversationListResponse",
    "ConversationMessage",
    "ConversationSummary",
    "GuestConversation",
    "GuestHistoryMeta",
    "GuestHistoryResponse",
    "GuestMessage",
    "HistoryMessage",
    "PaginationMeta",
    # Documents
    "ActiveDocument",
    "CachedDocument",
    "DocumentActiveSetUpdate",
    "DocumentActiveUpdate",
    "DocumentCache",
    "DocumentChunk",
    "DocumentCreate",
    "DocumentRecord",
    "DocumentUpdate",
    # Streaming
    "StreamEvent",
    "StreamMetadata",
    # Legal
    "LegalArticleReference",
]
