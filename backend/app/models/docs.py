"""Document domain models."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class ActiveDocument(BaseModel):
    """Active document with its materialized text content."""

    id: int
    title: str
    content: str = ""


class DocumentChunk(BaseModel):
    """Immutable slice of a document; identity is (document_id, chunk_index)."""

    model_config = ConfigDict(frozen=True)

    id: str
    document_id: int
    document_title: str
    content: str
    chunk_index: int = Field(..., ge=0)  # 0-based
    total_chunks: int = Field(..., ge=1)


class CachedDocument(BaseModel):
    """Document held by the cache together with its chunks."""

    model_config = ConfigDict(frozen=True)

    id: int
    title: str
    content: str
    chunks: tuple[DocumentChunk, ...] = ()


class DocumentCache(BaseModel):
    """Snapshot of every active document, rebuilt wholesale on refresh."""

    model_config = ConfigDict(frozen=True)

    documents: tuple[CachedDocument, ...] = ()
    last_updated: datetime

    def all_chunks(self) -> list[DocumentChunk]:
        """Flatten chunks of all documents in document order."""
        return [chunk for doc in self.documents for chunk in doc.chunks]


class DocumentRecord(BaseModel):
    """Stored document as returned by the document endpoints."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    title: str
    content: str
    file_type: str = "txt"
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class DocumentCreate(BaseModel):
    """Request body for creating a document."""

    title: str = Field(..., min_length=1, max_length=255)
    content: str = ""
    file_type: str = Field("txt", max_length=32)
    is_active: bool = True


class DocumentUpdate(BaseModel):
    """Partial update of a document; omitted fields are left unchanged."""

    title: str | None = Field(None, min_length=1, max_length=255)
    content: str | None = None
    file_type: str | None = Field(None, max_length=32)
    is_active: bool | None = None


class DocumentActiveUpdate(BaseModel):
    """Request body for activating or deactivating a document."""

    is_active: bool


class DocumentActiveSetUpdate(BaseModel):
    """Request body replacing the whole active set; unlisted documents are deactivated."""

    document_ids: list[int]
