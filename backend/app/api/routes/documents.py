"""Document endpoints - CRUD over legal documents and retrieval search.

Every mutation refreshes the document cache through the listener that
get_document_service registers.
"""

from typing import Annotated, Literal

from fastapi import APIRouter, Depends, Query, Response, status
from pydantic import BaseModel

from backend.app.api.deps import get_app_settings, get_document_cache, get_document_service
from backend.app.config import Settings
from backend.app.docs.cache import DocumentCacheManager
from backend.app.docs.retriever import rank_for_query
from backend.app.docs.service import DocumentService
from backend.app.models.chat import CamelModel, PaginationMeta
from backend.app.models.docs import (
    DocumentActiveSetUpdate,
    DocumentActiveUpdate,
    DocumentChunk,
    DocumentCreate,
    DocumentRecord,
    DocumentUpdate,
)

router = APIRouter(prefix="/documents", tags=["documents"])


class DocumentListResponse(CamelModel):
    """Response for GET /documents."""

    data: list[DocumentRecord]
    meta: PaginationMeta


class DocumentSearchMatch(BaseModel):
    """Single search result with chunk and score."""

    chunk: DocumentChunk
    score: int


class DocumentSearchResponse(BaseModel):
    """Response for GET /documents/search."""

    matches: list[DocumentSearchMatch]
    query: str


@router.post("", response_model=DocumentRecord, status_code=status.HTTP_201_CREATED)
async def create_document(
    payload: DocumentCreate,
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> DocumentRecord:
    """Create a document."""
    return await service.create(payload)


@router.get("", response_model=DocumentListResponse, response_model_by_alias=True)
async def list_documents(
    service: Annotated[DocumentService, Depends(get_document_service)],
    page: Annotated[int, Query(ge=1)] = 1,
    limit: Annotated[int, Query(ge=1, le=100)] = 10,
    is_active: Annotated[bool | None, Query(alias="isActive")] = None,
    sort_order: Annotated[Literal["asc", "desc"], Query(alias="sortOrder")] = "desc",
) -> DocumentListResponse:
    """List documents, newest first by default."""
    filters = {"is_active": is_active} if is_active is not None else None
    result = await service.list_documents(
        page=page, limit=limit, sort_order=sort_order, filters=filters
    )
    return DocumentListResponse(
        data=result.items, meta=PaginationMeta.build(result.total, page, limit)
    )


@router.get("/search", response_model=DocumentSearchResponse)
async def search_documents(
    document_cache: Annotated[DocumentCacheManager, Depends(get_document_cache)],
    settings: Annotated[Settings, Depends(get_app_settings)],
    q: Annotated[str, Query(min_length=1, max_length=1000)],
    limit: Annotated[int | None, Query(ge=1, le=50)] = None,
) -> DocumentSearchResponse:
    """Rank cached chunks against a query the way chat retrieval does."""
    ranked = rank_for_query(
        await document_cache.all_chunks(),
        q,
        limit or settings.rag_max_chunks,
        legal_search_max_chunks=settings.legal_search_max_chunks,
    )
    return DocumentSearchResponse(
        matches=[DocumentSearchMatch(chunk=chunk, score=score) for chunk, score in ranked],
        query=q,
    )


@router.get("/active", response_model=list[DocumentRecord])
async def list_active_documents(
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> list[DocumentRecord]:
    """Documents currently used as chat context, ordered by id."""
    return await service.get_active_documents()


@router.put("/active", response_model=list[DocumentRecord])
async def replace_active_documents(
    payload: DocumentActiveSetUpdate,
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> list[DocumentRecord]:
    """Make exactly the listed documents active; 404 if any id is unknown."""
    return await service.set_active_documents(payload.document_ids)


@router.get("/{document_id}", response_model=DocumentRecord)
async def get_document(
    document_id: int,
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> DocumentRecord:
    """Get one document."""
    return await service.get(document_id)


@router.put("/{document_id}", response_model=DocumentRecord)
async def update_document(
    document_id: int,
    payload: DocumentUpdate,
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> DocumentRecord:
    """Update title, content, type or active flag."""
    return await service.update(document_id, payload)


@router.patch("/{document_id}/active", response_model=DocumentRecord)
async def set_document_active(
    document_id: int,
    payload: DocumentActiveUpdate,
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> DocumentRecord:
    """Activate or deactivate a document."""
    return await service.set_active(document_id, payload.is_active)


@router.delete("/{document_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_document(
    document_id: int,
    service: Annotated[DocumentService, Depends(get_document_service)],
) -> Response:
    """Delete a document."""
    await service.delete(document_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)
