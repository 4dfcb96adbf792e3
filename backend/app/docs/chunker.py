"""Document chunker - deterministic overlapping text windows."""

from collections.abc import Iterable
from datetime import datetime, timezone

from backend.app.models.docs import ActiveDocument, CachedDocument, DocumentCache, DocumentChunk

DEFAULT_CHUNK_SIZE = 1000
DEFAULT_CHUNK_OVERLAP = 200

# A sentence break is only taken when it lies past this fraction of the window
SENTENCE_BREAK_MIN_RATIO = 0.5


class DocumentChunker:
    """Split document text into overlapping, sentence-aware chunks."""

    def __init__(
        self,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        chunk_overlap: int = DEFAULT_CHUNK_OVERLAP,
    ) -> None:
        """Initialize chunker.

        Args:
            chunk_size: Target window size in characters
            chunk_overlap: Characters shared by consecutive windows on a hard break

        Raises:
            ValueError: If overlap is negative or not smaller than the size
        """
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        if not 0 <= chunk_overlap < chunk_size:
            raise ValueError("chunk_overlap must be >= 0 and smaller than chunk_size")

        self.chunk_size = chunk_size
        self.chunk_overlap = chunk_overlap

    def split_text(self, content: str) -> list[str]:
        """Split raw text into stripped, non-empty windows.

        Pure function with no I/O or randomness.

        Strategy:
            1. Take a window of chunk_size characters from the cursor
            2. Unless it is the last window, look backward inside it for the
               last "." or newline; past the midpoint, cut there and move the
               cursor just after the break
            3. Otherwise cut at the window end and move the cursor back by
               chunk_overlap so text around a hard break appears in both chunks
        """
        if not content or not content.strip():
            return []

        pieces: list[str] = []
        start = 0
        length = len(content)

        while start < length:
            end = min(start + self.chunk_size, length)
            window = content[start:end]

            if end < length:
                break_at = max(window.rfind("."), window.rfind("\n"))
                if break_at > self.chunk_size * SENTENCE_BREAK_MIN_RATIO:
                    window = window[: break_at + 1]
                    start += break_at + 1
                else:
                    start = end - self.chunk_overlap
            else:
                start = end

            text = window.strip()
            if text:
                pieces.append(text)

        return pieces

    def chunk_document(self, document_id: int, title: str, content: str) -> list[DocumentChunk]:
        """Chunk one document.

        Returns:
            Chunks with 0-based chunk_index in creation order and total_chunks
            equal to the final count; empty list for blank content
        """
        pieces = self.split_text(content)
        total = len(pieces)

        return [
            DocumentChunk(
                id=f"{document_id}_chunk_{index}",
                document_id=document_id,
                document_title=title,
                content=text,
                chunk_index=index,
                total_chunks=total,
            )
            for index, text in enumerate(pieces)
        ]

    def build_cache(self, documents: Iterable[ActiveDocument]) -> DocumentCache:
        """Chunk every active document into a fresh cache snapshot.

        Always a full rebuild; snapshots are never patched.
        """
        cached = tuple(
            CachedDocument(
                id=doc.id,
                title=doc.title,
                content=doc.content or "",
                chunks=tuple(self.chunk_document(doc.id, doc.title, doc.content or "")),
            )
            for doc in documents
        )
        return DocumentCache(documents=cached, last_updated=datetime.now(timezone.utc))
