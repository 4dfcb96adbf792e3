"""Chat stream events - what the SSE endpoint emits."""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import Field

from backend.app.models.chat import CamelModel

StreamEventType = Literal["start", "token", "complete", "error"]


class StreamMetadata(CamelModel):
    """Metadata carried by the terminal `complete` event."""

    conversation_id: int | None = None
    message_id: int | None = None
    is_guest: bool
    is_new_conversation: bool = False
    guest_session_id: str | None = None


class StreamEvent(CamelModel):
    """Single event of a chat stream.

    A well-formed stream is one `start`, zero or more `token`s and exactly one
    terminal `complete` or `error`. A stream that ends without `complete` has
    failed.
    """

    type: StreamEventType
    timestamp: str = Field(default_factory=lambda: datetime.now(timezone.utc).isoformat())
    guest_session_id: str | None = None
    token: str | None = None
    metadata: StreamMetadata | None = None
    message: str | None = None
    code: str | None = None

    @classmethod
    def start(cls, guest_session_id: str | None = None) -> "StreamEvent":
        return cls(type="start", guest_session_id=guest_session_id)

    @classmethod
    def of_token(cls, token: str) -> "StreamEvent":
        return cls(type="token", token=token)

    @classmethod
    def complete(cls, metadata: StreamMetadata) -> "StreamEvent":
        return cls(type="complete", metadata=metadata)

    @classmethod
    def error(cls, message: str, code: str = "INTERNAL") -> "StreamEvent":
        return cls(type="error", message=message, code=code)

    @property
    def is_terminal(self) -> bool:
        return self.type in ("complete", "error")

    def to_sse(self) -> str:
        """Encode as one Server-Sent-Events frame."""
        payload = self.model_dump_json(by_alias=True, exclude_none=True)
        return f"data: {payload}\n\n"

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
