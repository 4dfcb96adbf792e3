"""Service error hierarchy.

Routes never build error payloads themselves: anything raised from the core
is a ChatServiceError carrying its own code and HTTP status, and the handler
registered in main.py turns it into a JSON response.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse


class ChatServiceError(Exception):
    """Base class for errors surfaced to API clients."""

    code = "INTERNAL"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        """Client-visible error body."""
        return {"detail": self.message, "code": self.code}


class ValidationError(ChatServiceError):
    """Malformed or missing request input that slipped past DTO validation."""

    code = "VALIDATION"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "Invalid request"


class ConversationNotFoundError(ChatServiceError):
    """Referenced conversation does not exist."""

    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Conversation not found"


class ConversationAccessError(ChatServiceError):
    """Conversation belongs to a different user."""

    code = "FORBIDDEN"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You do not have access to this conversation"


class DocumentNotFoundError(ChatServiceError):
    """Referenced document does not exist."""

    code = "NOT_FOUND"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Document not found"


class UpstreamServiceError(ChatServiceError):
    """LLM provider call failed or timed out."""

    code = "UPSTREAM_FAILURE"
    status_code = status.HTTP_502_BAD_GATEWAY
    default_message = "Failed to get response from AI assistant"


class InternalServiceError(ChatServiceError):
    """Unexpected failure inside classification, retrieval or orchestration."""

    code = "INTERNAL"
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    default_message = "Failed to process chat request"


async def chat_service_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Map ChatServiceError subclasses to JSON responses."""
    if not isinstance(exc, ChatServiceError):
        exc = InternalServiceError()
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())
