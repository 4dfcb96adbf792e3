"""Structured logging for chat turns."""

import logging
from typing import Any

logger = logging.getLogger(__name__)


class StructuredChatLogger:
    """Structured logger emitting one record per chat turn."""

    def log_turn(
        self,
        *,
        path: str,
        outcome: str,
        latency_ms: float,
        conversation_id: int | None = None,
        guest_session_id: str | None = None,
        context_mode: str | None = None,
        chunk_count: int | None = None,
        streamed: bool = False,
        error_code: str | None = None,
    ) -> None:
        """Log chat turn with structured data."""
        log_data: dict[str, Any] = {
            "path": path,
            "outcome": outcome,
            "latency_ms": round(latency_ms, 2),
            "streamed": streamed,
        }

        if conversation_id is not None:
            log_data["conversation_id"] = conversation_id
        if guest_session_id is not None:
            log_data["guest_session_id"] = guest_session_id
        if context_mode is not None:
            log_data["context_mode"] = context_mode
        if chunk_count is not None:
            log_data["chunk_count"] = chunk_count
        if error_code:
            log_data["error_code"] = error_code

        log_msg = f"Chat turn: {path} - {outcome}"

        if outcome == "error":
            logger.warning(log_msg, extra={"structured": log_data})
        else:
            logger.info(log_msg, extra={"structured": log_data})
