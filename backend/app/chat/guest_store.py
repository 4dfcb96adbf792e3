"""In-memory guest conversations with time-to-live eviction.

Guests get no persistent rows: their exchanges live here for ttl_seconds
after the session was created and are then dropped. Entries past their TTL
are treated as absent on read as well as removed by the periodic sweep, so
expiry never depends on sweep timing.
"""

import asyncio
import logging
import secrets
import string
import time
from collections.abc import Callable
from datetime import datetime, timedelta, timezone

from backend.app.models.chat import ConversationMessage, GuestConversation, GuestMessage
from backend.app.utils.metrics import PrometheusChatMetrics

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600

_GUEST_ID_ALPHABET = string.ascii_lowercase + string.digits
_GUEST_ID_SUFFIX_LENGTH = 9


def new_guest_id() -> str:
    """Generate guest session id: guest_<epoch-ms>_<9 random chars>."""
    suffix = "".join(secrets.choice(_GUEST_ID_ALPHABET) for _ in range(_GUEST_ID_SUFFIX_LENGTH))
    return f"guest_{int(time.time() * 1000)}_{suffix}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GuestConversationStore:
    """Process-wide guest conversation map, owned by the application."""

    def __init__(
        self,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_messages: int | None = None,
        clock: Callable[[], datetime] = _utcnow,
        metrics: PrometheusChatMetrics | None = None,
    ) -> None:
        """Initialize guest store.

        Args:
            ttl_seconds: Lifetime of a session, counted from its creation
            max_messages: Keep at most this many exchanges per session
                (oldest dropped); None for no cap
            clock: Returns the current time; injectable for tests
            metrics: Optional metrics sink
        """
        if max_messages is not None and max_messages < 1:
            raise ValueError("max_messages must be at least 1")

        self._ttl = timedelta(seconds=ttl_seconds)
        self._max_messages = max_messages
        self._clock = clock
        self._metrics = metrics
        self._conversations: dict[str, GuestConversation] = {}

    def __len__(self) -> int:
        return len(self._conversations)

    def _is_expired(self, conversation: GuestConversation, now: datetime) -> bool:
        return now - conversation.created_at > self._ttl

    def _report_size(self) -> None:
        if self._metrics:
            self._metrics.set_guest_sessions(len(self._conversations))

    def get(self, guest_id: str) -> GuestConversation | None:
        """Get live guest conversation, or None if missing or expired."""
        conversation = self._conversations.get(guest_id)

        if conversation is None:
            return None

        if self._is_expired(conversation, self._clock()):
            del self._conversations[guest_id]
            self._report_size()
            return None

        return conversation

    def history(self, guest_id: str) -> list[ConversationMessage]:
        """Prior exchanges of a guest, oldest first (empty when absent)."""
        conversation = self.get(guest_id)
        if conversation is None:
            return []
        return [
            ConversationMessage(question=message.question, answer=message.answer)
            for message in conversation.messages
        ]

    def append(self, guest_id: str, question: str, answer: str) -> GuestConversation:
        """Append one exchange, creating the session on first use.

        Runs without awaiting, so concurrent requests on one event loop
        cannot interleave between read and write of the same entry.
        """
        now = self._clock()
        conversation = self.get(guest_id)

        if conversation is None:
            conversation = GuestConversation(id=guest_id, messages=[], created_at=now)
            self._conversations[guest_id] = conversation
            logger.info(f"Created guest conversation {guest_id}")
            self._report_size()

        conversation.messages.append(GuestMessage(question=question, answer=answer, timestamp=now))

        if self._max_messages is not None and len(conversation.messages) > self._max_messages:
            del conversation.messages[: len(conversation.messages) - self._max_messages]

        return conversation

    def sweep(self) -> int:
        """Evict every expired session; returns the number evicted."""
        now = self._clock()
        expired = [
            guest_id
            for guest_id, conversation in self._conversations.items()
            if self._is_expired(conversation, now)
        ]

        for guest_id in expired:
            del self._conversations[guest_id]

        if expired:
            logger.info(f"Evicted {len(expired)} expired guest conversations")
        self._report_size()

        return len(expired)

    async def run_sweeper(self, interval_seconds: float) -> None:
        """Sweep forever at a fixed interval; cancel the task to stop."""
        while True:
            await asyncio.sleep(interval_seconds)
            try:
                self.sweep()
            except Exception:
                logger.error("Guest conversation sweep failed", exc_info=True)
