"""Chat orchestration: guest vs. user path, classification, context, LLM, recording.

One chat turn:
1. Resolve the path (guest unless a user is authenticated and did not ask
   for guest mode) and load prior exchanges as history.
2. Greetings get a canned welcome; off-topic messages get a canned refusal.
   Neither reaches the LLM.
3. Otherwise build reference context from the document cache: every active
   document for legal/penalty questions, else the top-ranked chunks (falling
   back to every document when nothing scores).
4. Generate the reply, record the exchange (guest store or database) and
   return it, either whole or as a stream of events.
"""

import asyncio
import logging
import re
import time
from collections.abc import AsyncGenerator, AsyncIterator, Iterable
from dataclasses import dataclass
from datetime import datetime

from backend.app.chat.guest_store import GuestConversationStore, new_guest_id
from backend.app.config import Settings, get_settings
from backend.app.db.repositories import (
    ConversationRecord,
    ConversationRepository,
    MessageRepository,
)
from backend.app.docs.cache import DocumentCacheManager
from backend.app.docs.retriever import retrieve_for_query
from backend.app.errors import (
    ChatServiceError,
    ConversationAccessError,
    ConversationNotFoundError,
    InternalServiceError,
    UpstreamServiceError,
)
from backend.app.llm.client import LLMClient, to_chat_turns
from backend.app.llm.prompts import (
    build_system_instruction,
    format_documents,
    greeting_response,
    refusal_response,
)
from backend.app.models.chat import (
    ChatHistoryResponse,
    ChatRequest,
    ChatResponse,
    ConversationListResponse,
    ConversationMessage,
    ConversationSummary,
    GuestHistoryMeta,
    GuestHistoryResponse,
    HistoryMessage,
    PaginationMeta,
)
from backend.app.models.events import StreamEvent, StreamMetadata
from backend.app.nlp.intent import is_greeting, is_traffic_law_related
from backend.app.nlp.knowledge_base import KnowledgeBase, get_knowledge_base
from backend.app.nlp.legal import is_legal_penalty_query
from backend.app.utils.logging import StructuredChatLogger
from backend.app.utils.metrics import PrometheusChatMetrics

logger = logging.getLogger(__name__)

TITLE_MAX_LENGTH = 50

_WHITESPACE_SPLIT = re.compile(r"(\s+)")


def conversation_title(message: str) -> str:
    """Title from the first message: kept up to 50 chars, else 47 chars + "..."."""
    if len(message) <= TITLE_MAX_LENGTH:
        return message
    return message[: TITLE_MAX_LENGTH - 3] + "..."


def split_tokens(text: str) -> list[str]:
    """Split on whitespace boundaries, keeping the whitespace runs as tokens."""
    return [piece for piece in _WHITESPACE_SPLIT.split(text) if piece]


def split_words(text: str) -> list[str]:
    """Split a canned reply into space-terminated words."""
    return [f"{word} " for word in text.split(" ")]


@dataclass
class TurnState:
    """Everything resolved before the reply is produced."""

    is_guest: bool
    history: list[ConversationMessage]
    guest_id: str | None = None
    user_id: int | None = None
    conversation: ConversationRecord | None = None

    @property
    def path(self) -> str:
        return "guest" if self.is_guest else "user"


@dataclass
class ReplyPlan:
    """Canned text, or the instruction for an LLM call."""

    outcome: str
    canned_text: str | None = None
    system_instruction: str = ""
    context_mode: str | None = None
    chunk_count: int | None = None


@dataclass
class RecordedTurn:
    conversation_id: int | None
    message_id: int | None
    is_new_conversation: bool
    timestamp: datetime


class ChatbotService:
    """Stateless orchestrator over injected repositories, cache, guest store and LLM."""

    def __init__(
        self,
        conversations: ConversationRepository,
        messages: MessageRepository,
        document_cache: DocumentCacheManager,
        guest_store: GuestConversationStore,
        llm: LLMClient,
        settings: Settings | None = None,
        metrics: PrometheusChatMetrics | None = None,
        turn_logger: StructuredChatLogger | None = None,
        kb: KnowledgeBase | None = None,
    ) -> None:
        self._conversations = conversations
        self._messages = messages
        self._cache = document_cache
        self._guests = guest_store
        self._llm = llm
        self._settings = settings or get_settings()
        self._metrics = metrics
        self._turn_logger = turn_logger or StructuredChatLogger()
        self._kb = kb or get_knowledge_base()

    # Turn resolution

    async def _resolve_turn(
        self, user_id: int | None, request: ChatRequest, guest_id: str | None
    ) -> TurnState:
        if user_id is None or request.is_guest:
            guest_id = guest_id or request.guest_session_id or new_guest_id()
            history = self._guests.history(guest_id)
            return TurnState(is_guest=True, guest_id=guest_id, history=history)

        if request.conversation_id is None:
            return TurnState(is_guest=False, user_id=user_id, history=[])

        conversation = await self._owned_conversation(user_id, request.conversation_id)
        page = await self._messages.find_all(
            page=1,
            limit=self._settings.history_limit,
            sort_by="created_at",
            sort_order="desc",
            filters={"conversation_id": conversation.id},
        )
        history = [
            ConversationMessage(question=m.question, answer=m.answer) for m in reversed(page.items)
        ]
        return TurnState(
            is_guest=False, user_id=user_id, conversation=conversation, history=history
        )

    async def _owned_conversation(self, user_id: int, conversation_id: int) -> ConversationRecord:
        conversation = await self._conversations.find_by_id(conversation_id)
        if conversation is None:
            raise ConversationNotFoundError()
        if conversation.user_id != user_id:
            raise ConversationAccessError()
        return conversation

    # Classification and context

    async def _plan_reply(self, message: str, history: list[ConversationMessage]) -> ReplyPlan:
        if is_greeting(message, self._kb):
            return ReplyPlan(outcome="greeting", canned_text=greeting_response(message))

        if not is_traffic_law_related(message, history, self._kb):
            logger.info("Message classified as unrelated to traffic law")
            return ReplyPlan(outcome="refused", canned_text=refusal_response(message))

        document_content, context_mode, chunk_count = await self.build_context(message)
        return ReplyPlan(
            outcome="answered",
            system_instruction=build_system_instruction(message, document_content),
            context_mode=context_mode,
            chunk_count=chunk_count,
        )

    async def build_context(self, message: str) -> tuple[str, str, int]:
        """Reference text for the system instruction.

        Returns:
            (document_content, mode, chunk_count) where mode is "full" for
            legal/penalty questions, "rag" for ranked chunks, "fallback" when
            no chunk scored, "none" when the cache could not be loaded
        """
        try:
            snapshot = await self._cache.get_snapshot()
        except Exception:
            logger.warning("Document cache unavailable; using no references", exc_info=True)
            return "", "none", 0

        if is_legal_penalty_query(message, self._kb):
            logger.info("Legal/penalty query; using full document content")
            return format_documents(snapshot.documents), "full", 0

        chunks = retrieve_for_query(
            snapshot.all_chunks(),
            message,
            self._settings.rag_max_chunks,
            legal_search_max_chunks=self._settings.legal_search_max_chunks,
            kb=self._kb,
        )
        if self._metrics:
            self._metrics.observe_retrieved_chunks(len(chunks))

        if not chunks:
            logger.warning("No relevant chunks found; falling back to full document content")
            return format_documents(snapshot.documents), "fallback", 0

        logger.info(f"Using {len(chunks)} retrieved chunks as context")
        return format_documents(chunks), "rag", len(chunks)

    # Recording

    async def _record(self, state: TurnState, question: str, answer: str) -> RecordedTurn:
        if state.guest_id is not None:
            is_new = self._guests.get(state.guest_id) is None
            entry = self._guests.append(state.guest_id, question, answer)
            return RecordedTurn(
                conversation_id=None,
                message_id=None,
                is_new_conversation=is_new,
                timestamp=entry.messages[-1].timestamp,
            )

        assert state.user_id is not None
        is_new = state.conversation is None
        conversation = state.conversation
        if conversation is None:
            conversation = await self._conversations.create(
                state.user_id, conversation_title(question)
            )
            logger.info(f"Created conversation {conversation.id} for user {state.user_id}")

        message = await self._messages.create(conversation.id, question, answer)
        await self._conversations.touch(conversation.id)

        return RecordedTurn(
            conversation_id=conversation.id,
            message_id=message.id,
            is_new_conversation=is_new,
            timestamp=message.created_at,
        )

    def _log_turn(
        self,
        state: TurnState | None,
        outcome: str,
        started: float,
        *,
        plan: ReplyPlan | None = None,
        recorded: RecordedTurn | None = None,
        streamed: bool = False,
        error_code: str | None = None,
    ) -> None:
        path = state.path if state else "unknown"
        if self._metrics:
            self._metrics.inc_request(path, outcome)
        self._turn_logger.log_turn(
            path=path,
            outcome=outcome,
            latency_ms=(time.perf_counter() - started) * 1000,
            conversation_id=recorded.conversation_id if recorded else None,
            guest_session_id=state.guest_id if state else None,
            context_mode=plan.context_mode if plan else None,
            chunk_count=plan.chunk_count if plan else None,
            streamed=streamed,
            error_code=error_code,
        )

    # Public API

    async def chat(
        self, user_id: int | None, request: ChatRequest, guest_id: str | None = None
    ) -> ChatResponse:
        """Answer one message and record the exchange.

        Args:
            user_id: Authenticated user, or None for guests
            request: Chat request body
            guest_id: Guest session id from the X-Guest-ID header

        Raises:
            ChatServiceError: Not found / forbidden / upstream failures as-is;
                anything else wrapped in InternalServiceError
        """
        started = time.perf_counter()
        state: TurnState | None = None

        try:
            state = await self._resolve_turn(user_id, request, guest_id)
            plan = await self._plan_reply(request.message, state.history)

            if plan.canned_text is not None:
                answer = plan.canned_text
            else:
                llm_started = time.perf_counter()
                answer = await self._llm.generate(
                    plan.system_instruction, to_chat_turns(state.history), request.message
                )
                if self._metrics:
                    self._metrics.record_llm_latency(
                        "generate", (time.perf_counter() - llm_started) * 1000
                    )

            recorded = await self._record(state, request.message, answer)
        except ChatServiceError as e:
            self._log_turn(state, "error", started, error_code=e.code)
            raise
        except Exception as e:
            logger.error("Chat turn failed", exc_info=True)
            self._log_turn(state, "error", started, error_code=InternalServiceError.code)
            raise InternalServiceError() from e

        self._log_turn(state, plan.outcome, started, plan=plan, recorded=recorded)

        return ChatResponse(
            response=answer,
            conversation_id=recorded.conversation_id,
            message_id=recorded.message_id,
            timestamp=recorded.timestamp,
            is_guest=state.is_guest,
            guest_session_id=state.guest_id,
        )

    async def _paced(self, tokens: Iterable[str], delay_ms: int) -> AsyncIterator[str]:
        for token in tokens:
            yield token
            if delay_ms > 0:
                await asyncio.sleep(delay_ms / 1000)

    async def chat_stream(
        self, user_id: int | None, request: ChatRequest, guest_id: str | None = None
    ) -> AsyncGenerator[StreamEvent, None]:
        """Answer one message as a stream of events.

        Yields start, then token events, then exactly one complete or error
        event. Closing the iterator early stops generation and skips
        recording the exchange.
        """
        started = time.perf_counter()
        is_guest = user_id is None or bool(request.is_guest)
        if is_guest:
            guest_id = guest_id or request.guest_session_id or new_guest_id()

        yield StreamEvent.start(guest_id if is_guest else None)

        state: TurnState | None = None
        plan: ReplyPlan | None = None
        try:
            state = await self._resolve_turn(user_id, request, guest_id)
            plan = await self._plan_reply(request.message, state.history)

            parts: list[str] = []
            if plan.canned_text is not None:
                tokens = self._paced(
                    split_words(plan.canned_text), self._settings.canned_token_delay_ms
                )
                async for token in tokens:
                    yield StreamEvent.of_token(token)
                answer = plan.canned_text
            else:
                llm_started = time.perf_counter()
                deltas = self._llm.stream(
                    plan.system_instruction, to_chat_turns(state.history), request.message
                )
                async for delta in deltas:
                    tokens = self._paced(split_tokens(delta), self._settings.stream_token_delay_ms)
                    async for token in tokens:
                        parts.append(token)
                        yield StreamEvent.of_token(token)
                if self._metrics:
                    self._metrics.record_llm_latency(
                        "stream", (time.perf_counter() - llm_started) * 1000
                    )
                answer = "".join(parts)
                if not answer.strip():
                    raise UpstreamServiceError("Empty response from AI assistant")

            recorded = await self._record(state, request.message, answer)
        except ChatServiceError as e:
            self._log_turn(state, "error", started, streamed=True, error_code=e.code)
            yield StreamEvent.error(e.message, e.code)
            return
        except Exception:
            logger.error("Streaming chat turn failed", exc_info=True)
            self._log_turn(
                state, "error", started, streamed=True, error_code=InternalServiceError.code
            )
            yield StreamEvent.error(InternalServiceError.default_message, InternalServiceError.code)
            return

        self._log_turn(state, plan.outcome, started, plan=plan, recorded=recorded, streamed=True)

        yield StreamEvent.complete(
            StreamMetadata(
                conversation_id=recorded.conversation_id,
                message_id=recorded.message_id,
                is_guest=state.is_guest,
                is_new_conversation=recorded.is_new_conversation,
                guest_session_id=state.guest_id,
            )
        )

    # History

    def get_guest_chat_history(self, guest_id: str) -> GuestHistoryResponse:
        """All exchanges of a live guest session, oldest first."""
        conversation = self._guests.get(guest_id)
        if conversation is None:
            return GuestHistoryResponse(data=[], meta=GuestHistoryMeta(total=0))

        return GuestHistoryResponse(
            data=[
                HistoryMessage(
                    id=f"guest_{index}",
                    question=message.question,
                    answer=message.answer,
                    created_at=message.timestamp,
                )
                for index, message in enumerate(conversation.messages)
            ],
            meta=GuestHistoryMeta(total=len(conversation.messages), conversation_id=guest_id),
        )

    async def get_chat_history(
        self, user_id: int, conversation_id: int, page: int = 1, limit: int = 20
    ) -> ChatHistoryResponse:
        """Messages of a user's conversation, oldest first, paginated.

        Raises:
            ConversationNotFoundError: Unknown conversation
            ConversationAccessError: Conversation owned by another user
        """
        conversation = await self._owned_conversation(user_id, conversation_id)
        result = await self._messages.find_all(
            page=page,
            limit=limit,
            sort_by="created_at",
            sort_order="asc",
            filters={"conversation_id": conversation_id},
        )

        return ChatHistoryResponse(
            data=[
                HistoryMessage(
                    id=m.id, question=m.question, answer=m.answer, created_at=m.created_at
                )
                for m in result.items
            ],
            meta=PaginationMeta.build(result.total, page, limit),
            conversation=_summary(conversation),
        )

    async def get_user_conversations(
        self, user_id: int, page: int = 1, limit: int = 10
    ) -> ConversationListResponse:
        """A user's conversations, most recently updated first."""
        result = await self._conversations.find_all(
            page=page,
            limit=limit,
            sort_by="updated_at",
            sort_order="desc",
            filters={"user_id": user_id},
        )
        return ConversationListResponse(
            data=[_summary(c) for c in result.items],
            meta=PaginationMeta.build(result.total, page, limit),
        )


def _summary(conversation: ConversationRecord) -> ConversationSummary:
    return ConversationSummary(
        id=conversation.id,
        title=conversation.title,
        created_at=conversation.created_at,
        updated_at=conversation.updated_at,
    )
