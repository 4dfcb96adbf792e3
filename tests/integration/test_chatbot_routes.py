"""Integration tests for /api/v1/chatbot endpoints."""

import json
from collections.abc import AsyncGenerator, AsyncIterator, Sequence

from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.pool import StaticPool

from backend.app.chat.guest_store import GuestConversationStore
from backend.app.config import Settings
from backend.app.db.engine import get_session
from backend.app.db.models import Base
from backend.app.docs.cache import DocumentCacheManager
from backend.app.llm.prompts import GREETING_EN, REFUSAL_EN
from backend.app.main import create_app
from backend.app.models.chat import ChatTurn

CHAT_URL = "/api/v1/chatbot/chat"
STREAM_URL = "/api/v1/chatbot/chat/stream"
HISTORY_URL = "/api/v1/chatbot/guest/history"
PENALTY_QUESTION = "Mức phạt vượt đèn đỏ là bao nhiêu?"


def auth(user_id: int) -> dict[str, str]:
    return {"Authorization": f"Bearer {user_id}"}


def parse_sse(body: str) -> list[dict]:
    """Decode `data: {json}` frames."""
    return [
        json.loads(frame[len("data: ") :])
        for frame in body.split("\n\n")
        if frame.startswith("data: ")
    ]


class TestGuestChat:
    """Guest chat via X-Guest-ID."""

    def test_guest_chat_issues_session_header(self, api_client: TestClient) -> None:
        response = api_client.post(CHAT_URL, json={"message": PENALTY_QUESTION})

        assert response.status_code == 200
        data = response.json()
        assert data["isGuest"] is True
        assert data["response"] == "Mức phạt là 18.000.000 đồng."
        assert data["guestSessionId"].startswith("guest_")
        assert response.headers["X-Guest-ID"] == data["guestSessionId"]
        assert "conversationId" in data

    def test_guest_session_continues_with_header(self, api_client: TestClient, llm) -> None:
        first = api_client.post(CHAT_URL, json={"message": PENALTY_QUESTION})
        guest_id = first.headers["X-Guest-ID"]

        second = api_client.post(
            CHAT_URL, json={"message": "Còn xe máy thì sao?"}, headers={"X-Guest-ID": guest_id}
        )

        assert second.headers["X-Guest-ID"] == guest_id
        assert len(llm.calls[1]["history"]) == 2

    def test_greeting_and_refusal(self, api_client: TestClient, llm) -> None:
        greeting = api_client.post(CHAT_URL, json={"message": "hello"})
        refusal = api_client.post(CHAT_URL, json={"message": "how do I cook pho"})

        assert greeting.json()["response"] == GREETING_EN
        assert refusal.json()["response"] == REFUSAL_EN
        assert llm.calls == []

    def test_guest_history(self, api_client: TestClient) -> None:
        first = api_client.post(CHAT_URL, json={"message": "hello"})
        guest_id = first.headers["X-Guest-ID"]
        headers = {"X-Guest-ID": guest_id}
        api_client.post(CHAT_URL, json={"message": PENALTY_QUESTION}, headers=headers)

        by_header = api_client.get(HISTORY_URL, headers=headers)
        by_query = api_client.get(HISTORY_URL, params={"guestSessionId": guest_id})

        assert by_header.status_code == 200
        body = by_header.json()
        assert body["meta"] == {"total": 2, "isGuest": True, "conversationId": guest_id}
        assert [m["id"] for m in body["data"]] == ["guest_0", "guest_1"]
        assert "createdAt" in body["data"][0]
        assert by_query.json() == body

    def test_guest_history_requires_session_id(self, api_client: TestClient) -> None:
        response = api_client.get(HISTORY_URL)

        assert response.status_code == 400
        assert response.json()["code"] == "VALIDATION"


class TestRequestValidation:
    """Request body validation."""

    def test_empty_message_rejected(self, api_client: TestClient) -> None:
        assert api_client.post(CHAT_URL, json={"message": ""}).status_code == 422

    def test_message_too_long_rejected(self, api_client: TestClient) -> None:
        assert api_client.post(CHAT_URL, json={"message": "x" * 1001}).status_code == 422

    def test_invalid_token_rejected(self, api_client: TestClient) -> None:
        response = api_client.post(
            CHAT_URL, json={"message": PENALTY_QUESTION}, headers={"Authorization": "Bearer abc"}
        )

        assert response.status_code == 401


class TestUserChat:
    """Authenticated chat and conversation history."""

    def test_user_chat_creates_conversation(self, api_client: TestClient) -> None:
        response = api_client.post(CHAT_URL, json={"message": PENALTY_QUESTION}, headers=auth(1))

        assert response.status_code == 200
        data = response.json()
        assert data["isGuest"] is False
        assert data["conversationId"] == 1
        assert data["messageId"] == 1
        assert "X-Guest-ID" not in response.headers

    def test_user_can_request_guest_mode(self, api_client: TestClient) -> None:
        response = api_client.post(
            CHAT_URL, json={"message": PENALTY_QUESTION, "isGuest": True}, headers=auth(1)
        )

        assert response.json()["isGuest"] is True
        assert "X-Guest-ID" in response.headers

    def test_conversation_listing_and_history(self, api_client: TestClient) -> None:
        first = api_client.post(CHAT_URL, json={"message": PENALTY_QUESTION}, headers=auth(1))
        conversation_id = first.json()["conversationId"]
        api_client.post(
            CHAT_URL,
            json={"message": "Còn xe máy?", "conversationId": conversation_id},
            headers=auth(1),
        )

        listing = api_client.get("/api/v1/chatbot/conversations", headers=auth(1))
        history = api_client.get(
            f"/api/v1/chatbot/conversations/{conversation_id}/history",
            params={"page": 1, "limit": 1},
            headers=auth(1),
        )

        assert listing.status_code == 200
        assert [c["title"] for c in listing.json()["data"]] == [PENALTY_QUESTION]
        assert listing.json()["meta"]["total"] == 1

        assert history.status_code == 200
        body = history.json()
        assert [m["question"] for m in body["data"]] == [PENALTY_QUESTION]
        assert body["meta"] == {
            "total": 2,
            "page": 1,
            "lastPage": 2,
            "hasNextPage": True,
            "hasPreviousPage": False,
        }
        assert body["conversation"]["id"] == conversation_id

    def test_other_users_conversation_is_forbidden(self, api_client: TestClient) -> None:
        first = api_client.post(CHAT_URL, json={"message": PENALTY_QUESTION}, headers=auth(1))
        conversation_id = first.json()["conversationId"]

        chat = api_client.post(
            CHAT_URL,
            json={"message": PENALTY_QUESTION, "conversationId": conversation_id},
            headers=auth(2),
        )
        history = api_client.get(
            f"/api/v1/chatbot/conversations/{conversation_id}/history", headers=auth(2)
        )

        assert chat.status_code == 403
        assert chat.json()["code"] == "FORBIDDEN"
        assert history.status_code == 403

    def test_unknown_conversation_is_not_found(self, api_client: TestClient) -> None:
        response = api_client.post(
            CHAT_URL, json={"message": PENALTY_QUESTION, "conversationId": 77}, headers=auth(1)
        )

        assert response.status_code == 404
        assert response.json() == {"detail": "Conversation not found", "code": "NOT_FOUND"}

    def test_conversation_endpoints_require_auth(self, api_client: TestClient) -> None:
        assert api_client.get("/api/v1/chatbot/conversations").status_code == 401
        assert api_client.get("/api/v1/chatbot/conversations/1/history").status_code == 401


class TestUpstreamFailure:
    """LLM provider failures."""

    def test_llm_failure_maps_to_502(self, api_client: TestClient, llm) -> None:
        llm.fail = True

        response = api_client.post(CHAT_URL, json={"message": PENALTY_QUESTION})

        assert response.status_code == 502
        assert response.json() == {
            "detail": "Failed to get response from AI assistant",
            "code": "UPSTREAM_FAILURE",
        }


class TestStreaming:
    """SSE chat stream."""

    def test_stream_frames(self, api_client: TestClient, llm) -> None:
        response = api_client.post(STREAM_URL, json={"message": PENALTY_QUESTION})

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"

        events = parse_sse(response.text)
        assert events[0]["type"] == "start"
        assert events[0]["guestSessionId"].startswith("guest_")
        assert events[-1]["type"] == "complete"
        assert events[-1]["metadata"]["isGuest"] is True
        tokens = [e["token"] for e in events if e["type"] == "token"]
        assert "".join(tokens) == llm.reply

    def test_stream_error_frame(self, api_client: TestClient, llm) -> None:
        llm.fail = True

        response = api_client.post(STREAM_URL, json={"message": PENALTY_QUESTION}, headers=auth(1))

        events = parse_sse(response.text)
        assert [e["type"] for e in events] == ["start", "error"]
        assert events[-1]["code"] == "UPSTREAM_FAILURE"
        assert "guestSessionId" not in events[0]

    def test_stream_for_user_reports_conversation(self, api_client: TestClient) -> None:
        response = api_client.post(STREAM_URL, json={"message": PENALTY_QUESTION}, headers=auth(4))

        metadata = parse_sse(response.text)[-1]["metadata"]
        assert metadata["isGuest"] is False
        assert metadata["isNewConversation"] is True
        assert metadata["conversationId"] == 1


class LifecycleLLM:
    """Wraps the recording LLM and notes when streaming starts."""

    def __init__(self, inner, lifecycle: list[str]) -> None:
        self.inner = inner
        self.lifecycle = lifecycle

    async def generate(
        self, system_instruction: str, history: Sequence[ChatTurn], prompt: str
    ) -> str:
        return await self.inner.generate(system_instruction, history, prompt)

    async def stream(
        self, system_instruction: str, history: Sequence[ChatTurn], prompt: str
    ) -> AsyncIterator[str]:
        self.lifecycle.append("llm_stream")
        async for delta in self.inner.stream(system_instruction, history, prompt):
            yield delta


class TestStreamingWithDatabase:
    """SSE chat stream over SQL repositories."""

    def test_session_outlives_stream_body(
        self,
        chat_settings: Settings,
        document_cache: DocumentCacheManager,
        guest_store: GuestConversationStore,
        llm,
    ) -> None:
        lifecycle: list[str] = []
        engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)

        async def tracked_session() -> AsyncGenerator[AsyncSession, None]:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            async with AsyncSession(engine, expire_on_commit=False) as session:
                lifecycle.append("session_open")
                yield session
            lifecycle.append("session_closed")

        app = create_app(
            chat_settings,
            document_cache=document_cache,
            guest_store=guest_store,
            llm=LifecycleLLM(llm, lifecycle),
        )
        app.dependency_overrides[get_session] = tracked_session

        with TestClient(app) as client:
            response = client.post(STREAM_URL, json={"message": PENALTY_QUESTION}, headers=auth(3))
            events = parse_sse(response.text)
            lifecycle.append("response_read")
            history = client.get("/api/v1/chatbot/conversations/1/history", headers=auth(3))

        assert events[-1]["type"] == "complete"
        assert events[-1]["metadata"]["conversationId"] == 1
        assert lifecycle[:4] == ["session_open", "llm_stream", "session_closed", "response_read"]
        assert [m["question"] for m in history.json()["data"]] == [PENALTY_QUESTION]
