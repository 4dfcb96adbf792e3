"""Prometheus metrics for chat turns and the document cache."""

from prometheus_client import Counter, Gauge, Histogram

# Chat metrics
chat_requests_total = Counter(
    "chat_requests_total",
    "Total chat turns by path and outcome",
    ["path", "outcome"],
)

llm_latency_ms = Histogram(
    "llm_latency_ms",
    "LLM call latency in milliseconds",
    ["mode"],
    buckets=[50, 100, 250, 500, 1000, 2000, 4000, 8000, 16000],
)

retrieved_chunks = Histogram(
    "retrieved_chunks",
    "Chunks selected as context per chat turn",
    buckets=[0, 1, 2, 4, 8, 15, 30],
)

# Document cache metrics
document_cache_refresh_total = Counter(
    "document_cache_refresh_total",
    "Total document cache refreshes",
    ["outcome"],
)

guest_sessions = Gauge(
    "guest_sessions",
    "Guest conversations currently held in memory",
)


class PrometheusChatMetrics:
    """Prometheus-based chat metrics implementation."""

    def inc_request(self, path: str, outcome: str) -> None:
        """Count one chat turn (path: guest/user, outcome: answered/greeting/refused/error)."""
        chat_requests_total.labels(path=path, outcome=outcome).inc()

    def record_llm_latency(self, mode: str, latency_ms: float) -> None:
        """Record LLM latency (mode: generate/stream)."""
        llm_latency_ms.labels(mode=mode).observe(latency_ms)

    def observe_retrieved_chunks(self, count: int) -> None:
        retrieved_chunks.observe(count)

    def inc_cache_refresh(self, outcome: str) -> None:
        """Increment cache refresh counter."""
        document_cache_refresh_total.labels(outcome=outcome).inc()

    def set_guest_sessions(self, count: int) -> None:
        guest_sessions.set(count)
