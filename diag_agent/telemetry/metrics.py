"""Prometheus metrics definitions."""

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

turns_total = Counter(
    "diag_turns_total",
    "Conversation turns processed",
    labelnames=["outcome"],
)

turn_duration = Histogram(
    "diag_turn_duration_seconds",
    "Wall time spent processing one conversation turn",
    buckets=(0.5, 1.0, 2.5, 5.0, 10.0, 20.0, 30.0, 60.0, 120.0),
)

evidence_fetches_total = Counter(
    "diag_evidence_fetches_total",
    "Evidence fetch operations by outcome",
    labelnames=["operation", "status"],
)

llm_fallbacks_total = Counter(
    "diag_llm_fallbacks_total",
    "LLM calls that failed and fell back to canned content",
    labelnames=["stage"],
)

persistence_failures_total = Counter(
    "diag_persistence_failures_total",
    "Soft failures writing or reading case memory",
    labelnames=["kind"],
)


def get_metrics() -> tuple[bytes, str]:
    return generate_latest(), CONTENT_TYPE_LATEST
