"""Prometheus metrics shared by the pipeline and the HTTP surface."""

from __future__ import annotations

from typing import Any

from prometheus_client import REGISTRY, Counter, Histogram


# Use helpers to avoid duplicate registration on reload
def _get_or_create_counter(name: str, description: str, labels: list[str]) -> Counter:
    """Get existing counter or create new one."""
    if name in REGISTRY._names_to_collectors:
        return REGISTRY._names_to_collectors[name]  # type: ignore
    return Counter(name, description, labels)


def _get_or_create_histogram(
    name: str, description: str, labels: list[str] | None = None, buckets: list[float] | None = None
) -> Histogram:
    """Get existing histogram or create new one."""
    if name in REGISTRY._names_to_collectors:
        return REGISTRY._names_to_collectors[name]  # type: ignore
    kwargs: dict[str, Any] = {}
    if labels:
        kwargs["labelnames"] = labels
    if buckets:
        kwargs["buckets"] = buckets
    return Histogram(name, description, **kwargs)


TURNS = _get_or_create_counter(
    "truelive_turns_total",
    "Completed turns by outcome status",
    ["status"],
)

FALLBACKS = _get_or_create_counter(
    "truelive_fallbacks_total",
    "Turns answered by the fallback generator, by reason",
    ["reason"],
)

STATE_DURATION = _get_or_create_histogram(
    "truelive_state_duration_seconds",
    "Time spent per pipeline state",
    labels=["state"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0],
)

LLM_CALLS = _get_or_create_histogram(
    "truelive_llm_call_duration_seconds",
    "Ollama API call duration",
    labels=["model", "component", "purpose"],
    buckets=[0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

TOP_SIMILARITY = _get_or_create_histogram(
    "truelive_retrieval_top_similarity",
    "Best cosine similarity per retrieval",
    buckets=[-0.5, 0.0, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6, 0.7, 0.8, 0.9, 1.0],
)
