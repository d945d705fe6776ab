"""
Observability infrastructure for the poster research engine.

Provides:
- Structured logging with correlation IDs
- Prometheus metrics for providers, LLM calls and pipeline outcomes
"""

from .logging import (
    correlation_id_context,
    get_correlation_id,
    get_logger,
    setup_logging,
)
from .metrics import (
    metrics_registry,
    search_provider_duration_seconds,
    search_provider_errors_total,
    search_provider_credits_total,
    search_results_count,
    llm_api_duration_seconds,
    llm_api_errors_total,
    llm_tokens_used_total,
    research_searches_total,
    visual_comparisons_total,
)

__all__ = [
    "correlation_id_context",
    "get_correlation_id",
    "get_logger",
    "setup_logging",
    "metrics_registry",
    "search_provider_duration_seconds",
    "search_provider_errors_total",
    "search_provider_credits_total",
    "search_results_count",
    "llm_api_duration_seconds",
    "llm_api_errors_total",
    "llm_tokens_used_total",
    "research_searches_total",
    "visual_comparisons_total",
]
