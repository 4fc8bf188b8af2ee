"""Monitoring and metrics instrumentation for the line translator.

Counters and histograms for batch outcomes, retries, cooldown waits, moderation
and service usage. Registered on the default prometheus_client registry.
"""

from line_translator.monitoring.metrics import (
    batch_size_changes_total,
    cooldown_waits_total,
    llm_latency_seconds,
    llm_tokens_total,
    moderation_flags_total,
    retries_total,
    translation_batches_total,
    validation_failures_total,
)

__all__ = [
    "translation_batches_total",
    "batch_size_changes_total",
    "retries_total",
    "cooldown_waits_total",
    "moderation_flags_total",
    "llm_latency_seconds",
    "llm_tokens_total",
    "validation_failures_total",
]
