"""Custom Prometheus metrics for the line translator.

A long-running host process can expose these with
prometheus_client.start_http_server(). Alert rules should be configured for:
- translation_batches_total{outcome="mismatch"} (model drifting off the line protocol)
- retries_total (high retry rate indicates rate limiting or service instability)
- moderation_flags_total (content routinely rejected)
"""

from prometheus_client import Counter, Histogram

# === Batch Metrics ===

translation_batches_total = Counter(
    "translation_batches_total",
    "Total batch submissions by strategy and outcome",
    ["strategy", "outcome"],
)
"""
Batch submissions counter.

Labels:
- strategy: delimited, array, object, timestamp
- outcome: success, mismatch, refusal, moderated, single

Alert thresholds:
- WARN: mismatch rate > 10% of submissions
"""

batch_size_changes_total = Counter(
    "batch_size_changes_total",
    "Batch size ladder moves by direction",
    ["direction"],
)
"""
Batch size ladder moves.

Labels:
- direction: decrease, increase
"""

# === Retry Metrics ===

retries_total = Counter(
    "retries_total",
    "Total retry attempts by call label and error type",
    ["label", "error_type"],
)
"""
Retry attempts counter.

Labels:
- label: TranslationPrompt, CheckModeration, ...
- error_type: exception class name (LLMRateLimitError, LLMServerError, ...)

Alert thresholds:
- WARN: retry rate > 10% of total requests
- CRITICAL: retry rate > 30% of total requests
"""

cooldown_waits_total = Counter(
    "cooldown_waits_total",
    "Requests delayed by the cooldown limiter",
    ["limiter"],
)

# === Moderation Metrics ===

moderation_flags_total = Counter(
    "moderation_flags_total",
    "Lines flagged and excluded from context by reason",
    ["reason"],
)
"""
Flagged lines.

Labels:
- reason: moderation, label mismatch
"""

# === LLM Performance Metrics ===

llm_latency_seconds = Histogram(
    "llm_latency_seconds",
    "LLM completion latency in seconds",
    ["model", "success"],
    buckets=[0.5, 1.0, 2.0, 5.0, 10.0, 30.0, 60.0, 120.0],
)
"""
LLM completion latency histogram.

Labels:
- model: Model name (e.g., gpt-4o-mini)
- success: true (completion succeeded), false (completion failed)
"""

llm_tokens_total = Counter(
    "llm_tokens_total",
    "Total tokens consumed by model and type",
    ["model", "token_type"],
)
"""
Token consumption counter.

Labels:
- model: Model name
- token_type: prompt, completion, cached, wasted_prompt, wasted_completion

Used for cost estimation and capacity planning.
"""

# === Validation Metrics ===

validation_failures_total = Counter(
    "validation_failures_total",
    "Structured responses rejected by validation stage and error type",
    ["stage", "error_type"],
)
"""
Structured response validation failures.

Labels:
- stage: json_parse, schema
- error_type: empty_content, json_decode_error, not_json_object, schema_violation

Every failure sends the batch to the delimited fallback.
"""
