"""
Resilient LLM line translator.

Translates ordered lines of text (subtitle cues or plain text) through a remote
chat completion service while compensating for its unreliability:
- Adaptive batch sizing with shrink/grow-back
- Rate-limit-aware scheduling and retry with backoff
- Moderation-gated submission
- Rolling context across batches
- Mismatch detection with single-line fallback
- Token usage and cost accounting

Architecture: sequential async engine + pluggable wire encodings (strategies)
"""

__version__ = "0.1.0"
