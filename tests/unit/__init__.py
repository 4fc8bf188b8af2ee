"""
Unit tests for the line translator.

Test individual components in isolation:
- Data models and options (validation, structured-mode overrides)
- Prompt builder and text utilities (labels, markers, token estimates)
- Strategies (encode, decode, mismatch predicates, context rendering)
- Validation stages (JSON parse, JSON Schema)
- Retry policy and cooldown limiter
- Engine (ladder, context window, usage, batch state machine)
- OpenAI client (httpx.MockTransport)
"""
