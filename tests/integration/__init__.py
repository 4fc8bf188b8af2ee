"""
Integration tests for the line translator.

Test components together or against real external services:
- TranslationEngine over a live OpenAI-compatible endpoint (skipped without OPENAI_API_KEY)
- CooldownLimiter on the real event loop clock
"""
