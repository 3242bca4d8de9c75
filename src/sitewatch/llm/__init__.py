"""Summarizers: OpenAI-compatible client and offline fallback."""
