# src/sitewatch/llm/offline.py

from __future__ import annotations

from ..core.ports import Judgment
from .client import build_prompt


class OfflineSummarizer:
    """
    Offline deterministic summarizer used for demos when no LLM endpoint is configured.

    Behavior:
    - structured (alert) prompts -> a judgment that never alerts
    - plain prompts -> the first lines of the extracted content
    """

    def __init__(self, preview_chars: int = 500) -> None:
        self._preview_chars = preview_chars

    async def infer(self, prompt: str, content: str, structured: bool) -> str | Judgment:
        # Same prompt checks as the real client, so configs behave identically.
        build_prompt(prompt, content)

        if structured:
            return Judgment(is_show=False, details="Offline mode: no LLM is configured, nothing to judge.")

        preview = content.strip()
        if len(preview) > self._preview_chars:
            preview = preview[: self._preview_chars] + "…"
        return (
            "Offline demo mode: no LLM is configured.\n"
            "Set SITEWATCH_LLM_BASE_URL (and SITEWATCH_LLM_MODELS) to enable real summaries.\n\n"
            f"{preview}"
        )
