# src/sitewatch/llm/client.py

from __future__ import annotations

import json
import logging
import re
import time
from typing import Any

import httpx
import openai
from openai import AsyncOpenAI

from ..core.errors import InferenceError
from ..core.ports import Judgment

logger = logging.getLogger(__name__)

CONTENT_PLACEHOLDER = "{content}"

JUDGMENT_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        "is_show": {"type": "boolean"},
        "details": {"type": "string"},
    },
    "required": ["is_show", "details"],
    "additionalProperties": False,
}

_JUDGMENT_RESPONSE_FORMAT: dict[str, Any] = {
    "type": "json_schema",
    "json_schema": {"name": "judgment", "schema": JUDGMENT_SCHEMA, "strict": True},
}

JUDGMENT_SYSTEM_PROMPT = (
    "Answer strictly with a JSON object of the form "
    '{"is_show": <true|false>, "details": "<short explanation>"}. '
    "Set is_show to true only when the condition asked about holds."
)

_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL)

_BAD_MODEL_COOLDOWN_SECONDS = 3600.0


def build_prompt(template: str, content: str) -> str:
    """Substitute the first {content} placeholder."""
    if not template or not template.strip():
        raise InferenceError("Prompt must be a non-empty string")
    if CONTENT_PLACEHOLDER not in template:
        raise InferenceError(f"Prompt must include {CONTENT_PLACEHOLDER}")
    return template.replace(CONTENT_PLACEHOLDER, content, 1)


def parse_judgment(raw: str) -> Judgment:
    """
    Parse {"is_show": bool, "details": str}.

    Tolerates a markdown code fence around the JSON; anything else that
    does not match the schema is an InferenceError (not retried).
    """
    s = (raw or "").strip()
    m = _FENCE_RE.match(s)
    if m:
        s = m.group(1)

    try:
        data = json.loads(s)
    except json.JSONDecodeError as e:
        raise InferenceError(f"Invalid JSON response: {e.msg}") from e

    if not isinstance(data, dict):
        raise InferenceError("Invalid JSON response: expected an object")

    is_show = data.get("is_show")
    details = data.get("details")
    if not isinstance(is_show, bool):
        raise InferenceError("Invalid JSON response: is_show must be a boolean")
    if not isinstance(details, str):
        raise InferenceError("Invalid JSON response: details must be a string")

    return Judgment(is_show=is_show, details=details)


class OpenAICompatibleSummarizer:
    """
    Summarizer over an OpenAI-compatible chat completion API
    (Ollama's /v1 endpoint by default, OpenRouter/OpenAI work the same way).

    Behavior:
    - Tries models in the order from settings (SITEWATCH_LLM_MODELS).
    - 404 (model not available) -> park the model for an hour, try next.
    - Rate limit / network issues -> try next.
    - Auth issues -> fail fast (no retries across models).
    - Malformed judgment JSON -> fail, no retry.
    """

    def __init__(self, settings: Any) -> None:
        base_url = str(getattr(settings, "llm_base_url", "") or "").strip()
        api_key = str(getattr(settings, "llm_api_key", "") or "").strip()
        models = [m.strip() for m in list(getattr(settings, "llm_models", []) or []) if m and m.strip()]

        if not base_url:
            raise RuntimeError("LLM base URL is not set. Set SITEWATCH_LLM_BASE_URL in your .env.")
        if not api_key:
            raise RuntimeError("LLM API key is not set. Set SITEWATCH_LLM_API_KEY in your .env.")
        if not models:
            raise RuntimeError("LLM model list is empty. Set SITEWATCH_LLM_MODELS in your .env.")

        read_timeout = float(getattr(settings, "llm_timeout_seconds", 120.0))

        self._models = models
        self._bad_models: dict[str, float] = {}  # model -> retry_at (monotonic)
        self._client = AsyncOpenAI(
            base_url=base_url,
            api_key=api_key,
            timeout=httpx.Timeout(connect=10.0, read=read_timeout, write=10.0, pool=10.0),
            max_retries=int(getattr(settings, "llm_max_retries", 1)),
        )

    async def aclose(self) -> None:
        await self._client.close()

    async def infer(self, prompt: str, content: str, structured: bool) -> str | Judgment:
        final_prompt = build_prompt(prompt, content)

        messages: list[dict[str, str]] = []
        if structured:
            messages.append({"role": "system", "content": JUDGMENT_SYSTEM_PROMPT})
        messages.append({"role": "user", "content": final_prompt})

        last_error: Exception | None = None
        now = time.monotonic()

        for model in self._models:
            retry_at = self._bad_models.get(model)
            if retry_at is not None and retry_at > now:
                continue

            logger.debug("LLM: trying model=%s structured=%s", model, structured)
            t0 = time.monotonic()

            try:
                kwargs: dict[str, Any] = {"model": model, "messages": messages}
                if structured:
                    kwargs["response_format"] = _JUDGMENT_RESPONSE_FORMAT
                response = await self._client.chat.completions.create(**kwargs)
            except (openai.AuthenticationError, openai.PermissionDeniedError) as e:
                raise InferenceError("LLM authentication failed. Check SITEWATCH_LLM_API_KEY.") from e
            except openai.NotFoundError as e:
                last_error = e
                self._bad_models[model] = time.monotonic() + _BAD_MODEL_COOLDOWN_SECONDS
                logger.info("LLM: model not available (404): %s", model)
                continue
            except openai.RateLimitError as e:
                last_error = e
                logger.info("LLM: rate-limited on model=%s, trying next", model)
                continue
            except openai.APIConnectionError as e:
                last_error = e
                logger.info("LLM: network/timeout error on model=%s, trying next", model)
                continue
            except openai.APIError as e:
                last_error = e
                logger.info("LLM: error on model=%s (%s), trying next", model, e.__class__.__name__)
                continue

            text = ""
            if response.choices:
                text = (response.choices[0].message.content or "").strip()
            if not text:
                last_error = RuntimeError(f"Model returned no content: {model}")
                logger.info("LLM: empty answer from model=%s, trying next", model)
                continue

            logger.debug("LLM: completed with model=%s (%.2fs)", model, time.monotonic() - t0)
            return parse_judgment(text) if structured else text

        if isinstance(last_error, openai.RateLimitError):
            raise InferenceError("LLM is rate-limited. Try again later.") from last_error
        if isinstance(last_error, openai.APIConnectionError):
            raise InferenceError("LLM server is not reachable.") from last_error
        raise InferenceError("All LLM models failed.") from last_error
