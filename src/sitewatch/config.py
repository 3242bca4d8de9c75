# src/sitewatch/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app.
- No secrets required at import time.
- Every tuning knob of the execution core (cache, queue, pool, fetch retries,
  stagger) is externally tunable; defaults match the documented behaviour.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv

ENV_PREFIX = "SITEWATCH"


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


# Local .env never overrides variables already set in the environment.
load_dotenv(override=False)


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: list[str]) -> list[str]:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return list(default)
    return [p.strip() for p in raw.replace(",", " ").split() if p.strip()]


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    tasks_db_path: Path

    # ---- Console shell ----
    console_enabled: bool
    default_destination: str

    # ---- LLM (OpenAI-compatible endpoint, Ollama by default) ----
    llm_base_url: str
    llm_api_key: str
    llm_models: list[str]
    llm_timeout_seconds: float
    llm_max_retries: int

    # ---- Result cache ----
    cache_ttl_ms: int
    max_cache_size: int
    cache_sweep_seconds: float

    # ---- Admission / queue ----
    queue_delay_ms: int
    max_queue_size: int
    max_running_tasks: int

    # ---- Page fetching ----
    fetch_retries: int
    fetch_retry_delay_ms: int
    fetch_timeout_seconds: float
    fetch_max_chars: int

    # ---- Scheduling ----
    stagger_minutes: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "sitewatch") or "sitewatch"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/sitewatch"))
        tasks_db_path = _env_path(_k("TASKS_DB_PATH"), data_dir / "tasks.sqlite3")

        console_enabled = _env_bool(_k("CONSOLE_ENABLED"), True)
        default_destination = _env(_k("DEFAULT_DESTINATION"), "console").strip() or "console"

        llm_base_url = _env(_k("LLM_BASE_URL"), "http://localhost:11434/v1").strip()
        # Ollama ignores the key, but the OpenAI SDK refuses an empty one.
        llm_api_key = _env(_k("LLM_API_KEY"), "ollama").strip()
        llm_models = _env_list(_k("LLM_MODELS"), ["llama3"])
        llm_timeout_seconds = _env_float(_k("LLM_TIMEOUT_SECONDS"), 120.0)
        llm_max_retries = _env_int(_k("LLM_MAX_RETRIES"), 1)

        cache_ttl_ms = _env_int(_k("CACHE_TTL_MS"), 10_000)
        max_cache_size = _env_int(_k("MAX_CACHE_SIZE"), 1000)
        cache_sweep_seconds = _env_float(_k("CACHE_SWEEP_SECONDS"), 60.0)

        queue_delay_ms = _env_int(_k("QUEUE_DELAY_MS"), 10_000)
        max_queue_size = _env_int(_k("MAX_QUEUE_SIZE"), 10)
        max_running_tasks = _env_int(_k("MAX_RUNNING_TASKS"), 3)

        fetch_retries = _env_int(_k("FETCH_RETRIES"), 2)
        fetch_retry_delay_ms = _env_int(_k("FETCH_RETRY_DELAY_MS"), 2000)
        fetch_timeout_seconds = _env_float(_k("FETCH_TIMEOUT_SECONDS"), 60.0)
        fetch_max_chars = _env_int(_k("FETCH_MAX_CHARS"), 20_000)

        stagger_minutes = _env_float(_k("STAGGER_MINUTES"), 5.0)

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            tasks_db_path=tasks_db_path,
            console_enabled=console_enabled,
            default_destination=default_destination,
            llm_base_url=llm_base_url,
            llm_api_key=llm_api_key,
            llm_models=llm_models,
            llm_timeout_seconds=llm_timeout_seconds,
            llm_max_retries=max(0, llm_max_retries),
            cache_ttl_ms=max(0, cache_ttl_ms),
            max_cache_size=max(1, max_cache_size),
            cache_sweep_seconds=max(1.0, cache_sweep_seconds),
            queue_delay_ms=max(0, queue_delay_ms),
            max_queue_size=max(0, max_queue_size),
            max_running_tasks=max(1, max_running_tasks),
            fetch_retries=max(1, fetch_retries),
            fetch_retry_delay_ms=max(0, fetch_retry_delay_ms),
            fetch_timeout_seconds=max(1.0, fetch_timeout_seconds),
            fetch_max_chars=max(1, fetch_max_chars),
            stagger_minutes=max(0.0, stagger_minutes),
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
