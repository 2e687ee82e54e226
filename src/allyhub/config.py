# src/allyhub/config.py

"""Centralized settings loaded from environment variables (+ optional .env).

Design goals:
- One Settings object for the whole app (normal "settings layer").
- Endpoint URLs may be empty; an empty URL means "this resource is disabled".
- Refresh intervals are clamped to the values the hub supports (5/10/15 minutes).
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_PREFIX = "ALLYHUB"

DEFAULT_REFRESH_MINUTES = 10
MIN_REFRESH_MINUTES = 5
MAX_REFRESH_MINUTES = 15
REFRESH_STEP_MINUTES = 5


def _k(suffix: str) -> str:
    """Build env var name with the project prefix."""
    return f"{ENV_PREFIX}_{suffix}"


def _load_dotenv_if_available() -> None:
    """Load .env locally if python-dotenv is installed. Safe no-op otherwise."""
    try:
        from dotenv import load_dotenv  # type: ignore
    except Exception:
        return
    load_dotenv(override=False)


_load_dotenv_if_available()


def _env(name: str, default: str = "") -> str:
    v = os.getenv(name)
    return default if v is None else v


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


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    return Path(raw).expanduser()


def clamp_refresh_minutes(value: object) -> int:
    """
    Snap a refresh interval to the nearest supported value.

    Supported values are multiples of 5 inside [5, 15]. Anything that is not a
    number falls back to the default (10).
    """
    try:
        minutes = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return DEFAULT_REFRESH_MINUTES
    if minutes != minutes:  # NaN
        return DEFAULT_REFRESH_MINUTES
    minutes = max(MIN_REFRESH_MINUTES, min(MAX_REFRESH_MINUTES, minutes))
    return int(round(minutes / REFRESH_STEP_MINUTES)) * REFRESH_STEP_MINUTES


@dataclass(frozen=True, slots=True)
class Settings:
    # ---- App / logging ----
    app_name: str
    log_level: str

    # ---- Local data paths (ignored by git) ----
    data_dir: Path
    cache_db_path: Path

    # ---- Endpoints (empty => disabled) ----
    task_fetch_url: str
    task_update_url: str
    notification_fetch_url: str
    notification_update_url: str
    action_fetch_url: str
    chat_collection_url: str
    chat_fetch_url: str
    chat_create_url: str
    chat_message_url: str

    # ---- Refresh ----
    tasks_refresh_minutes: int
    notifications_refresh_minutes: int

    # ---- Request payload ----
    user_id: str
    fetch_limit: int

    # ---- HTTP client ----
    http_connect_timeout_seconds: float
    http_read_timeout_seconds: float

    @staticmethod
    def from_env() -> "Settings":
        app_name = _env(_k("APP_NAME"), "allyhub") or "allyhub"
        log_level = _env(_k("LOG_LEVEL"), "INFO")

        data_dir = _env_path(_k("DATA_DIR"), Path(".local/allyhub"))
        cache_db_path = _env_path(_k("CACHE_DB_PATH"), data_dir / "cache.sqlite3")

        tasks_refresh_minutes = clamp_refresh_minutes(
            _env_int(_k("TASKS_REFRESH_MINUTES"), DEFAULT_REFRESH_MINUTES)
        )
        notifications_refresh_minutes = clamp_refresh_minutes(
            _env_int(_k("NOTIFICATIONS_REFRESH_MINUTES"), DEFAULT_REFRESH_MINUTES)
        )

        return Settings(
            app_name=app_name,
            log_level=log_level,
            data_dir=data_dir,
            cache_db_path=cache_db_path,
            task_fetch_url=_env(_k("TASK_FETCH_URL")).strip(),
            task_update_url=_env(_k("TASK_UPDATE_URL")).strip(),
            notification_fetch_url=_env(_k("NOTIFICATION_FETCH_URL")).strip(),
            notification_update_url=_env(_k("NOTIFICATION_UPDATE_URL")).strip(),
            action_fetch_url=_env(_k("ACTION_FETCH_URL")).strip(),
            chat_collection_url=_env(_k("CHAT_COLLECTION_URL")).strip(),
            chat_fetch_url=_env(_k("CHAT_FETCH_URL")).strip(),
            chat_create_url=_env(_k("CHAT_CREATE_URL")).strip(),
            chat_message_url=_env(_k("CHAT_MESSAGE_URL")).strip(),
            tasks_refresh_minutes=tasks_refresh_minutes,
            notifications_refresh_minutes=notifications_refresh_minutes,
            user_id=_env(_k("USER_ID"), "default_user") or "default_user",
            fetch_limit=max(1, _env_int(_k("FETCH_LIMIT"), 50)),
            http_connect_timeout_seconds=_env_float(_k("HTTP_CONNECT_TIMEOUT_SECONDS"), 5.0),
            http_read_timeout_seconds=_env_float(_k("HTTP_READ_TIMEOUT_SECONDS"), 30.0),
        )


SETTINGS = Settings.from_env()


def get_settings() -> Settings:
    return SETTINGS
