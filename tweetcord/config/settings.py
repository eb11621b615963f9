from __future__ import annotations

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from tweetcord.errors import ConfigError

REQUIRED_ENV_VARS = [
    "X_BEARER_TOKEN",
    "X_USERNAME",
    "DISCORD_WEBHOOK_URL",
]

MESSAGE_STYLES = ("embed", "link")
WATERMARK_BACKENDS = ("memory", "file", "env", "sqlite")

DEFAULT_MAX_RESULTS = 5
# 3 runs a day keeps a single account at ~90 timeline calls a month.
DEFAULT_CHECK_INTERVAL_MINUTES = 480
DEFAULT_PACING_SECONDS = 1.0
DEFAULT_RUN_TIMEOUT_SECONDS = 300
DEFAULT_WATERMARK_FILE = "last_tweet_id.txt"
DEFAULT_SQLITE_FILE = "tweetcord.db"


@dataclass
class Settings:
    """Holds all application configuration loaded from environment variables."""

    x_bearer_token: str
    x_username: str
    discord_webhook_url: str
    discord_thread_id: str | None = None
    max_results: int = DEFAULT_MAX_RESULTS
    check_interval_minutes: int = DEFAULT_CHECK_INTERVAL_MINUTES
    pacing_seconds: float = DEFAULT_PACING_SECONDS
    run_timeout_seconds: float = DEFAULT_RUN_TIMEOUT_SECONDS
    message_style: str = "embed"
    watermark_backend: str = "file"
    watermark_path: str = DEFAULT_WATERMARK_FILE
    log_file: str = "tweetcord.log"


def _validate_env_vars() -> dict[str, str]:
    env_values: dict[str, str] = {}
    missing: list[str] = []
    for var in REQUIRED_ENV_VARS:
        value = (os.getenv(var) or "").strip()
        if not value:
            missing.append(var)
        else:
            env_values[var] = value
    if missing:
        raise ConfigError(
            f"Missing required environment variables: {', '.join(missing)}. "
            "Please set them in your .env file or system environment."
        )
    return env_values


def _env_number(name: str, default, cast, minimum=None):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        value = cast(raw.strip())
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {raw!r}") from None
    if minimum is not None and value < minimum:
        raise ConfigError(f"{name} must be at least {minimum}, got {value}")
    return value


def _env_choice(name: str, default: str, choices: tuple[str, ...]) -> str:
    value = (os.getenv(name) or default).strip().lower()
    if value not in choices:
        raise ConfigError(f"{name} must be one of {', '.join(choices)}, got {value!r}")
    return value


def load_settings() -> Settings:
    load_dotenv()
    env_values = _validate_env_vars()

    backend = _env_choice("WATERMARK_BACKEND", "file", WATERMARK_BACKENDS)
    default_path = DEFAULT_SQLITE_FILE if backend == "sqlite" else DEFAULT_WATERMARK_FILE

    return Settings(
        x_bearer_token=env_values["X_BEARER_TOKEN"],
        x_username=env_values["X_USERNAME"].lstrip("@"),
        discord_webhook_url=env_values["DISCORD_WEBHOOK_URL"],
        discord_thread_id=(os.getenv("DISCORD_THREAD_ID") or "").strip() or None,
        max_results=_env_number("MAX_RESULTS", DEFAULT_MAX_RESULTS, int, minimum=1),
        check_interval_minutes=_env_number(
            "CHECK_INTERVAL_MINUTES", DEFAULT_CHECK_INTERVAL_MINUTES, int, minimum=1
        ),
        pacing_seconds=_env_number("PACING_SECONDS", DEFAULT_PACING_SECONDS, float, minimum=0),
        run_timeout_seconds=_env_number(
            "RUN_TIMEOUT_SECONDS", DEFAULT_RUN_TIMEOUT_SECONDS, float, minimum=1
        ),
        message_style=_env_choice("MESSAGE_STYLE", "embed", MESSAGE_STYLES),
        watermark_backend=backend,
        watermark_path=(os.getenv("WATERMARK_PATH") or "").strip() or default_path,
        log_file=(os.getenv("LOG_FILE") or "").strip() or "tweetcord.log",
    )
