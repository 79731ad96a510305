"""Configuration — Pydantic models for termhub settings."""

from __future__ import annotations

import json
import logging
import os
from typing import Any

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

MIN_SESSIONS = 1
MAX_SESSIONS = 1000

# Variables that belong to the deployment, not to the user's shell.
# Entries ending in "*" match by prefix.
DEFAULT_ENV_DENY = [
    "TERMHUB_*",
    "DATABASE_URL",
    "REDIS_URL",
    "SECRET_KEY",
    "SESSION_SECRET",
    "ANTHROPIC_API_KEY",
    "OPENAI_API_KEY",
    "GEMINI_API_KEY",
    "GITHUB_TOKEN",
    "GITHUB_APP_PRIVATE_KEY",
    "GITHUB_WEBHOOK_SECRET",
    "AWS_ACCESS_KEY_ID",
    "AWS_SECRET_ACCESS_KEY",
    "AWS_SESSION_TOKEN",
    "KUBECONFIG",
    "NODE_OPTIONS",
    "VITE_*",
    "npm_*",
]

# Always kept, even when a deny pattern would match.
DEFAULT_ENV_PASSTHROUGH = [
    "TERM",
    "COLORTERM",
    "LANG",
    "LANGUAGE",
    "LC_ALL",
    "LC_CTYPE",
    "LC_MESSAGES",
    "SSH_AUTH_SOCK",
    "SSH_AGENT_PID",
    "GPG_AGENT_INFO",
    "GPG_TTY",
]


class TerminalConfig(BaseModel):
    """Terminal manager configuration.

    Timing values are in milliseconds; buffer sizes are in characters of
    decoded terminal output.
    """

    max_sessions: int = Field(
        default=MAX_SESSIONS,
        ge=MIN_SESSIONS,
        le=MAX_SESSIONS,
        description="Maximum number of concurrently registered sessions",
    )
    scrollback_cap: int = Field(
        default=50_000, ge=1, description="Characters of scrollback kept per session"
    )
    output_batch_size: int = Field(
        default=4096, ge=1, description="Largest slice delivered per flush"
    )
    throttle_ms: float = Field(default=4, ge=0, description="Delay between flushes")
    resize_settle_ms: float = Field(
        default=150, ge=0, description="Output suppression window after a resize"
    )
    kill_grace_ms: float = Field(
        default=1000, ge=0, description="Wait before escalating to a forced kill"
    )
    default_cols: int = Field(default=80, ge=1, le=65535)
    default_rows: int = Field(default=24, ge=1, le=65535)
    env_deny: list[str] = Field(default_factory=lambda: list(DEFAULT_ENV_DENY))
    env_passthrough: list[str] = Field(
        default_factory=lambda: list(DEFAULT_ENV_PASSTHROUGH)
    )

    @property
    def throttle(self) -> float:
        return self.throttle_ms / 1000

    @property
    def resize_settle(self) -> float:
        return self.resize_settle_ms / 1000

    @property
    def kill_grace(self) -> float:
        return self.kill_grace_ms / 1000

    @classmethod
    def load(cls, config_path: str | None = None) -> TerminalConfig:
        """Load config from file, env vars, or defaults.

        Priority: env vars > config file > defaults.

        Env vars:
            TERMHUB_MAX_SESSIONS       - Session limit (1..1000)
            TERMHUB_SCROLLBACK_CAP     - Scrollback characters per session
            TERMHUB_OUTPUT_BATCH_SIZE  - Characters per delivered batch
            TERMHUB_THROTTLE_MS        - Flush interval
            TERMHUB_KILL_GRACE_MS      - Graceful termination window

        A value that does not parse or is out of range is logged and
        ignored, so one bad variable never prevents startup.
        """
        load_dotenv(find_dotenv(usecwd=True))

        config_data: dict[str, Any] = {}
        if config_path and os.path.exists(config_path):
            with open(config_path) as f:
                config_data = json.load(f)

        _env_int(config_data, "max_sessions", "TERMHUB_MAX_SESSIONS", MIN_SESSIONS, MAX_SESSIONS)
        _env_int(config_data, "scrollback_cap", "TERMHUB_SCROLLBACK_CAP", 1, None)
        _env_int(config_data, "output_batch_size", "TERMHUB_OUTPUT_BATCH_SIZE", 1, None)
        _env_int(config_data, "throttle_ms", "TERMHUB_THROTTLE_MS", 0, None)
        _env_int(config_data, "kill_grace_ms", "TERMHUB_KILL_GRACE_MS", 0, None)

        return cls.model_validate(config_data)


def _env_int(
    config_data: dict[str, Any],
    key: str,
    env_var: str,
    minimum: int,
    maximum: int | None,
) -> None:
    raw = os.environ.get(env_var)
    if raw is None or not raw.strip():
        return
    try:
        value = int(raw)
    except ValueError:
        logger.warning("Ignoring %s=%r: not an integer", env_var, raw)
        return
    if value < minimum or (maximum is not None and value > maximum):
        logger.warning(
            "Ignoring %s=%d: outside [%s, %s]", env_var, value, minimum, maximum or "inf"
        )
        return
    config_data[key] = value
