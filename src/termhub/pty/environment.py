"""Environment filtering for spawned shells."""

from __future__ import annotations

import os
from collections.abc import Mapping
from typing import Any

from termhub.config import TerminalConfig

TERMINAL_OVERRIDES = {
    "TERM": "xterm-256color",
    "COLORTERM": "truecolor",
}

LOCALE_DEFAULTS = {
    "LANG": "en_US.UTF-8",
}


def is_denied(name: str, deny: list[str], passthrough: list[str]) -> bool:
    """Return True if ``name`` must not reach a spawned shell."""
    if name in passthrough:
        return False
    for pattern in deny:
        if pattern.endswith("*"):
            if name.startswith(pattern[:-1]):
                return True
        elif name == pattern:
            return True
    return False


def build_environment(
    base: Mapping[str, str] | None = None,
    extra: Mapping[str, Any] | None = None,
    config: TerminalConfig | None = None,
) -> dict[str, str]:
    """Build the environment for a new shell.

    The ambient environment minus deployment-internal variables, with
    terminal type and color capability forced and locale defaults filled
    in. Caller-supplied ``extra`` values go on top but are still subject to
    the deny list.
    """
    config = config or TerminalConfig()
    base = os.environ if base is None else base
    deny, passthrough = config.env_deny, config.env_passthrough

    env = {k: v for k, v in base.items() if not is_denied(k, deny, passthrough)}
    env.update(TERMINAL_OVERRIDES)
    for key, value in LOCALE_DEFAULTS.items():
        env.setdefault(key, value)

    for key, value in (extra or {}).items():
        if value is None or is_denied(key, deny, passthrough):
            continue
        env[key] = str(value)
    return env
