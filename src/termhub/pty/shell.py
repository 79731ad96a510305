"""Shell resolution — pick an executable shell for the host platform."""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field

logger = logging.getLogger(__name__)

POSIX_FALLBACK = "/bin/sh"
WINDOWS_SHELL = "powershell.exe"

# Ordered by preference. The first existing entry wins when the user has
# no usable preference.
POSIX_SHELLS = [
    "/bin/zsh",
    "/usr/bin/zsh",
    "/usr/local/bin/zsh",
    "/opt/homebrew/bin/zsh",
    "/bin/bash",
    "/usr/bin/bash",
    "/usr/local/bin/bash",
    "/opt/homebrew/bin/bash",
    "/usr/bin/fish",
    "/usr/local/bin/fish",
    "/opt/homebrew/bin/fish",
    "/bin/sh",
]

_LOGIN_SHELLS = {"bash", "zsh", "fish"}


@dataclass(frozen=True)
class ResolvedShell:
    path: str
    args: list[str] = field(default_factory=list)

    @property
    def argv(self) -> list[str]:
        return [self.path, *self.args]


def shell_args(path: str) -> list[str]:
    """Canonical startup arguments for a shell binary."""
    if os.path.basename(path) in _LOGIN_SHELLS:
        return ["-l"]
    return []


class ShellResolver:
    """Chooses a shell and its arguments. Never fails.

    ``platform``, ``environ`` and ``exists`` default to the running host
    and are injectable for tests.
    """

    def __init__(
        self,
        platform: str | None = None,
        environ: Mapping[str, str] | None = None,
        exists: Callable[[str], bool] | None = None,
        allowlist: list[str] | None = None,
    ) -> None:
        self._platform = platform or sys.platform
        self._environ = os.environ if environ is None else environ
        self._exists = exists or os.path.exists
        self._allowlist = list(allowlist) if allowlist is not None else list(POSIX_SHELLS)

    @property
    def is_windows(self) -> bool:
        return self._platform == "win32"

    def resolve(self, preferred: str | None = None) -> ResolvedShell:
        if self.is_windows:
            return ResolvedShell(WINDOWS_SHELL)

        wanted = preferred or self._environ.get("SHELL")
        if wanted:
            match = self._match(wanted)
            if match is not None:
                return ResolvedShell(match, shell_args(match))
            logger.debug("Preferred shell %s is not allowlisted or missing", wanted)

        for candidate in self._allowlist:
            if self._exists(candidate):
                return ResolvedShell(candidate, shell_args(candidate))

        logger.warning("No allowlisted shell found, falling back to %s", POSIX_FALLBACK)
        return ResolvedShell(POSIX_FALLBACK)

    def _match(self, wanted: str) -> str | None:
        name = os.path.basename(wanted)
        for candidate in self._allowlist:
            if candidate == wanted and self._exists(candidate):
                return candidate
        for candidate in self._allowlist:
            if os.path.basename(candidate) == name and self._exists(candidate):
                return candidate
        return None
