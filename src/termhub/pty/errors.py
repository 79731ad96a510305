"""Exceptions raised by the terminal session manager."""

from __future__ import annotations


class TerminalError(Exception):
    """Base class for terminal manager errors."""


class LimitExceeded(TerminalError):
    """Admission control refused a new session."""

    def __init__(self, current: int, maximum: int) -> None:
        super().__init__(f"Session limit reached ({current}/{maximum})")
        self.current = current
        self.maximum = maximum


class SpawnFailure(TerminalError):
    """The OS failed to start the shell process."""

    def __init__(self, argv: list[str], cwd: str, cause: BaseException) -> None:
        super().__init__(f"Failed to spawn {' '.join(argv)!r} in {cwd}: {cause}")
        self.argv = argv
        self.cwd = cwd
        self.cause = cause


class ManagerClosed(TerminalError):
    """The manager has been shut down and accepts no new sessions."""


class PathRejected(TerminalError):
    """A path fell outside the allowed filesystem boundary."""
