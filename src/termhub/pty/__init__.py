"""PTY session management — managed pseudo-terminals for many callers.

Shells run in managed PTY sessions with process group isolation,
bounded scrollback, throttled output delivery, resize suppression and
bounded-time termination.
"""

from termhub.pty.backend import PtyBackend, PtyProcess, default_backend
from termhub.pty.buffer import OutputPipeline, ScrollbackBuffer
from termhub.pty.errors import (
    LimitExceeded,
    ManagerClosed,
    PathRejected,
    SpawnFailure,
    TerminalError,
)
from termhub.pty.hub import ExitInfo, SubscriptionHub
from termhub.pty.manager import CreateOptions, HealthReport, TerminalManager
from termhub.pty.session import SessionInfo, SessionState, TerminalSession
from termhub.pty.shell import ResolvedShell, ShellResolver
from termhub.pty.workdir import FileAccess, LocalFileAccess, WorkingDirectoryResolver

__all__ = [
    "CreateOptions",
    "ExitInfo",
    "FileAccess",
    "HealthReport",
    "LimitExceeded",
    "LocalFileAccess",
    "ManagerClosed",
    "OutputPipeline",
    "PathRejected",
    "PtyBackend",
    "PtyProcess",
    "ResolvedShell",
    "ScrollbackBuffer",
    "SessionInfo",
    "SessionState",
    "ShellResolver",
    "SpawnFailure",
    "SubscriptionHub",
    "TerminalError",
    "TerminalManager",
    "TerminalSession",
    "WorkingDirectoryResolver",
    "default_backend",
]
