"""Terminal session — state for one managed shell."""

from __future__ import annotations

import asyncio
import enum
import time
import uuid
from dataclasses import dataclass, field

from termhub.pty.backend import PtyProcess
from termhub.pty.buffer import OutputPipeline
from termhub.pty.hub import ExitInfo


class SessionState(enum.Enum):
    """Lifecycle states for a terminal session."""

    CREATING = "creating"
    ACTIVE = "active"
    KILLING = "killing"  # Kill requested, waiting for the process to die
    EXITED = "exited"
    FAILED = "failed"  # Spawn error, never became active


@dataclass(frozen=True)
class SessionInfo:
    """Point-in-time description of a session, safe to hand out."""

    id: str
    cwd: str
    created_at: float
    shell_path: str


def new_session_id() -> str:
    return uuid.uuid4().hex


@dataclass(eq=False)
class TerminalSession:
    """A managed pseudo-terminal session.

    The ``process`` handle is owned by the session; only the termination
    supervisor closes it. ``pipeline`` holds scrollback and undelivered
    output. Timer handles are set only while the timer is pending.
    """

    id: str
    process: PtyProcess
    pipeline: OutputPipeline
    cwd: str
    shell_path: str
    shell_args: list[str] = field(default_factory=list)
    cols: int = 80
    rows: int = 24
    created_at: float = field(default_factory=time.time)

    state: SessionState = SessionState.CREATING
    resize_in_progress: bool = False
    settle_timer: asyncio.TimerHandle | None = None
    kill_timer: asyncio.TimerHandle | None = None
    exit_info: ExitInfo | None = None
    closed: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def pid(self) -> int:
        return self.process.pid

    @property
    def alive(self) -> bool:
        return self.state is SessionState.ACTIVE

    @property
    def scrollback(self) -> str:
        return self.pipeline.scrollback.snapshot()

    def handle_output(self, chunk: str) -> None:
        """Output callback from the process."""
        if self.resize_in_progress:
            # Repaint noise from a resize; neither recorded nor delivered.
            return
        if self.state is SessionState.ACTIVE:
            self.pipeline.push(chunk)

    def info(self) -> SessionInfo:
        return SessionInfo(
            id=self.id,
            cwd=self.cwd,
            created_at=self.created_at,
            shell_path=self.shell_path,
        )
