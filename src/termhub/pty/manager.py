"""Terminal manager — the registry of live PTY sessions."""

from __future__ import annotations

import asyncio
import functools
import logging
from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel, Field

from termhub.config import MAX_SESSIONS, MIN_SESSIONS, TerminalConfig
from termhub.pty.backend import PtyBackend, default_backend
from termhub.pty.buffer import OutputPipeline
from termhub.pty.environment import build_environment
from termhub.pty.errors import LimitExceeded, ManagerClosed, SpawnFailure, TerminalError
from termhub.pty.hub import DataCallback, ExitCallback, ExitInfo, SubscriptionHub
from termhub.pty.resize import ResizeCoordinator
from termhub.pty.session import (
    SessionInfo,
    SessionState,
    TerminalSession,
    new_session_id,
)
from termhub.pty.shell import ShellResolver
from termhub.pty.supervisor import TerminationSupervisor
from termhub.pty.workdir import FileAccess, WorkingDirectoryResolver

logger = logging.getLogger(__name__)


class CreateOptions(BaseModel):
    """Parameters for a new session. Everything is optional."""

    cwd: str | None = Field(default=None, description="Starting directory")
    shell: str | None = Field(default=None, description="Preferred shell path or name")
    cols: int | None = Field(default=None, ge=1, le=65535)
    rows: int | None = Field(default=None, ge=1, le=65535)
    env: dict[str, str] | None = Field(
        default=None, description="Extra environment variables for the shell"
    )


class HealthReport(BaseModel):
    active_session_count: int
    max_sessions: int
    utilization: float = Field(description="active / max, between 0 and 1")


class TerminalManager:
    """Owns every terminal session of one deployment.

    The manager ensures:
    - At most ``max_sessions`` sessions exist, checked before anything is
      spawned (in-flight creations hold a slot)
    - Sessions are tracked and can be looked up by ID; a missing ID means
      the session does not exist
    - Output reaches subscribers throttled and batched
    - All sessions are killed on ``shutdown()`` (no orphan processes)

    All methods must be called from the event loop the manager runs on;
    registry state is confined to that loop instead of being locked.
    """

    def __init__(
        self,
        config: TerminalConfig | None = None,
        backend: PtyBackend | None = None,
        files: FileAccess | None = None,
        shell_resolver: ShellResolver | None = None,
        environ: Mapping[str, str] | None = None,
        home: str | None = None,
    ) -> None:
        self.config = config or TerminalConfig()
        self._backend = backend or default_backend()
        self._shells = shell_resolver or ShellResolver()
        self._workdirs = WorkingDirectoryResolver(files, home=home)
        self._environ = environ
        self._hub = SubscriptionHub()
        self._sessions: dict[str, TerminalSession] = {}
        self._max_sessions = self.config.max_sessions
        self._reserved = 0
        self._closed = False

        self._loop: asyncio.AbstractEventLoop | None = None
        self._resizer: ResizeCoordinator | None = None
        self._supervisor: TerminationSupervisor | None = None

    def _bind(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            loop = asyncio.get_running_loop()
            self._loop = loop
            self._resizer = ResizeCoordinator(loop, self.config.resize_settle)
            self._supervisor = TerminationSupervisor(
                loop,
                self.config.kill_grace,
                is_registered=self._is_registered,
                on_terminated=self._terminated,
                supports_signals=self._backend.supports_signals,
            )
        return self._loop

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def spawn(self, options: CreateOptions | None = None) -> TerminalSession:
        """Create a session.

        Raises:
            LimitExceeded: The session limit is reached; nothing was spawned.
            SpawnFailure: The OS could not start the shell; nothing registered.
            ManagerClosed: ``shutdown()`` has been called.
        """
        options = options or CreateOptions()
        if self._closed:
            raise ManagerClosed("terminal manager is shut down")
        if self.count() + self._reserved >= self._max_sessions:
            raise LimitExceeded(self.count(), self._max_sessions)

        loop = self._bind()
        self._reserved += 1
        try:
            shell = self._shells.resolve(options.shell)
            cwd = await self._workdirs.resolve(options.cwd)
            if self._closed:
                raise ManagerClosed("terminal manager shut down during creation")
            env = build_environment(self._environ, options.env, self.config)
            cols = options.cols or self.config.default_cols
            rows = options.rows or self.config.default_rows
            try:
                process = self._backend.spawn(shell.argv, cwd, env, cols, rows)
            except Exception as e:
                logger.error("Failed to spawn %s in %s: %s", shell.path, cwd, e)
                raise SpawnFailure(shell.argv, cwd, e) from e
        finally:
            self._reserved -= 1

        session_id = new_session_id()
        session = TerminalSession(
            id=session_id,
            process=process,
            pipeline=OutputPipeline(
                loop,
                functools.partial(self._hub.send_data, session_id),
                scrollback_cap=self.config.scrollback_cap,
                batch_size=self.config.output_batch_size,
                throttle=self.config.throttle,
            ),
            cwd=cwd,
            shell_path=shell.path,
            shell_args=list(shell.args),
            cols=cols,
            rows=rows,
        )
        self._sessions[session_id] = session
        session.state = SessionState.ACTIVE

        try:
            process.start(
                session.handle_output,
                functools.partial(self._process_exited, session),
            )
        except Exception as e:
            logger.error("Failed to attach to session %s: %s", session_id, e)
            del self._sessions[session_id]
            session.state = SessionState.FAILED
            try:
                process.kill()
                process.close()
            except Exception:
                logger.debug("Cleanup of failed session %s raised", session_id, exc_info=True)
            raise SpawnFailure(shell.argv, cwd, e) from e

        logger.info(
            "Terminal session %s started: pid=%d shell=%s cwd=%s (%d/%d)",
            session_id,
            session.pid,
            shell.path,
            cwd,
            self.count(),
            self._max_sessions,
        )
        return session

    async def create(self, options: CreateOptions | None = None) -> TerminalSession | None:
        """Create a session, returning None on admission or spawn failure.

        Callers that need to tell the two apart can compare ``count()``
        with ``max_sessions``.
        """
        try:
            return await self.spawn(options)
        except LimitExceeded as e:
            logger.warning(
                "Refusing new terminal session: %d/%d sessions active", e.current, e.maximum
            )
        except TerminalError as e:
            logger.warning(
                "Terminal session not created (%d/%d active): %s",
                self.count(),
                self._max_sessions,
                e,
            )
        return None

    # ------------------------------------------------------------------
    # Per-session operations
    # ------------------------------------------------------------------

    def write(self, session_id: str, data: str | bytes) -> bool:
        """Forward keystrokes. False only if the session is unknown."""
        session = self._sessions.get(session_id)
        if session is None:
            return False
        try:
            session.process.write(data)
        except OSError as e:
            logger.warning("Write to session %s failed: %s", session_id, e)
        return True

    def resize(self, session_id: str, cols: int, rows: int, suppress: bool = True) -> bool:
        session = self._sessions.get(session_id)
        if session is None or self._resizer is None:
            return False
        return self._resizer.resize(session, cols, rows, suppress=suppress)

    def kill(self, session_id: str) -> bool:
        """Begin terminating a session. Idempotent; never blocks."""
        session = self._sessions.get(session_id)
        if session is None or self._supervisor is None:
            return False
        self._supervisor.kill(session)
        return True

    def take_scrollback_for_reconnect(self, session_id: str) -> str | None:
        """Scrollback for a reconnecting client; pending output is discarded."""
        session = self._sessions.get(session_id)
        if session is None:
            return None
        return session.pipeline.take_scrollback()

    async def wait_closed(self, session_id: str, timeout: float | None = None) -> ExitInfo | None:
        """Wait until a session is gone. Returns its exit info if observed."""
        session = self._sessions.get(session_id)
        if session is None:
            return None
        await asyncio.wait_for(session.closed.wait(), timeout=timeout)
        return session.exit_info

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get(self, session_id: str) -> TerminalSession | None:
        return self._sessions.get(session_id)

    def list_sessions(self) -> list[SessionInfo]:
        return [s.info() for s in self._sessions.values()]

    def count(self) -> int:
        return len(self._sessions)

    @property
    def max_sessions(self) -> int:
        return self._max_sessions

    def set_max_sessions(self, value: Any) -> bool:
        """Change the session limit; out-of-range values are ignored.

        Lowering the limit below the current count kills nothing, it only
        blocks new sessions.
        """
        if isinstance(value, bool) or not isinstance(value, int):
            logger.warning("Ignoring max sessions %r: not an integer", value)
            return False
        if not MIN_SESSIONS <= value <= MAX_SESSIONS:
            logger.warning(
                "Ignoring max sessions %d: outside [%d, %d]", value, MIN_SESSIONS, MAX_SESSIONS
            )
            return False
        logger.info("Max sessions changed: %d -> %d", self._max_sessions, value)
        self._max_sessions = value
        return True

    def health(self) -> HealthReport:
        active = self.count()
        return HealthReport(
            active_session_count=active,
            max_sessions=self._max_sessions,
            utilization=round(active / self._max_sessions, 4),
        )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on_data(self, callback: DataCallback) -> Callable[[], None]:
        return self._hub.on_data(callback)

    def on_exit(self, callback: ExitCallback) -> Callable[[], None]:
        return self._hub.on_exit(callback)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def _is_registered(self, session: TerminalSession) -> bool:
        return self._sessions.get(session.id) is session

    def _process_exited(self, session: TerminalSession, returncode: int | None) -> None:
        assert self._supervisor is not None
        self._supervisor.process_exited(session, returncode)

    def _terminated(self, session: TerminalSession) -> None:
        if self._is_registered(session):
            del self._sessions[session.id]
        session.closed.set()
        self._hub.send_exit(session.id, session.exit_info or ExitInfo())

    async def shutdown(self) -> None:
        """Force-kill every session and cancel every timer. Idempotent."""
        self._closed = True
        if self._supervisor is not None:
            for session in list(self._sessions.values()):
                await self._supervisor.force(session)
            await self._supervisor.wait_idle()
        self._sessions.clear()
        self._hub.close()
        logger.info("All terminal sessions cleaned up")

    async def __aenter__(self) -> TerminalManager:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.shutdown()

    def __len__(self) -> int:
        return len(self._sessions)
