"""Termination supervisor — graceful-then-forced shutdown of sessions.

``kill()`` sends the graceful request (SIGHUP on POSIX, an outright kill
where the backend has no signals) and arms a forced-kill timer. Whichever
comes first, the process exit notification or the timer, finalizes the
session: timers cancelled, handle closed, registry entry removed, exit
subscribers notified once. Errors on the way are logged and swallowed so
termination always converges.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from termhub.pty.backend import PtyProcess
from termhub.pty.hub import ExitInfo
from termhub.pty.session import SessionState, TerminalSession

logger = logging.getLogger(__name__)

_DONE_STATES = (SessionState.EXITED, SessionState.FAILED)


@retry(
    retry=retry_if_exception_type(OSError),
    stop=stop_after_attempt(3),
    wait=wait_fixed(0.05),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)
async def _send_kill(process: PtyProcess) -> None:
    """Deliver the forced kill, retrying transient OS errors."""
    process.kill()


class TerminationSupervisor:
    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        grace: float,
        is_registered: Callable[[TerminalSession], bool],
        on_terminated: Callable[[TerminalSession], None],
        supports_signals: bool = True,
    ) -> None:
        self._loop = loop
        self.grace = grace
        self._is_registered = is_registered
        self._on_terminated = on_terminated
        self._supports_signals = supports_signals
        self._tasks: set[asyncio.Task] = set()

    def kill(self, session: TerminalSession) -> None:
        """Start terminating ``session``. Idempotent, never blocks."""
        if session.state is SessionState.KILLING or session.state in _DONE_STATES:
            return

        self._cancel_timers(session)
        session.state = SessionState.KILLING
        try:
            if self._supports_signals:
                session.process.terminate()
            else:
                session.process.kill()
        except Exception as e:
            logger.debug("Termination request for session %s failed: %s", session.id, e)

        session.kill_timer = self._loop.call_later(self.grace, self._grace_expired, session)
        logger.info("Killing session %s (pid=%d)", session.id, session.pid)

    def _grace_expired(self, session: TerminalSession) -> None:
        session.kill_timer = None
        if not self._is_registered(session):
            return
        logger.info("Session %s ignored termination request, forcing", session.id)
        task = self._loop.create_task(self.force(session))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def force(self, session: TerminalSession) -> None:
        """Kill unconditionally and finalize, whatever the kill reports."""
        if session.state in _DONE_STATES:
            return
        self._cancel_timers(session)
        try:
            await _send_kill(session.process)
        except Exception as e:
            logger.warning("Forced kill of session %s failed: %s", session.id, e)
        self.finalize(session, ExitInfo())

    def process_exited(self, session: TerminalSession, returncode: int | None) -> None:
        """Exit confirmation from the process layer."""
        if session.state in _DONE_STATES:
            return
        if session.state is SessionState.ACTIVE:
            # Exited on its own; its last output is still worth delivering.
            session.pipeline.drain()
        self.finalize(session, ExitInfo.from_returncode(returncode))

    def finalize(self, session: TerminalSession, info: ExitInfo) -> None:
        if session.state in _DONE_STATES:
            return
        self._cancel_timers(session)
        session.state = SessionState.EXITED
        session.exit_info = info
        try:
            session.process.close()
        except Exception as e:
            logger.debug("Error closing session %s: %s", session.id, e)
        logger.info(
            "Session %s exited (code=%s signal=%s)", session.id, info.exit_code, info.signal
        )
        self._on_terminated(session)

    async def wait_idle(self) -> None:
        """Wait for in-flight forced kills."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    def _cancel_timers(self, session: TerminalSession) -> None:
        session.pipeline.cancel()
        if session.settle_timer is not None:
            session.settle_timer.cancel()
            session.settle_timer = None
        if session.kill_timer is not None:
            session.kill_timer.cancel()
            session.kill_timer = None
