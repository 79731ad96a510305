"""Resize coordination — apply geometry changes and mute reflow output.

Resizing makes the shell (or a full-screen program inside it) repaint.
That burst is valid terminal content but pure churn for a client that
already knows about the resize, so output is dropped until a short
settle window has passed.
"""

from __future__ import annotations

import asyncio
import logging

from termhub.pty.session import TerminalSession

logger = logging.getLogger(__name__)


class ResizeCoordinator:
    def __init__(self, loop: asyncio.AbstractEventLoop, settle: float = 0.15) -> None:
        self._loop = loop
        self.settle = settle

    def resize(
        self,
        session: TerminalSession,
        cols: int,
        rows: int,
        suppress: bool = True,
    ) -> bool:
        if suppress:
            session.resize_in_progress = True
            self.cancel(session)

        try:
            session.process.resize(cols, rows)
        except Exception as e:
            logger.warning("Resize of session %s to %dx%d failed: %s", session.id, cols, rows, e)
            self.cancel(session)
            session.resize_in_progress = False
            return False

        session.cols, session.rows = cols, rows
        if suppress:
            session.settle_timer = self._loop.call_later(self.settle, self._settled, session)
        return True

    def _settled(self, session: TerminalSession) -> None:
        session.settle_timer = None
        session.resize_in_progress = False

    def cancel(self, session: TerminalSession) -> None:
        if session.settle_timer is not None:
            session.settle_timer.cancel()
            session.settle_timer = None
