"""Scrollback and throttled output delivery for PTY sessions."""

from __future__ import annotations

import asyncio
import codecs
import logging
from collections.abc import Callable

logger = logging.getLogger(__name__)

DEFAULT_SCROLLBACK_CAP = 50_000
DEFAULT_BATCH_SIZE = 4096
DEFAULT_THROTTLE = 0.004


class ScrollbackBuffer:
    """Bounded, newest-biased text history.

    Holds at most ``cap`` characters. Oldest data is dropped first, so
    after any append the buffer is exactly the most recent ``cap``
    characters ever written (or everything, if fewer were written).
    """

    def __init__(self, cap: int = DEFAULT_SCROLLBACK_CAP) -> None:
        if cap < 1:
            raise ValueError("scrollback cap must be positive")
        self.cap = cap
        self._text = ""
        self._total = 0

    def append(self, chunk: str) -> None:
        self._text += chunk
        self._total += len(chunk)
        if len(self._text) > self.cap:
            self._text = self._text[-self.cap :]

    def snapshot(self) -> str:
        return self._text

    def clear(self) -> None:
        self._text = ""

    @property
    def total_chars(self) -> int:
        """Characters ever appended, including those trimmed away."""
        return self._total

    def __len__(self) -> int:
        return len(self._text)


class OutputDecoder:
    """Incremental UTF-8 decoder; keeps split multi-byte sequences intact."""

    def __init__(self) -> None:
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    def decode(self, data: bytes) -> str:
        return self._decoder.decode(data)

    def flush(self) -> str:
        return self._decoder.decode(b"", final=True)


class OutputPipeline:
    """Scrollback plus a rate- and size-bounded delivery queue.

    ``push()`` records a chunk in scrollback and queues it; a flush timer
    on ``loop`` then hands at most ``batch_size`` characters to
    ``deliver`` every ``throttle`` seconds until the queue is empty.
    All methods must be called from the loop's thread.
    """

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop,
        deliver: Callable[[str], None],
        scrollback_cap: int = DEFAULT_SCROLLBACK_CAP,
        batch_size: int = DEFAULT_BATCH_SIZE,
        throttle: float = DEFAULT_THROTTLE,
    ) -> None:
        if batch_size < 1:
            raise ValueError("batch size must be positive")
        self._loop = loop
        self._deliver = deliver
        self.scrollback = ScrollbackBuffer(scrollback_cap)
        self.batch_size = batch_size
        self.throttle = throttle
        self._pending = ""
        self._flush_handle: asyncio.TimerHandle | None = None

    @property
    def pending(self) -> str:
        return self._pending

    @property
    def flush_scheduled(self) -> bool:
        return self._flush_handle is not None

    def push(self, chunk: str) -> None:
        if not chunk:
            return
        self.scrollback.append(chunk)
        self._pending += chunk
        if self._flush_handle is None:
            self._flush_handle = self._loop.call_later(self.throttle, self.flush)

    def flush(self) -> None:
        """Deliver one batch; reschedule while data remains."""
        if not self._pending:
            self._flush_handle = None
            return
        batch = self._pending[: self.batch_size]
        self._pending = self._pending[self.batch_size :]
        if self._pending:
            self._flush_handle = self._loop.call_later(self.throttle, self.flush)
        else:
            self._flush_handle = None
        self._deliver(batch)

    def drain(self) -> None:
        """Deliver everything pending right now, still in batch-sized slices."""
        self.cancel()
        while self._pending:
            batch = self._pending[: self.batch_size]
            self._pending = self._pending[self.batch_size :]
            self._deliver(batch)

    def take_scrollback(self) -> str:
        """Return the scrollback and forget undelivered output.

        A reconnecting client renders the snapshot; replaying the pending
        batch on top of it would duplicate output.
        """
        snapshot = self.scrollback.snapshot()
        self._pending = ""
        self.cancel()
        return snapshot

    def cancel(self) -> None:
        if self._flush_handle is not None:
            self._flush_handle.cancel()
            self._flush_handle = None
