"""Subscription hub — decouples the session manager from transport code.

Transport (WebSocket handlers, the CLI attach loop, tests) registers
callbacks for output and exit events. Each event goes to every callback
once, in registration order.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

P = TypeVar("P")


@dataclass(frozen=True)
class ExitInfo:
    """How a session's process ended. Both fields are None if unknown."""

    exit_code: int | None = None
    signal: int | None = None

    @classmethod
    def from_returncode(cls, returncode: int | None) -> ExitInfo:
        if returncode is None:
            return cls()
        if returncode < 0:
            return cls(signal=-returncode)
        return cls(exit_code=returncode)


DataCallback = Callable[[str, str], None]
ExitCallback = Callable[[str, ExitInfo], None]


class _Channel(Generic[P]):
    def __init__(self, name: str) -> None:
        self._name = name
        self._callbacks: list[Callable[[str, P], None]] = []

    def subscribe(self, callback: Callable[[str, P], None]) -> Callable[[], None]:
        self._callbacks.append(callback)

        def unsubscribe() -> None:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

        return unsubscribe

    def emit(self, session_id: str, payload: P) -> None:
        # Copy so a callback may unsubscribe itself mid-delivery.
        for callback in list(self._callbacks):
            try:
                callback(session_id, payload)
            except Exception:
                logger.exception("Error in %s callback for session %s", self._name, session_id)

    def clear(self) -> None:
        self._callbacks.clear()

    def __len__(self) -> int:
        return len(self._callbacks)


class SubscriptionHub:
    def __init__(self) -> None:
        self._data: _Channel[str] = _Channel("data")
        self._exit: _Channel[ExitInfo] = _Channel("exit")

    def on_data(self, callback: DataCallback) -> Callable[[], None]:
        """Register an output callback. Returns an idempotent unsubscribe."""
        return self._data.subscribe(callback)

    def on_exit(self, callback: ExitCallback) -> Callable[[], None]:
        """Register an exit callback. Returns an idempotent unsubscribe."""
        return self._exit.subscribe(callback)

    def send_data(self, session_id: str, data: str) -> None:
        self._data.emit(session_id, data)

    def send_exit(self, session_id: str, info: ExitInfo) -> None:
        self._exit.emit(session_id, info)

    @property
    def subscriber_count(self) -> int:
        return len(self._data) + len(self._exit)

    def close(self) -> None:
        """Drop every subscriber."""
        self._data.clear()
        self._exit.clear()
