"""Shared fixtures: an in-memory PTY backend and a manager wired to it."""

from __future__ import annotations

import asyncio
import itertools
from collections.abc import AsyncIterator, Callable
from pathlib import Path

import pytest

from termhub.config import TerminalConfig
from termhub.pty.manager import TerminalManager
from termhub.pty.shell import ShellResolver

_pids = itertools.count(1000)


class FakeProcess:
    """Stands in for a PTY process; tests drive output and exit by hand."""

    def __init__(
        self,
        argv: list[str],
        cwd: str,
        env: dict[str, str],
        cols: int,
        rows: int,
        responsive: bool = True,
    ) -> None:
        self.pid = next(_pids)
        self.argv = argv
        self.cwd = cwd
        self.env = env
        self.sizes = [(cols, rows)]
        self.responsive = responsive
        self.writes: list[str | bytes] = []
        self.signals: list[str] = []
        self.closed = False
        self.fail_resize = False
        self.fail_write = False
        self._on_data: Callable[[str], None] | None = None
        self._on_exit: Callable[[int | None], None] | None = None

    def start(self, on_data: Callable[[str], None], on_exit: Callable[[int | None], None]) -> None:
        self._on_data = on_data
        self._on_exit = on_exit

    def emit(self, text: str) -> None:
        assert self._on_data is not None
        self._on_data(text)

    def exit(self, returncode: int | None = 0) -> None:
        assert self._on_exit is not None
        self._on_exit(returncode)

    def write(self, data: str | bytes) -> None:
        if self.fail_write:
            raise OSError("input/output error")
        self.writes.append(data)

    def resize(self, cols: int, rows: int) -> None:
        if self.fail_resize:
            raise OSError("bad ioctl")
        self.sizes.append((cols, rows))

    def terminate(self) -> None:
        self.signals.append("terminate")
        if self.responsive:
            asyncio.get_running_loop().call_soon(self.exit, -1)

    def kill(self) -> None:
        self.signals.append("kill")
        asyncio.get_running_loop().call_soon(self.exit, -9)

    def close(self) -> None:
        self.closed = True


class FakeBackend:
    name = "fake"

    def __init__(
        self,
        supports_signals: bool = True,
        responsive: bool = True,
        fail: bool = False,
    ) -> None:
        self.supports_signals = supports_signals
        self.responsive = responsive
        self.fail = fail
        self.processes: list[FakeProcess] = []

    def spawn(
        self,
        argv: list[str],
        cwd: str,
        env: dict[str, str],
        cols: int,
        rows: int,
    ) -> FakeProcess:
        if self.fail:
            raise FileNotFoundError(2, "No such file or directory", argv[0])
        proc = FakeProcess(argv, cwd, env, cols, rows, responsive=self.responsive)
        self.processes.append(proc)
        return proc


def fake_shells() -> ShellResolver:
    return ShellResolver(
        platform="linux",
        environ={"SHELL": "/bin/bash"},
        exists=lambda path: True,
    )


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def config() -> TerminalConfig:
    return TerminalConfig(
        throttle_ms=1,
        resize_settle_ms=30,
        kill_grace_ms=50,
        output_batch_size=16,
        scrollback_cap=100,
    )


@pytest.fixture
async def manager(
    config: TerminalConfig, backend: FakeBackend, tmp_path: Path
) -> AsyncIterator[TerminalManager]:
    mgr = TerminalManager(
        config,
        backend=backend,
        shell_resolver=fake_shells(),
        environ={"PATH": "/usr/bin:/bin", "HOME": str(tmp_path)},
        home=str(tmp_path),
    )
    yield mgr
    await mgr.shutdown()


async def settle(seconds: float = 0.05) -> None:
    """Let timers on the running loop fire."""
    await asyncio.sleep(seconds)
