"""PTY backends — platform-specific process spawning and control.

One backend is chosen at startup by ``default_backend()``. The rest of
the package only talks to the ``PtyBackend`` / ``PtyProcess`` protocols:

* ``PosixPtyBackend`` — ``pty.openpty()`` + ``subprocess.Popen`` in a new
  session, with the slave as controlling terminal. Graceful termination
  is SIGHUP to the process group, forced termination is SIGKILL.
* ``WindowsPtyBackend`` — ConPTY through pywinpty. There are no signals,
  so termination is always an unconditional kill.
"""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import struct
import subprocess
import sys
import threading
from collections.abc import Callable
from typing import Protocol, runtime_checkable

from termhub.pty.buffer import OutputDecoder

if sys.platform == "win32":
    from winpty import PtyProcess as WinPtyProcess
else:
    import fcntl
    import pty
    import termios

logger = logging.getLogger(__name__)

READ_SIZE = 65536
REAP_TIMEOUT = 5.0

DataHandler = Callable[[str], None]
ExitHandler = Callable[[int | None], None]


@runtime_checkable
class PtyProcess(Protocol):
    """A running process attached to a pseudo-terminal."""

    @property
    def pid(self) -> int: ...

    def start(self, on_data: DataHandler, on_exit: ExitHandler) -> None:
        """Begin delivering output. Must be called on the event loop."""
        ...

    def write(self, data: str | bytes) -> None: ...

    def resize(self, cols: int, rows: int) -> None: ...

    def terminate(self) -> None:
        """Ask the process to exit."""
        ...

    def kill(self) -> None:
        """Kill the process unconditionally."""
        ...

    def close(self) -> None:
        """Release the terminal. Idempotent."""
        ...


@runtime_checkable
class PtyBackend(Protocol):
    name: str
    supports_signals: bool

    def spawn(
        self,
        argv: list[str],
        cwd: str,
        env: dict[str, str],
        cols: int,
        rows: int,
    ) -> PtyProcess: ...


# ---------------------------------------------------------------------------
# POSIX
# ---------------------------------------------------------------------------


def _set_winsize(fd: int, cols: int, rows: int) -> None:
    fcntl.ioctl(fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))


def _acquire_controlling_tty() -> None:
    # Runs in the child after setsid(); stdin is the slave end.
    fcntl.ioctl(0, termios.TIOCSCTTY, 0)


class PosixPtyProcess:
    def __init__(self, proc: subprocess.Popen, master_fd: int) -> None:
        self._proc = proc
        self._master_fd = master_fd
        try:
            self._pgid = os.getpgid(proc.pid)
        except OSError:
            self._pgid = proc.pid
        self._decoder = OutputDecoder()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._on_data: DataHandler | None = None
        self._on_exit: ExitHandler | None = None
        self._reading = False
        self._closed = False

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def returncode(self) -> int | None:
        return self._proc.poll()

    def start(self, on_data: DataHandler, on_exit: ExitHandler) -> None:
        self._loop = asyncio.get_running_loop()
        self._on_data = on_data
        self._on_exit = on_exit
        self._loop.add_reader(self._master_fd, self._on_readable)
        self._reading = True

    def _on_readable(self) -> None:
        try:
            data = os.read(self._master_fd, READ_SIZE)
        except BlockingIOError:
            return
        except OSError:
            # EIO: every slave fd is closed, i.e. the process went away.
            data = b""

        if not data:
            self._handle_eof()
            return

        text = self._decoder.decode(data)
        if text and self._on_data is not None:
            self._on_data(text)

    def _handle_eof(self) -> None:
        self._stop_reading()
        tail = self._decoder.flush()
        if tail and self._on_data is not None:
            self._on_data(tail)
        assert self._loop is not None
        waiter = self._loop.run_in_executor(None, self._wait)
        waiter.add_done_callback(self._report_exit)

    def _wait(self) -> int | None:
        try:
            return self._proc.wait(timeout=REAP_TIMEOUT)
        except subprocess.TimeoutExpired:
            return None

    def _report_exit(self, waiter: asyncio.Future) -> None:
        if self._closed or self._on_exit is None:
            return
        returncode = None if waiter.cancelled() or waiter.exception() else waiter.result()
        self._on_exit(returncode)

    def _stop_reading(self) -> None:
        if self._reading and self._loop is not None:
            self._loop.remove_reader(self._master_fd)
        self._reading = False

    def write(self, data: str | bytes) -> None:
        payload = data.encode("utf-8") if isinstance(data, str) else data
        view = memoryview(payload)
        while view:
            written = os.write(self._master_fd, view)
            view = view[written:]

    def resize(self, cols: int, rows: int) -> None:
        _set_winsize(self._master_fd, cols, rows)

    def terminate(self) -> None:
        self._signal(signal.SIGHUP)

    def kill(self) -> None:
        self._signal(signal.SIGKILL)

    def _signal(self, sig: int) -> None:
        try:
            os.killpg(self._pgid, sig)
        except ProcessLookupError:
            logger.debug("Process group already gone: %d", self._pgid)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._stop_reading()
        try:
            os.close(self._master_fd)
        except OSError:
            pass
        if self._proc.poll() is None and self._loop is not None and not self._loop.is_closed():
            # Reap off-loop so a slow exit never stalls other sessions.
            self._loop.run_in_executor(None, self._wait)


class PosixPtyBackend:
    name = "posix"
    supports_signals = True

    def spawn(
        self,
        argv: list[str],
        cwd: str,
        env: dict[str, str],
        cols: int,
        rows: int,
    ) -> PosixPtyProcess:
        master_fd, slave_fd = pty.openpty()
        try:
            _set_winsize(master_fd, cols, rows)
            proc = subprocess.Popen(
                argv,
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=cwd,
                env=env,
                start_new_session=True,
                preexec_fn=_acquire_controlling_tty,
            )
        except BaseException:
            os.close(master_fd)
            raise
        finally:
            # Parent always closes slave fd
            os.close(slave_fd)
        return PosixPtyProcess(proc, master_fd)


# ---------------------------------------------------------------------------
# Windows
# ---------------------------------------------------------------------------


class WindowsPtyProcess:
    """pywinpty process; a daemon thread pumps output back to the loop."""

    def __init__(self, proc: WinPtyProcess) -> None:
        self._proc = proc
        self._loop: asyncio.AbstractEventLoop | None = None
        self._on_data: DataHandler | None = None
        self._on_exit: ExitHandler | None = None
        self._thread: threading.Thread | None = None
        self._closed = False

    @property
    def pid(self) -> int:
        return self._proc.pid

    def start(self, on_data: DataHandler, on_exit: ExitHandler) -> None:
        self._loop = asyncio.get_running_loop()
        self._on_data = on_data
        self._on_exit = on_exit
        self._thread = threading.Thread(
            target=self._read_loop, name=f"pty-reader-{self.pid}", daemon=True
        )
        self._thread.start()

    def _read_loop(self) -> None:
        assert self._loop is not None
        while not self._closed:
            try:
                data = self._proc.read(READ_SIZE)
            except EOFError:
                break
            except Exception as e:
                logger.debug("PTY reader %d ended: %s", self.pid, e)
                break
            if data:
                if not self._post(self._emit_data, data):
                    return
        self._post(self._emit_exit)

    def _post(self, callback: Callable[..., None], *args: object) -> bool:
        try:
            self._loop.call_soon_threadsafe(callback, *args)  # type: ignore[union-attr]
        except RuntimeError:
            # Loop closed during shutdown.
            return False
        return True

    def _emit_data(self, data: str) -> None:
        if not self._closed and self._on_data is not None:
            self._on_data(data)

    def _emit_exit(self) -> None:
        if not self._closed and self._on_exit is not None:
            self._on_exit(self._proc.exitstatus)

    def write(self, data: str | bytes) -> None:
        text = data.decode("utf-8", errors="replace") if isinstance(data, bytes) else data
        self._proc.write(text)

    def resize(self, cols: int, rows: int) -> None:
        self._proc.setwinsize(rows, cols)

    def terminate(self) -> None:
        self.kill()

    def kill(self) -> None:
        if self._proc.isalive():
            self._proc.terminate(force=True)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._proc.close(force=True)
        except Exception as e:
            logger.debug("Error closing PTY %d: %s", self.pid, e)


class WindowsPtyBackend:
    name = "conpty"
    supports_signals = False

    def spawn(
        self,
        argv: list[str],
        cwd: str,
        env: dict[str, str],
        cols: int,
        rows: int,
    ) -> WindowsPtyProcess:
        proc = WinPtyProcess.spawn(argv, cwd=cwd, env=env, dimensions=(rows, cols))
        return WindowsPtyProcess(proc)


def default_backend() -> PtyBackend:
    """The backend for the running platform."""
    if sys.platform == "win32":
        return WindowsPtyBackend()
    return PosixPtyBackend()
