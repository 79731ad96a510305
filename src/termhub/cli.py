"""CLI entry point for termhub."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import signal
import sys

import typer

from termhub.config import TerminalConfig
from termhub.pty.backend import default_backend
from termhub.pty.errors import TerminalError
from termhub.pty.manager import CreateOptions, TerminalManager
from termhub.pty.shell import ShellResolver

app = typer.Typer(
    name="termhub",
    help="Managed PTY shell sessions with throttled output and bounded termination.",
    no_args_is_help=True,
)


def setup_logging(verbose: bool = False, default: int = logging.INFO) -> None:
    level = logging.DEBUG if verbose else default
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
    )


@app.command()
def info(
    as_json: bool = typer.Option(False, "--json", help="Print machine-readable JSON."),
    shell: str | None = typer.Option(
        None, "--shell", "-s", help="Preferred shell to resolve (default: $SHELL)."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Show the effective configuration, resolved shell and health."""
    setup_logging(default=logging.WARNING)
    config = TerminalConfig.load(config_file)
    resolved = ShellResolver().resolve(shell)
    backend = default_backend()
    health = TerminalManager(config, backend=backend).health()

    if as_json:
        payload = {
            "config": config.model_dump(),
            "shell": {"path": resolved.path, "args": resolved.args},
            "backend": backend.name,
            "health": health.model_dump(),
        }
        typer.echo(json.dumps(payload, indent=2))
        return

    typer.echo(f"Shell: {' '.join(resolved.argv)}")
    typer.echo(f"Backend: {backend.name}")
    typer.echo(f"Max sessions: {config.max_sessions}")
    typer.echo(f"Scrollback: {config.scrollback_cap} chars")
    typer.echo(f"Batch: {config.output_batch_size} chars every {config.throttle_ms} ms")
    typer.echo(f"Kill grace: {config.kill_grace_ms} ms")
    typer.echo(
        f"Health: {health.active_session_count}/{health.max_sessions} "
        f"({health.utilization:.0%})"
    )


@app.command()
def attach(
    cwd: str | None = typer.Option(
        None, "--cwd", "-C", help="Starting directory (default: home)."
    ),
    shell: str | None = typer.Option(
        None, "--shell", "-s", help="Preferred shell (default: $SHELL)."
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v", help="Enable debug logging."
    ),
    config_file: str | None = typer.Option(
        None, "--config", "-c", help="Config file path."
    ),
) -> None:
    """Run a managed shell session in this terminal."""
    # Log lines would land in the middle of the raw-mode session.
    setup_logging(verbose, default=logging.WARNING)

    if sys.platform == "win32":
        typer.echo("Error: attach needs a POSIX terminal.", err=True)
        raise typer.Exit(1)
    if not sys.stdin.isatty():
        typer.echo("Error: attach needs an interactive terminal.", err=True)
        raise typer.Exit(1)

    config = TerminalConfig.load(config_file)
    try:
        code = asyncio.run(_run_attach(config, cwd, shell))
    except TerminalError as e:
        typer.echo(f"Error: {e}", err=True)
        raise typer.Exit(1)
    raise typer.Exit(code)


async def _run_attach(config: TerminalConfig, cwd: str | None, shell: str | None) -> int:
    import termios
    import tty

    loop = asyncio.get_running_loop()
    stdin_fd = sys.stdin.fileno()
    out = sys.stdout.buffer
    size = shutil.get_terminal_size()

    async with TerminalManager(config) as manager:
        session = await manager.spawn(
            CreateOptions(cwd=cwd, shell=shell, cols=size.columns, rows=size.lines)
        )

        def on_data(session_id: str, data: str) -> None:
            if session_id == session.id:
                out.write(data.encode("utf-8", errors="replace"))
                out.flush()

        def on_stdin() -> None:
            data = os.read(stdin_fd, 4096)
            if data:
                manager.write(session.id, data)

        def on_winch() -> None:
            current = shutil.get_terminal_size()
            manager.resize(session.id, current.columns, current.lines)

        manager.on_data(on_data)
        saved = termios.tcgetattr(stdin_fd)
        tty.setraw(stdin_fd)
        loop.add_reader(stdin_fd, on_stdin)
        loop.add_signal_handler(signal.SIGWINCH, on_winch)
        try:
            exit_info = await manager.wait_closed(session.id)
        finally:
            loop.remove_reader(stdin_fd)
            loop.remove_signal_handler(signal.SIGWINCH)
            termios.tcsetattr(stdin_fd, termios.TCSADRAIN, saved)

    if exit_info is None or exit_info.exit_code is None:
        return 1
    return exit_info.exit_code


def main() -> None:
    app()


if __name__ == "__main__":
    main()
