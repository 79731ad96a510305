"""Tests for termhub.pty.shell (ShellResolver)."""

from __future__ import annotations

from termhub.pty.shell import POSIX_FALLBACK, WINDOWS_SHELL, ShellResolver, shell_args


def _resolver(existing: set[str], shell: str | None = None, platform: str = "linux") -> ShellResolver:
    environ = {"SHELL": shell} if shell else {}
    return ShellResolver(platform=platform, environ=environ, exists=existing.__contains__)


class TestShellArgs:
    def test_login_shells(self) -> None:
        assert shell_args("/bin/bash") == ["-l"]
        assert shell_args("/usr/bin/zsh") == ["-l"]
        assert shell_args("/usr/bin/fish") == ["-l"]

    def test_plain_sh(self) -> None:
        assert shell_args("/bin/sh") == []


class TestShellResolver:
    def test_preferred_exact_path(self) -> None:
        resolver = _resolver({"/bin/zsh", "/usr/bin/bash"}, shell="/usr/bin/bash")
        shell = resolver.resolve()
        assert shell.path == "/usr/bin/bash"
        assert shell.args == ["-l"]
        assert shell.argv == ["/usr/bin/bash", "-l"]

    def test_preferred_by_base_name(self) -> None:
        # $SHELL points at a location that does not exist here.
        resolver = _resolver({"/bin/zsh", "/bin/bash"}, shell="/somewhere/else/bash")
        assert resolver.resolve().path == "/bin/bash"

    def test_explicit_preference_beats_environment(self) -> None:
        resolver = _resolver({"/bin/zsh", "/bin/bash"}, shell="/bin/zsh")
        assert resolver.resolve("bash").path == "/bin/bash"

    def test_unlisted_preference_falls_back(self) -> None:
        resolver = _resolver({"/bin/bash", "/tmp/evil"}, shell="/tmp/evil")
        assert resolver.resolve().path == "/bin/bash"

    def test_missing_preference_falls_back_to_first_existing(self) -> None:
        resolver = _resolver({"/usr/bin/bash", "/bin/sh"}, shell="/bin/zsh")
        assert resolver.resolve().path == "/usr/bin/bash"

    def test_no_preference(self) -> None:
        resolver = _resolver({"/bin/sh"})
        shell = resolver.resolve()
        assert shell.path == "/bin/sh"
        assert shell.args == []

    def test_nothing_exists(self) -> None:
        resolver = _resolver(set(), shell="/bin/bash")
        shell = resolver.resolve()
        assert shell.path == POSIX_FALLBACK
        assert shell.args == []

    def test_windows_ignores_preference(self) -> None:
        resolver = _resolver({"/bin/bash"}, shell="/bin/bash", platform="win32")
        shell = resolver.resolve("bash")
        assert shell.path == WINDOWS_SHELL
        assert shell.args == []

    def test_custom_allowlist(self) -> None:
        resolver = ShellResolver(
            platform="darwin",
            environ={},
            exists=lambda path: True,
            allowlist=["/opt/homebrew/bin/fish"],
        )
        assert resolver.resolve().argv == ["/opt/homebrew/bin/fish", "-l"]
