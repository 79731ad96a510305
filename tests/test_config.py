"""Tests for termhub.config (TerminalConfig)."""

from __future__ import annotations

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from termhub.config import MAX_SESSIONS, TerminalConfig


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    # Keep a developer's .env or shell exports out of these tests.
    monkeypatch.chdir(tmp_path)
    for var in (
        "TERMHUB_MAX_SESSIONS",
        "TERMHUB_SCROLLBACK_CAP",
        "TERMHUB_OUTPUT_BATCH_SIZE",
        "TERMHUB_THROTTLE_MS",
        "TERMHUB_KILL_GRACE_MS",
    ):
        monkeypatch.delenv(var, raising=False)


class TestTerminalConfigDefaults:
    def test_defaults(self) -> None:
        config = TerminalConfig()
        assert config.max_sessions == MAX_SESSIONS == 1000
        assert config.scrollback_cap == 50_000
        assert config.output_batch_size == 4096
        assert config.throttle_ms == 4
        assert config.resize_settle_ms == 150
        assert config.kill_grace_ms == 1000

    def test_seconds_properties(self) -> None:
        config = TerminalConfig(throttle_ms=4, resize_settle_ms=150, kill_grace_ms=1000)
        assert config.throttle == pytest.approx(0.004)
        assert config.resize_settle == pytest.approx(0.15)
        assert config.kill_grace == pytest.approx(1.0)

    def test_max_sessions_bounds(self) -> None:
        with pytest.raises(ValidationError):
            TerminalConfig(max_sessions=0)
        with pytest.raises(ValidationError):
            TerminalConfig(max_sessions=1001)


class TestTerminalConfigLoad:
    def test_no_sources(self) -> None:
        assert TerminalConfig.load() == TerminalConfig()

    def test_env_override(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TERMHUB_MAX_SESSIONS", "25")
        monkeypatch.setenv("TERMHUB_KILL_GRACE_MS", "250")
        config = TerminalConfig.load()
        assert config.max_sessions == 25
        assert config.kill_grace_ms == 250

    def test_env_out_of_range_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TERMHUB_MAX_SESSIONS", "5000")
        assert TerminalConfig.load().max_sessions == 1000

    def test_env_garbage_ignored(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("TERMHUB_SCROLLBACK_CAP", "lots")
        assert TerminalConfig.load().scrollback_cap == 50_000

    def test_config_file(self, tmp_path: Path) -> None:
        path = tmp_path / "termhub.json"
        path.write_text(json.dumps({"max_sessions": 8, "output_batch_size": 1024}))
        config = TerminalConfig.load(str(path))
        assert config.max_sessions == 8
        assert config.output_batch_size == 1024

    def test_env_beats_file(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        path = tmp_path / "termhub.json"
        path.write_text(json.dumps({"max_sessions": 8}))
        monkeypatch.setenv("TERMHUB_MAX_SESSIONS", "9")
        assert TerminalConfig.load(str(path)).max_sessions == 9

    def test_missing_file_ignored(self, tmp_path: Path) -> None:
        assert TerminalConfig.load(str(tmp_path / "absent.json")) == TerminalConfig()
