"""Tests for termhub.pty.hub (SubscriptionHub, ExitInfo)."""

from __future__ import annotations

import logging

import pytest

from termhub.pty.hub import ExitInfo, SubscriptionHub


# ---------------------------------------------------------------------------
# ExitInfo
# ---------------------------------------------------------------------------


class TestExitInfo:
    def test_normal_exit(self) -> None:
        info = ExitInfo.from_returncode(3)
        assert info.exit_code == 3
        assert info.signal is None

    def test_signalled(self) -> None:
        info = ExitInfo.from_returncode(-9)
        assert info.exit_code is None
        assert info.signal == 9

    def test_unknown(self) -> None:
        assert ExitInfo.from_returncode(None) == ExitInfo()


# ---------------------------------------------------------------------------
# SubscriptionHub
# ---------------------------------------------------------------------------


class TestSubscriptionHub:
    def test_delivery_in_registration_order(self) -> None:
        hub = SubscriptionHub()
        calls: list[str] = []
        hub.on_data(lambda sid, data: calls.append(f"first:{sid}:{data}"))
        hub.on_data(lambda sid, data: calls.append(f"second:{sid}:{data}"))
        hub.send_data("s1", "out")
        assert calls == ["first:s1:out", "second:s1:out"]

    def test_exit_payload(self) -> None:
        hub = SubscriptionHub()
        seen: list[tuple[str, ExitInfo]] = []
        hub.on_exit(lambda sid, info: seen.append((sid, info)))
        hub.send_exit("s1", ExitInfo(exit_code=0))
        assert seen == [("s1", ExitInfo(exit_code=0))]

    def test_data_and_exit_are_separate(self) -> None:
        hub = SubscriptionHub()
        data: list[str] = []
        hub.on_data(lambda sid, payload: data.append(payload))
        hub.send_exit("s1", ExitInfo())
        assert data == []

    def test_unsubscribe(self) -> None:
        hub = SubscriptionHub()
        calls: list[str] = []
        unsubscribe = hub.on_data(lambda sid, data: calls.append(data))
        unsubscribe()
        hub.send_data("s1", "x")
        assert calls == []

    def test_unsubscribe_twice_is_safe(self) -> None:
        hub = SubscriptionHub()
        unsubscribe = hub.on_exit(lambda sid, info: None)
        unsubscribe()
        unsubscribe()
        assert hub.subscriber_count == 0

    def test_unsubscribe_during_delivery(self) -> None:
        hub = SubscriptionHub()
        calls: list[str] = []

        def once(sid: str, data: str) -> None:
            calls.append("once")
            unsubscribe()

        unsubscribe = hub.on_data(once)
        hub.on_data(lambda sid, data: calls.append("always"))
        hub.send_data("s1", "a")
        hub.send_data("s1", "b")
        assert calls == ["once", "always", "always"]

    def test_failing_callback_does_not_stop_others(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        hub = SubscriptionHub()
        calls: list[str] = []

        def broken(sid: str, data: str) -> None:
            raise RuntimeError("transport gone")

        hub.on_data(broken)
        hub.on_data(lambda sid, data: calls.append(data))
        with caplog.at_level(logging.ERROR):
            hub.send_data("s1", "payload")
        assert calls == ["payload"]
        assert "data callback" in caplog.text

    def test_close_drops_subscribers(self) -> None:
        hub = SubscriptionHub()
        calls: list[str] = []
        hub.on_data(lambda sid, data: calls.append(data))
        hub.on_exit(lambda sid, info: calls.append("exit"))
        hub.close()
        hub.send_data("s1", "late")
        hub.send_exit("s1", ExitInfo())
        assert calls == []
        assert hub.subscriber_count == 0
