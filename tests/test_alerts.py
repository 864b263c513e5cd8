"""
Tests for the deny alert window.

These tests verify:
1. Alerts fire once the per-minute threshold is reached
2. Denials older than the window no longer count
3. Users idle for a full window are dropped from memory
"""

import logging
from types import SimpleNamespace

import pytest

from subscription_access import alerts


@pytest.fixture
def clock(monkeypatch):
    state = {"t": 10_000.0}
    monkeypatch.setattr(alerts, "time", SimpleNamespace(time=lambda: state["t"]))
    return state


def test_threshold_triggers_alert(clock, caplog):
    with caplog.at_level(logging.WARNING, logger="subscription_access.alerts"):
        for _ in range(alerts.DENY_THRESHOLD_PER_MIN):
            alerts.record_deny_and_alert("user-1", "access_denied")
            clock["t"] += 1

    fired = [r for r in caplog.records if r.getMessage() == "Repeated subscription access denials"]
    assert len(fired) == 1


def test_old_denials_leave_the_window(clock):
    alerts.record_deny_and_alert("user-1", "access_denied")
    clock["t"] += alerts.DENY_WINDOW_SECONDS + 1
    alerts.record_deny_and_alert("user-1", "access_denied")

    assert len(alerts._deny_counts["user-1"]) == 1


def test_idle_users_are_dropped(clock):
    for i in range(50):
        alerts.record_deny_and_alert(f"user-{i}", "no_subscription")

    clock["t"] += alerts.DENY_WINDOW_SECONDS + 1
    alerts.record_deny_and_alert("user-active", "no_subscription")

    assert set(alerts._deny_counts) == {"user-active"}


def test_recent_users_survive_sweep(clock):
    alerts.record_deny_and_alert("user-1", "no_subscription")
    clock["t"] += alerts.DENY_WINDOW_SECONDS - 1
    alerts.record_deny_and_alert("user-2", "no_subscription")
    clock["t"] += 2
    alerts.record_deny_and_alert("user-3", "no_subscription")

    assert "user-2" in alerts._deny_counts
    assert "user-1" not in alerts._deny_counts
