from __future__ import annotations

from datetime import datetime, timedelta, timezone

from discdesk.services.demo.cooldown import RateLimitedError, as_utc, evaluate_cooldown


NOW = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
WINDOW = timedelta(hours=24)


def test_no_previous_run_is_allowed() -> None:
    assert evaluate_cooldown(None, now=NOW, cooldown=WINDOW) == (True, 0, 0)


def test_recent_run_reports_remaining_hours_rounded_up() -> None:
    allowed, seconds, hours = evaluate_cooldown(NOW - timedelta(hours=1, minutes=30), now=NOW, cooldown=WINDOW)
    assert allowed is False
    assert seconds == int(timedelta(hours=22, minutes=30).total_seconds())
    assert hours == 23


def test_last_minute_still_reports_one_hour() -> None:
    allowed, seconds, hours = evaluate_cooldown(NOW - timedelta(hours=23, minutes=59, seconds=30), now=NOW, cooldown=WINDOW)
    assert allowed is False
    assert seconds == 30
    assert hours == 1


def test_exactly_elapsed_window_is_allowed() -> None:
    assert evaluate_cooldown(NOW - WINDOW, now=NOW, cooldown=WINDOW)[0] is True
    assert evaluate_cooldown(NOW - timedelta(hours=30), now=NOW, cooldown=WINDOW)[0] is True


def test_naive_timestamps_are_treated_as_utc() -> None:
    naive = (NOW - timedelta(hours=2)).replace(tzinfo=None)
    assert as_utc(naive) == NOW - timedelta(hours=2)
    allowed, _seconds, hours = evaluate_cooldown(naive, now=NOW, cooldown=WINDOW)
    assert allowed is False
    assert hours == 22


def test_rate_limited_message_mentions_remaining_hours() -> None:
    exc = RateLimitedError(retry_after_hours=5, retry_after_seconds=17000, cooldown_hours=24)
    assert "5 hours" in str(exc)
    assert exc.retry_after_hours == 5
    single = RateLimitedError(retry_after_hours=1, retry_after_seconds=60, cooldown_hours=24)
    assert "1 hour." in str(single)
