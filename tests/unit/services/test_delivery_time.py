"""Unit tests for DeliveryTimeCalculator."""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from domain.entities.delivery import QuietHours, UserActivityPattern
from domain.services.delivery_time import DeliveryTimeCalculator

QUIET = QuietHours(start=22, end=8)


def _at(hour: int, minute: int = 0, day: int = 10) -> datetime:
    return datetime(2026, 3, day, hour, minute, tzinfo=timezone.utc)


@pytest.fixture
def calc() -> DeliveryTimeCalculator:
    return DeliveryTimeCalculator()


@pytest.fixture
def activity() -> UserActivityPattern:
    return UserActivityPattern(user_id=uuid4(), active_hours=frozenset(range(9, 18)))


class TestQuietHours:
    @pytest.mark.parametrize("hour,quiet", [(23, True), (5, True), (22, True), (8, False), (12, False)])
    def test_containment_wraps_midnight(self, hour, quiet):
        assert QUIET.contains(hour) is quiet

    def test_late_evening_moves_to_next_morning(self, calc, activity):
        result = calc.optimal_time(activity, QUIET, _at(23, 15))
        assert result == _at(8, day=11)

    def test_early_morning_moves_to_same_morning(self, calc, activity):
        result = calc.optimal_time(activity, QUIET, _at(5, 30))
        assert result == _at(8)


class TestActiveHours:
    def test_active_hour_returns_now(self, calc, activity):
        now = _at(12, 34)
        assert calc.optimal_time(activity, QUIET, now) == now

    def test_inactive_hour_moves_to_next_active_hour_today(self, calc):
        activity = UserActivityPattern(user_id=uuid4(), active_hours=frozenset({9, 14}))
        assert calc.optimal_time(activity, QUIET, _at(10, 5)) == _at(14)

    def test_after_last_active_hour_moves_to_tomorrow(self, calc, activity):
        assert calc.optimal_time(activity, QUIET, _at(19)) == _at(9, day=11)

    def test_empty_active_hours_means_any_non_quiet_hour(self, calc):
        activity = UserActivityPattern(user_id=uuid4(), active_hours=frozenset())
        now = _at(20)
        assert calc.optimal_time(activity, QUIET, now) == now

    def test_active_hours_inside_quiet_hours_are_skipped(self, calc):
        activity = UserActivityPattern(user_id=uuid4(), active_hours=frozenset({23, 10}))
        assert calc.deliverable_hours(activity, QUIET) == frozenset({10})

    def test_naive_now_is_treated_as_utc(self, calc, activity):
        naive = datetime(2026, 3, 10, 23, 0)
        assert calc.optimal_time(activity, QUIET, naive) == _at(8, day=11)


class TestTimeZones:
    def test_quiet_hours_apply_in_local_time(self, calc):
        # 06:00 UTC is 22:00 the previous day in Los Angeles (PST, UTC-8)
        activity = UserActivityPattern(
            user_id=uuid4(), active_hours=frozenset(range(9, 18)), time_zone="America/Los_Angeles"
        )
        now = datetime(2026, 1, 10, 6, 0, tzinfo=timezone.utc)
        result = calc.optimal_time(activity, QUIET, now)
        assert result == datetime(2026, 1, 10, 16, 0, tzinfo=timezone.utc)  # 08:00 PST


class TestConvergence:
    @pytest.mark.parametrize("hours", [frozenset({3}), frozenset({23, 2}), frozenset({9}), frozenset()])
    def test_reaches_fixed_point_within_a_day(self, calc, hours):
        activity = UserActivityPattern(user_id=uuid4(), active_hours=hours)
        for start_hour in range(24):
            now = _at(start_hour, 17)
            for _ in range(24):
                nxt = calc.optimal_time(activity, QUIET, now)
                assert nxt >= now
                if nxt == now:
                    break
                now = nxt
            else:
                pytest.fail(f"no fixed point from {start_hour}:17 with {sorted(hours)}")
            assert not QUIET.contains(now.hour)

    def test_result_never_before_now(self, calc, activity):
        now = _at(0)
        for minutes in range(0, 24 * 60, 37):
            t = now + timedelta(minutes=minutes)
            assert calc.optimal_time(activity, QUIET, t) >= t
