"""Delivery timing: the next instant a user may be notified."""

from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo

from domain.entities.delivery import QuietHours, UserActivityPattern


def _at_hour(day: date, hour: int, zone: ZoneInfo) -> datetime:
    return datetime.combine(day, time(hour=hour), tzinfo=zone)


class DeliveryTimeCalculator:
    """Computes the optimal delivery instant from activity and quiet hours.

    Pure: the same inputs always give the same instant, and the result is
    never earlier than ``now``. Feeding the result back in as ``now``
    reaches a fixed point (``now`` returned) within a few steps.
    """

    def deliverable_hours(
        self, activity: UserActivityPattern, quiet_hours: QuietHours | None
    ) -> frozenset[int]:
        """Active hours that are not inside quiet hours.

        Falls back to every non-quiet hour when the user has no active hours
        or all of them are quiet.
        """
        def quiet(hour: int) -> bool:
            return quiet_hours is not None and quiet_hours.contains(hour)

        hours = frozenset(h for h in activity.active_hours if not quiet(h))
        if not hours:
            hours = frozenset(h for h in range(24) if not quiet(h))
        return hours

    def optimal_time(
        self,
        activity: UserActivityPattern,
        quiet_hours: QuietHours | None,
        now: datetime,
    ) -> datetime:
        """Return ``now`` if the user can be reached now, else the next slot (UTC)."""
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)

        zone = activity.zone
        local = now.astimezone(zone)
        hour = local.hour

        if quiet_hours is not None and quiet_hours.contains(hour):
            candidate = _at_hour(local.date(), quiet_hours.end, zone)
            if candidate <= local:
                candidate = _at_hour(local.date() + timedelta(days=1), quiet_hours.end, zone)
            return candidate.astimezone(timezone.utc)

        hours = self.deliverable_hours(activity, quiet_hours)
        if hour in hours:
            return now

        later_today = [h for h in hours if h > hour]
        if later_today:
            candidate = _at_hour(local.date(), min(later_today), zone)
        else:
            candidate = _at_hour(local.date() + timedelta(days=1), min(hours), zone)
        return candidate.astimezone(timezone.utc)
