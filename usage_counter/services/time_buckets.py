"""Hourly and daily event counts.

Buckets are keyed on the local calendar of the configured zone:
``YYYY-MM-DDTHH+ZZZZ`` (local hour and its UTC offset) for hours and
``YYYY-MM-DD`` for days.  Trailing series are built at read time, so hours
or days with no activity simply report 0.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone, tzinfo

logger = logging.getLogger(__name__)


@dataclass
class HourBucket:
    count: int
    last_updated_at: datetime


@dataclass
class DayBucket:
    count: int
    unique_user_ids: set[str] = field(default_factory=set)


@dataclass
class HourPoint:
    hour: str
    count: int


@dataclass
class DayPoint:
    date: str
    count: int
    unique: int


def hour_key(moment: datetime) -> str:
    # The offset keeps the repeated hour of a DST fall-back in its own bucket
    return moment.strftime("%Y-%m-%dT%H%z")


def day_key(day: date) -> str:
    return day.isoformat()


class TimeBucketAggregator:
    def __init__(
        self,
        tz: tzinfo,
        hours: dict[str, HourBucket] | None = None,
        days: dict[str, DayBucket] | None = None,
    ) -> None:
        self._tz = tz
        self._hours: dict[str, HourBucket] = dict(hours or {})
        self._days: dict[str, DayBucket] = dict(days or {})

    def local(self, now: datetime) -> datetime:
        return now.astimezone(self._tz)

    def local_date(self, now: datetime) -> date:
        return self.local(now).date()

    def _hour_start(self, now: datetime) -> datetime:
        return self.local(now).replace(minute=0, second=0, microsecond=0)

    def record_hour(self, now: datetime) -> HourBucket:
        key = hour_key(self._hour_start(now))
        bucket = self._hours.get(key)
        if bucket is None:
            bucket = HourBucket(count=1, last_updated_at=now)
            self._hours[key] = bucket
        else:
            bucket.count += 1
            bucket.last_updated_at = now
        return bucket

    def record_day(self, now: datetime, user_id: str) -> DayBucket:
        key = day_key(self.local_date(now))
        bucket = self._days.get(key)
        if bucket is None:
            bucket = DayBucket(count=1, unique_user_ids={user_id})
            self._days[key] = bucket
        else:
            bucket.count += 1
            bucket.unique_user_ids.add(user_id)
        return bucket

    def current_hour(self, now: datetime) -> HourPoint:
        key = hour_key(self._hour_start(now))
        bucket = self._hours.get(key)
        return HourPoint(hour=key, count=bucket.count if bucket else 0)

    def trailing_hours(self, n: int, now: datetime) -> list[HourPoint]:
        """The *n* hours ending at ``now``'s hour, oldest first."""
        # Step back in UTC: skipped local hours never appear and repeated ones
        # keep distinct keys through their offsets
        start = self._hour_start(now).astimezone(timezone.utc)
        points = []
        for offset in range(n - 1, -1, -1):
            key = hour_key((start - timedelta(hours=offset)).astimezone(self._tz))
            bucket = self._hours.get(key)
            points.append(HourPoint(hour=key, count=bucket.count if bucket else 0))
        return points

    def trailing_days(self, n: int, now: datetime) -> list[DayPoint]:
        """The *n* calendar days ending at ``now``'s date, oldest first."""
        today = self.local_date(now)
        points = []
        for offset in range(n - 1, -1, -1):
            key = day_key(today - timedelta(days=offset))
            bucket = self._days.get(key)
            if bucket is None:
                points.append(DayPoint(date=key, count=0, unique=0))
            else:
                points.append(
                    DayPoint(date=key, count=bucket.count, unique=len(bucket.unique_user_ids))
                )
        return points

    def prune(self, now: datetime, retention_days: int) -> int:
        """Drop buckets dated more than *retention_days* before today.

        Returns the number of buckets removed; ``retention_days <= 0`` is a no-op.
        """
        if retention_days <= 0:
            return 0
        cutoff = day_key(self.local_date(now) - timedelta(days=retention_days))
        old_hours = [key for key in self._hours if key[:10] < cutoff]
        old_days = [key for key in self._days if key < cutoff]
        for key in old_hours:
            del self._hours[key]
        for key in old_days:
            del self._days[key]
        removed = len(old_hours) + len(old_days)
        if removed:
            logger.info("Pruned %d bucket(s) older than %s", removed, cutoff)
        return removed

    def hours(self) -> dict[str, HourBucket]:
        return self._hours

    def days(self) -> dict[str, DayBucket]:
        return self._days
