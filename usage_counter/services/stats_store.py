"""The stats aggregator.

StatsStore owns the counters snapshot and the three trackers (unique users,
live sessions, time buckets) and is the only thing that mutates them.  It
assumes the caller runs one operation at a time; RequestDispatcher provides
that guarantee for the HTTP surface.

Every operation first runs the lazy maintenance pass (expire stale sessions,
apply the daily rollover, prune old buckets when retention is on).  Mutating
operations then write the full snapshot and report failure if that write
fails, after restoring the in-memory state from the last document that
reached disk.
Maintenance-only changes seen by read operations are flushed in the
background and a failed flush is only logged.
"""
from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from usage_counter.config import Settings
from usage_counter.services.persistence import (
    AggregatorState,
    CorruptSnapshotError,
    JsonFileStore,
    PersistenceError,
    StatsSnapshot,
    decode_state,
    encode_state,
)
from usage_counter.services.sessions import SessionLivenessTracker
from usage_counter.services.time_buckets import DayPoint, HourPoint, TimeBucketAggregator
from usage_counter.services.unique_users import UniqueUserIndex, default_display_name

logger = logging.getLogger(__name__)


@dataclass
class EventSummary:
    total: int
    today: int
    online: int
    unique: int
    your_total: int


@dataclass
class RecordEventResult:
    success: bool
    stats: EventSummary | None = None
    message: str | None = None


@dataclass
class CounterView:
    total: int
    today: int
    online: int
    unique: int
    peak_online: int
    peak_today: int


@dataclass
class DetailedReport:
    summary: CounterView
    requests_count: int
    last_reset_date: date
    hourly: list[HourPoint]
    daily: list[DayPoint]
    current_hour: HourPoint


@dataclass
class HeartbeatResult:
    success: bool
    online: int
    message: str | None = None


class StatsStore:
    def __init__(
        self,
        settings: Settings,
        store: JsonFileStore,
        state: AggregatorState,
    ) -> None:
        self._settings = settings
        self._store = store
        self._tz = settings.tz
        self._window = timedelta(seconds=settings.liveness_window_seconds)
        self._pending_flushes: set[asyncio.Task] = set()
        self._install(state)
        # Rollback target for failed writes: the startup state or the last saved document
        self._committed = encode_state(self._live_state())

    @classmethod
    async def create(
        cls,
        settings: Settings,
        store: JsonFileStore,
        now: datetime,
    ) -> StatsStore:
        """Load the latest snapshot, or start from zero when there is none.

        A document that cannot be decoded is treated like a missing one.
        Other read failures propagate.
        """
        state = None
        try:
            document = await store.load()
            if document is not None:
                state = decode_state(document)
        except CorruptSnapshotError as exc:
            logger.warning("Discarding unreadable snapshot, starting from zero: %s", exc)

        if state is None:
            logger.info("No snapshot for '%s', starting from zero", settings.instance_name)
            state = AggregatorState(
                snapshot=StatsSnapshot(last_reset_date=now.astimezone(settings.tz).date())
            )
        else:
            logger.info(
                "Loaded snapshot for '%s': total=%d users=%d sessions=%d",
                settings.instance_name,
                state.snapshot.total,
                len(state.users),
                len(state.sessions),
            )
        return cls(settings, store, state)

    # ── state plumbing ──────────────────────────────────────────────────
    def _install(self, state: AggregatorState) -> None:
        self._snapshot = state.snapshot
        self._users = UniqueUserIndex(state.users)
        self._sessions = SessionLivenessTracker(self._window, state.sessions)
        self._buckets = TimeBucketAggregator(self._tz, state.hours, state.days)

    def export_state(self) -> AggregatorState:
        """A deep copy of the full aggregator state."""
        return copy.deepcopy(self._live_state())

    def _live_state(self) -> AggregatorState:
        return AggregatorState(
            snapshot=self._snapshot,
            users=self._users.records(),
            sessions=self._sessions.records(),
            hours=self._buckets.hours(),
            days=self._buckets.days(),
        )

    async def _commit(self) -> None:
        # Earlier background flushes carry older documents; let them land first
        await self.drain()
        document = encode_state(self._live_state())
        try:
            await self._store.save(document)
        except PersistenceError:
            logger.error("Snapshot write failed; rolling back the operation")
            self._install(decode_state(self._committed))
            raise
        self._committed = document

    def _schedule_flush(self) -> None:
        document = encode_state(self._live_state())
        task = asyncio.create_task(self._flush(document))
        self._pending_flushes.add(task)
        task.add_done_callback(self._pending_flushes.discard)

    async def _flush(self, document: dict) -> None:
        try:
            await self._store.save(document)
        except PersistenceError as exc:
            logger.warning("Background snapshot flush failed: %s", exc)
        else:
            self._committed = document

    async def drain(self) -> None:
        """Wait for every pending background flush."""
        while self._pending_flushes:
            await asyncio.gather(*list(self._pending_flushes))

    async def aclose(self) -> None:
        await self.drain()

    # ── maintenance ─────────────────────────────────────────────────────
    def _check_daily_reset(self, now: datetime) -> bool:
        current = self._buckets.local_date(now)
        if current <= self._snapshot.last_reset_date:
            return False
        logger.info(
            "Daily rollover %s -> %s (today was %d)",
            self._snapshot.last_reset_date,
            current,
            self._snapshot.today,
        )
        self._snapshot.today = 0
        self._snapshot.peak_today = 0
        self._snapshot.last_reset_date = current
        return True

    def _maintain(self, now: datetime) -> bool:
        expired = self._sessions.expire_stale(now)
        rolled = self._check_daily_reset(now)
        pruned = self._buckets.prune(now, self._settings.retention_days)
        return bool(expired or rolled or pruned)

    def _track_peak_online(self) -> None:
        if self._sessions.online > self._snapshot.peak_online:
            self._snapshot.peak_online = self._sessions.online

    # ── read side ───────────────────────────────────────────────────────
    @property
    def online(self) -> int:
        return self._sessions.online

    @property
    def snapshot(self) -> StatsSnapshot:
        return copy.copy(self._snapshot)

    def _counter_view(self) -> CounterView:
        return CounterView(
            total=self._snapshot.total,
            today=self._snapshot.today,
            online=self._sessions.online,
            unique=self._users.count(),
            peak_online=self._snapshot.peak_online,
            peak_today=self._snapshot.peak_today,
        )

    async def get_summary(self, now: datetime) -> CounterView:
        if self._maintain(now):
            self._schedule_flush()
        return self._counter_view()

    async def get_detailed_report(self, now: datetime) -> DetailedReport:
        if self._maintain(now):
            self._schedule_flush()
        return DetailedReport(
            summary=self._counter_view(),
            requests_count=self._snapshot.requests_count,
            last_reset_date=self._snapshot.last_reset_date,
            hourly=self._buckets.trailing_hours(self._settings.hourly_window, now),
            daily=self._buckets.trailing_days(self._settings.daily_window, now),
            current_hour=self._buckets.current_hour(now),
        )

    # ── write side ──────────────────────────────────────────────────────
    async def record_event(
        self,
        user_id: str | None,
        now: datetime,
        display_name: str | None = None,
        session_id: str | None = None,
        game_id: str | None = None,
    ) -> RecordEventResult:
        """Count one event for *user_id*, optionally (re)registering a session."""
        if not user_id:
            return RecordEventResult(success=False, message="userId is required")

        self._maintain(now)

        snap = self._snapshot
        snap.total += 1
        snap.today += 1
        snap.requests_count += 1
        if snap.today > snap.peak_today:
            snap.peak_today = snap.today

        self._buckets.record_hour(now)
        self._buckets.record_day(now, user_id)

        user = self._users.upsert(user_id, display_name, now)

        if session_id:
            self._sessions.upsert(
                session_id,
                user_id,
                display_name or user.display_name,
                now,
                game_id=game_id,
            )
            self._track_peak_online()

        await self._commit()

        return RecordEventResult(
            success=True,
            stats=EventSummary(
                total=snap.total,
                today=snap.today,
                online=self._sessions.online,
                unique=self._users.count(),
                your_total=user.execution_count,
            ),
        )

    async def heartbeat(
        self,
        session_id: str | None,
        user_id: str | None,
        now: datetime,
    ) -> HeartbeatResult:
        maintained = self._maintain(now)

        if not session_id or not user_id:
            if maintained:
                self._schedule_flush()
            return HeartbeatResult(success=False, online=self._sessions.online)

        user = self._users.get(user_id)
        display_name = user.display_name if user else default_display_name(user_id)
        outcome = self._sessions.heartbeat(session_id, user_id, display_name, now)
        if not outcome.success:
            if maintained:
                self._schedule_flush()
            return HeartbeatResult(
                success=False,
                online=self._sessions.online,
                message=outcome.message,
            )

        self._track_peak_online()
        await self._commit()
        return HeartbeatResult(success=True, online=self._sessions.online)
