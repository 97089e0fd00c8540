"""Bridge between the HTTP routes and the aggregator.

Routes name an :class:`Operation` and hand over raw query parameters.  The
dispatcher normalizes them, runs the operation against the single StatsStore
while holding its lock (one operation in flight at a time), and converts the
result into the response document.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel

from usage_counter.schemas.response import (
    CounterResponse,
    DailyEntry,
    DetailedReportResponse,
    EventStats,
    HeartbeatResponse,
    HourlyEntry,
    RecordEventResponse,
    ReportSummary,
)
from usage_counter.services.stats_store import StatsStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class Operation(str, Enum):
    RECORD_EVENT = "record_event"
    GET_SUMMARY = "get_summary"
    GET_DETAILED_REPORT = "get_detailed_report"
    HEARTBEAT = "heartbeat"


def _clean(params: Mapping[str, str | None], name: str) -> str | None:
    value = params.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


class RequestDispatcher:
    def __init__(self, store: StatsStore, clock: Clock = utc_now) -> None:
        self._store = store
        self._clock = clock
        self._lock = asyncio.Lock()

    @property
    def store(self) -> StatsStore:
        return self._store

    async def dispatch(
        self,
        operation: Operation,
        params: Mapping[str, str | None] | None = None,
    ) -> BaseModel:
        params = params or {}
        async with self._lock:
            now = self._clock()
            if operation is Operation.RECORD_EVENT:
                return await self._record_event(params, now)
            if operation is Operation.GET_SUMMARY:
                return await self._get_summary(now)
            if operation is Operation.GET_DETAILED_REPORT:
                return await self._get_detailed_report(now)
            if operation is Operation.HEARTBEAT:
                return await self._heartbeat(params, now)
        raise ValueError(f"Unknown operation: {operation}")

    async def aclose(self) -> None:
        async with self._lock:
            await self._store.aclose()

    async def _record_event(self, params: Mapping[str, str | None], now: datetime) -> RecordEventResponse:
        result = await self._store.record_event(
            _clean(params, "userId"),
            now,
            display_name=_clean(params, "playerName"),
            session_id=_clean(params, "sessionId"),
            game_id=_clean(params, "gameId"),
        )
        stats = None
        if result.stats is not None:
            stats = EventStats(
                total=result.stats.total,
                today=result.stats.today,
                online=result.stats.online,
                unique=result.stats.unique,
                your_total=result.stats.your_total,
            )
        return RecordEventResponse(
            success=result.success,
            stats=stats,
            message=result.message,
            timestamp=now,
        )

    async def _get_summary(self, now: datetime) -> CounterResponse:
        view = await self._store.get_summary(now)
        return CounterResponse(
            total=view.total,
            today=view.today,
            online=view.online,
            unique=view.unique,
            peak_online=view.peak_online,
            peak_today=view.peak_today,
            last_update=now,
        )

    async def _get_detailed_report(self, now: datetime) -> DetailedReportResponse:
        report = await self._store.get_detailed_report(now)
        summary = report.summary
        return DetailedReportResponse(
            summary=ReportSummary(
                total=summary.total,
                today=summary.today,
                online=summary.online,
                unique=summary.unique,
                peak_online=summary.peak_online,
                peak_today=summary.peak_today,
                requests_count=report.requests_count,
                last_reset_date=report.last_reset_date,
            ),
            hourly=[HourlyEntry(hour=p.hour, count=p.count) for p in report.hourly],
            daily=[DailyEntry(date=p.date, count=p.count, unique=p.unique) for p in report.daily],
            current_hour=HourlyEntry(hour=report.current_hour.hour, count=report.current_hour.count),
            last_update=now,
        )

    async def _heartbeat(self, params: Mapping[str, str | None], now: datetime) -> HeartbeatResponse:
        result = await self._store.heartbeat(
            _clean(params, "sessionId"),
            _clean(params, "userId"),
            now,
        )
        if not result.success:
            logger.debug("Heartbeat rejected: %s", result.message or "missing identifiers")
        return HeartbeatResponse(success=result.success, online=result.online, message=result.message)
