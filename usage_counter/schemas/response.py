from datetime import date, datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── /api/count ───────────────────────────────────────────────────────────────
class EventStats(CamelModel):
    total: int
    today: int
    online: int
    unique: int
    your_total: int


class RecordEventResponse(CamelModel):
    success: bool
    stats: EventStats | None = None
    message: str | None = None
    timestamp: datetime


# ── /api/counter ─────────────────────────────────────────────────────────────
class CounterResponse(CamelModel):
    total: int
    today: int
    online: int
    unique: int
    peak_online: int
    peak_today: int
    last_update: datetime


# ── /api/stats ───────────────────────────────────────────────────────────────
class ReportSummary(CamelModel):
    total: int
    today: int
    online: int
    unique: int
    peak_online: int
    peak_today: int
    requests_count: int
    last_reset_date: date


class HourlyEntry(CamelModel):
    hour: str
    count: int


class DailyEntry(CamelModel):
    date: str
    count: int
    unique: int


class DetailedReportResponse(CamelModel):
    summary: ReportSummary
    hourly: list[HourlyEntry]
    daily: list[DailyEntry]
    current_hour: HourlyEntry
    last_update: datetime


# ── /api/heartbeat ───────────────────────────────────────────────────────────
class HeartbeatResponse(CamelModel):
    success: bool
    online: int
    message: str | None = None


# ── errors ───────────────────────────────────────────────────────────────────
class ErrorResponse(CamelModel):
    error: str
    message: str | None = None


class NotFoundResponse(CamelModel):
    error: str
    available: list[str]
