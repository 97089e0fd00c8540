"""Durable snapshot of the aggregator.

The whole state lives in one JSON document (camelCase keys).  Maps keyed by
user id, session id, hour and date are written as plain objects; the per-day
participant sets are written as sorted lists and read back into sets.

Writes go to a temp file first and are then renamed over the document, so a
crash mid-write leaves the previous snapshot in place.
"""
from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_serializer
from pydantic.alias_generators import to_camel

from usage_counter.services.sessions import SessionRecord
from usage_counter.services.time_buckets import DayBucket, HourBucket
from usage_counter.services.unique_users import UniqueUserRecord

logger = logging.getLogger(__name__)

DOCUMENT_VERSION = 1


class PersistenceError(Exception):
    """The durable store could not be read or written."""


class CorruptSnapshotError(PersistenceError):
    """The stored document exists but cannot be decoded."""


@dataclass
class StatsSnapshot:
    total: int = 0
    today: int = 0
    peak_online: int = 0
    peak_today: int = 0
    last_reset_date: date = field(default_factory=date.today)
    requests_count: int = 0


@dataclass
class AggregatorState:
    snapshot: StatsSnapshot
    users: dict[str, UniqueUserRecord] = field(default_factory=dict)
    sessions: dict[str, SessionRecord] = field(default_factory=dict)
    hours: dict[str, HourBucket] = field(default_factory=dict)
    days: dict[str, DayBucket] = field(default_factory=dict)

    @property
    def online(self) -> int:
        return len(self.sessions)


# ── document schema ─────────────────────────────────────────────────────────
class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class UserDocument(_CamelModel):
    user_id: str
    display_name: str
    first_seen: datetime
    last_seen: datetime
    execution_count: int = Field(ge=0)


class SessionDocument(_CamelModel):
    session_id: str
    user_id: str
    display_name: str
    created_at: datetime
    last_heartbeat_at: datetime
    game_id: str | None = None


class HourDocument(_CamelModel):
    count: int = Field(ge=0)
    last_updated_at: datetime


class DayDocument(_CamelModel):
    count: int = Field(ge=0)
    unique_user_ids: set[str] = set()

    @field_serializer("unique_user_ids")
    def _sorted_ids(self, value: set[str]) -> list[str]:
        return sorted(value)


class SnapshotDocument(_CamelModel):
    version: int = DOCUMENT_VERSION
    total: int = Field(ge=0)
    today: int = Field(ge=0)
    online: int = Field(default=0, ge=0)
    peak_online: int = Field(ge=0)
    peak_today: int = Field(ge=0)
    last_reset_date: date
    requests_count: int = Field(ge=0)
    unique_users: dict[str, UserDocument] = {}
    sessions: dict[str, SessionDocument] = {}
    hourly_stats: dict[str, HourDocument] = {}
    daily_stats: dict[str, DayDocument] = {}


# ── codec ───────────────────────────────────────────────────────────────────
def encode_state(state: AggregatorState) -> dict[str, Any]:
    """Return the JSON-ready document for *state*."""
    snap = state.snapshot
    document = SnapshotDocument(
        total=snap.total,
        today=snap.today,
        online=state.online,
        peak_online=snap.peak_online,
        peak_today=snap.peak_today,
        last_reset_date=snap.last_reset_date,
        requests_count=snap.requests_count,
        unique_users={
            key: UserDocument(
                user_id=u.user_id,
                display_name=u.display_name,
                first_seen=u.first_seen,
                last_seen=u.last_seen,
                execution_count=u.execution_count,
            )
            for key, u in state.users.items()
        },
        sessions={
            key: SessionDocument(
                session_id=s.session_id,
                user_id=s.user_id,
                display_name=s.display_name,
                created_at=s.created_at,
                last_heartbeat_at=s.last_heartbeat_at,
                game_id=s.game_id,
            )
            for key, s in state.sessions.items()
        },
        hourly_stats={
            key: HourDocument(count=h.count, last_updated_at=h.last_updated_at)
            for key, h in state.hours.items()
        },
        daily_stats={
            key: DayDocument(count=d.count, unique_user_ids=set(d.unique_user_ids))
            for key, d in state.days.items()
        },
    )
    return document.model_dump(mode="json", by_alias=True)


def decode_state(payload: Any) -> AggregatorState:
    """Rebuild the aggregator state from a stored document.

    Raises CorruptSnapshotError when the payload does not match the schema.
    The stored ``online`` value is ignored; it is derived from ``sessions``.
    """
    try:
        document = SnapshotDocument.model_validate(payload)
    except ValidationError as exc:
        raise CorruptSnapshotError(f"Invalid snapshot document: {exc}") from exc

    if document.version != DOCUMENT_VERSION:
        raise CorruptSnapshotError(f"Unsupported snapshot version: {document.version}")

    return AggregatorState(
        snapshot=StatsSnapshot(
            total=document.total,
            today=document.today,
            peak_online=document.peak_online,
            peak_today=document.peak_today,
            last_reset_date=document.last_reset_date,
            requests_count=document.requests_count,
        ),
        users={
            key: UniqueUserRecord(
                user_id=u.user_id,
                display_name=u.display_name,
                first_seen=u.first_seen,
                last_seen=u.last_seen,
                execution_count=u.execution_count,
            )
            for key, u in document.unique_users.items()
        },
        sessions={
            key: SessionRecord(
                session_id=s.session_id,
                user_id=s.user_id,
                display_name=s.display_name,
                created_at=s.created_at,
                last_heartbeat_at=s.last_heartbeat_at,
                game_id=s.game_id,
            )
            for key, s in document.sessions.items()
        },
        hours={
            key: HourBucket(count=h.count, last_updated_at=h.last_updated_at)
            for key, h in document.hourly_stats.items()
        },
        days={
            key: DayBucket(count=d.count, unique_user_ids=set(d.unique_user_ids))
            for key, d in document.daily_stats.items()
        },
    )


# ── durable store ───────────────────────────────────────────────────────────
class JsonFileStore:
    """Keeps the latest snapshot document in a single JSON file.

    File I/O runs in the default executor.  Saves are serialized in the order
    they were requested, so an older document never replaces a newer one.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> dict[str, Any] | None:
        """Return the stored document, or None when nothing was saved yet."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read)

    async def save(self, document: dict[str, Any]) -> None:
        payload = json.dumps(document, ensure_ascii=False, separators=(",", ":"))
        async with self._write_lock:
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._write, payload)

    def _read(self) -> dict[str, Any] | None:
        if not self._path.exists():
            return None
        try:
            raw = self._path.read_bytes()
        except OSError as exc:
            raise PersistenceError(f"Could not read {self._path}: {exc}") from exc
        try:
            return json.loads(raw.decode("utf-8"))
        except (UnicodeDecodeError, json.JSONDecodeError, RecursionError) as exc:
            raise CorruptSnapshotError(f"{self._path} is not valid JSON: {exc}") from exc

    def _write(self, payload: str) -> None:
        tmp_path = self._path.with_suffix(".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(payload, encoding="utf-8")
            tmp_path.replace(self._path)
        except OSError as exc:
            logger.error("Snapshot write to %s failed: %s", self._path, exc)
            raise PersistenceError(f"Could not write {self._path}: {exc}") from exc
