"""Distinct participants seen by the aggregator, keyed by user id."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime


def default_display_name(user_id: str) -> str:
    return f"User_{user_id}"


@dataclass
class UniqueUserRecord:
    user_id: str
    display_name: str
    first_seen: datetime
    last_seen: datetime
    execution_count: int = 1


class UniqueUserIndex:
    def __init__(self, records: dict[str, UniqueUserRecord] | None = None) -> None:
        self._records: dict[str, UniqueUserRecord] = dict(records or {})

    def upsert(self, user_id: str, display_name: str | None, now: datetime) -> UniqueUserRecord:
        """Create the record for *user_id* or count one more event against it.

        An existing record keeps its display name unless a new one is supplied.
        """
        record = self._records.get(user_id)
        if record is None:
            record = UniqueUserRecord(
                user_id=user_id,
                display_name=display_name or default_display_name(user_id),
                first_seen=now,
                last_seen=now,
            )
            self._records[user_id] = record
            return record

        record.execution_count += 1
        record.last_seen = now
        if display_name:
            record.display_name = display_name
        return record

    def get(self, user_id: str) -> UniqueUserRecord | None:
        return self._records.get(user_id)

    def count(self) -> int:
        return len(self._records)

    def records(self) -> dict[str, UniqueUserRecord]:
        return self._records
