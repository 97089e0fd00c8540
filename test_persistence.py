"""Tests for the snapshot codec and the JSON file store."""

import json
from datetime import date, timedelta

import pytest

from conftest import T0
from usage_counter.services.persistence import (
    AggregatorState,
    CorruptSnapshotError,
    JsonFileStore,
    StatsSnapshot,
    decode_state,
    encode_state,
)
from usage_counter.services.sessions import SessionRecord
from usage_counter.services.time_buckets import DayBucket, HourBucket
from usage_counter.services.unique_users import UniqueUserRecord


@pytest.fixture
def populated_state() -> AggregatorState:
    later = T0 + timedelta(seconds=42, microseconds=123456)
    return AggregatorState(
        snapshot=StatsSnapshot(
            total=17,
            today=5,
            peak_online=3,
            peak_today=5,
            last_reset_date=date(2026, 3, 10),
            requests_count=17,
        ),
        users={
            "u1": UniqueUserRecord("u1", "Alice", T0, later, 12),
            "u2": UniqueUserRecord("u2", "User_u2", T0, T0, 5),
        },
        sessions={
            "s1": SessionRecord("s1", "u1", "Alice", T0, later, game_id="777"),
            "s2": SessionRecord("s2", "u2", "User_u2", T0, T0),
        },
        hours={
            "2026-03-10T11+0000": HourBucket(9, T0 - timedelta(minutes=40)),
            "2026-03-10T12+0000": HourBucket(8, later),
        },
        days={
            "2026-03-09": DayBucket(12, {"u1"}),
            "2026-03-10": DayBucket(5, {"u2", "u1", "u3"}),
        },
    )


class TestCodec:
    def test_round_trip_reproduces_state(self, populated_state):
        document = encode_state(populated_state)

        assert decode_state(document) == populated_state

    def test_round_trip_through_json_text(self, populated_state):
        text = json.dumps(encode_state(populated_state))

        assert decode_state(json.loads(text)) == populated_state

    def test_document_layout(self, populated_state):
        document = encode_state(populated_state)

        assert document["version"] == 1
        assert document["online"] == 2
        assert document["peakOnline"] == 3
        assert document["lastResetDate"] == "2026-03-10"
        assert document["requestsCount"] == 17
        assert set(document) >= {"uniqueUsers", "sessions", "hourlyStats", "dailyStats"}
        assert document["uniqueUsers"]["u1"]["executionCount"] == 12
        assert document["sessions"]["s1"]["gameId"] == "777"
        assert document["dailyStats"]["2026-03-10"]["uniqueUserIds"] == ["u1", "u2", "u3"]

    def test_set_order_in_document_does_not_matter(self, populated_state):
        document = encode_state(populated_state)
        document["dailyStats"]["2026-03-10"]["uniqueUserIds"] = ["u3", "u1", "u2"]

        assert decode_state(document).days["2026-03-10"].unique_user_ids == {"u1", "u2", "u3"}

    def test_online_is_derived_from_sessions(self, populated_state):
        document = encode_state(populated_state)
        document["online"] = 99

        assert decode_state(document).online == 2

    def test_empty_state_round_trip(self):
        state = AggregatorState(snapshot=StatsSnapshot(last_reset_date=date(2026, 1, 1)))

        assert decode_state(encode_state(state)) == state

    @pytest.mark.parametrize(
        "payload",
        [
            [],
            {"total": "lots"},
            {"version": 99, "total": 0, "today": 0, "peakOnline": 0, "peakToday": 0,
             "lastResetDate": "2026-03-10", "requestsCount": 0},
            {"total": -1, "today": 0, "peakOnline": 0, "peakToday": 0,
             "lastResetDate": "2026-03-10", "requestsCount": 0},
        ],
    )
    def test_invalid_documents_raise_corrupt(self, payload):
        with pytest.raises(CorruptSnapshotError):
            decode_state(payload)


class TestJsonFileStore:
    @pytest.mark.asyncio
    async def test_load_missing_returns_none(self, tmp_path):
        store = JsonFileStore(tmp_path / "missing.json")

        assert await store.load() is None

    @pytest.mark.asyncio
    async def test_save_then_load(self, tmp_path, populated_state):
        store = JsonFileStore(tmp_path / "nested" / "main.json")

        await store.save(encode_state(populated_state))
        loaded = await store.load()

        assert decode_state(loaded) == populated_state
        assert not (tmp_path / "nested" / "main.tmp").exists()

    @pytest.mark.asyncio
    async def test_garbage_file_is_corrupt(self, tmp_path):
        path = tmp_path / "main.json"
        path.write_text("{not json", encoding="utf-8")

        with pytest.raises(CorruptSnapshotError):
            await JsonFileStore(path).load()

    @pytest.mark.asyncio
    async def test_invalid_utf8_file_is_corrupt(self, tmp_path):
        path = tmp_path / "main.json"
        path.write_bytes(b'{"total": "\xff\xfe"}')

        with pytest.raises(CorruptSnapshotError):
            await JsonFileStore(path).load()
