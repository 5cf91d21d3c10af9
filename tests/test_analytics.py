"""Tests for the analytics aggregator."""

import asyncio
import json

import pytest
from live_auction.config import AnalyticsConfig, Config
from live_auction.errors import ValidationError
from live_auction.models.types import AnalyticsWindow, AuctionHistoryRecord, BidderTotal, WindowSource
from live_auction.services.analytics import (
    NO_MULTIPLIER_ITEM,
    aggregate,
    analyze_room,
    bucket_activity,
    classify_sales,
    compute_multipliers,
    dedupe_audience,
    estimate_viewers,
    filter_bids,
    parse_timestamp,
    rank_window_bidders,
    resolve_window,
)
from live_auction.storage.memory_store import MemoryDatabase

START = 1704067200000  # 2024-01-01 00:00:00 UTC


def history(item, price, winner, bidders=(), ts=START + 1000) -> dict:
    return {
        "itemName": item,
        "finalPrice": price,
        "winner": winner,
        "topBidders": [{"user": u, "amount": a} for u, a in bidders],
        "timestamp": ts,
    }


def record(item, price, winner="alice", bidders=()) -> AuctionHistoryRecord:
    return AuctionHistoryRecord.from_dict(history(item, price, winner, bidders))


class TestScenarios:
    """End-to-end aggregation scenarios."""

    def test_single_sale_multiplier(self):
        window = AnalyticsWindow(START, START + 600_000)
        report = aggregate(
            "R", window, [],
            [history("Lamp", 250, "alice", [("alice", 250), ("bob", 200)])],
            [], {"Lamp": 100},
        )
        assert report.avg_multiplier == 2.5
        assert report.highest_multiplier == 2.5
        assert report.highest_multiplier_item == "Lamp"
        assert report.items_sold == 1
        assert report.items_showcased == 1
        assert report.revenue == 250

    def test_dedup_by_phone_and_host_excluded(self):
        audience = [
            {"userId": "HOST", "phone": "9999999999", "role": "host", "joinedAt": START},
            {"userId": "USER-A", "phone": "9999999999", "role": "audience", "joinedAt": START + 5},
        ]
        report = aggregate("R", AnalyticsWindow(START, START + 1000), audience, [], [], {})
        assert report.real_user_count == 1

    def test_ten_minutes_make_two_buckets(self):
        window = AnalyticsWindow(0, 600_000)
        bids = [{"eventType": "BID_PLACED", "user": "u", "amount": 10, "timestamp": 400_000}]
        report = aggregate("R", window, [], [], bids, {})
        assert report.bucket_labels == ["00:00", "00:05"]
        assert report.bid_counts == [0, 1]
        assert report.join_counts == [0, 0]

    def test_nothing_sold(self):
        window = AnalyticsWindow(START, START + 600_000)
        report = aggregate("R", window, [], [history("Rug", 80, "Nobody")], [], {"Rug": 50})
        assert report.revenue == 0
        assert report.avg_multiplier == 0
        assert report.highest_multiplier_item == NO_MULTIPLIER_ITEM == "N/A"
        assert [u.name for u in report.unsold_items] == ["Rug"]
        assert report.unsold_items[0].starting_price == 50


class TestWindowResolution:
    """Tests for the window priority chain."""

    def test_explicit_wins(self):
        window = resolve_window(
            "2024-01-01T00:00:00Z", "2024-01-01T01:00:00Z",
            metadata={"startTime": 1, "endTime": 2}, now_ms=10,
        )
        assert window.source == WindowSource.EXPLICIT
        assert (window.start_time, window.end_time) == (START, START + 3_600_000)

    def test_naive_iso_is_utc(self):
        assert parse_timestamp("2024-01-01T00:00:00") == START
        assert parse_timestamp("2024-01-01T05:30:00+05:30") == START

    def test_single_explicit_bound_rejected(self):
        with pytest.raises(ValidationError):
            resolve_window("2024-01-01T00:00:00Z", None)
        with pytest.raises(ValidationError):
            resolve_window(None, "2024-01-01T00:00:00Z")

    def test_inverted_window_rejected(self):
        with pytest.raises(ValidationError):
            resolve_window("2024-01-02T00:00:00Z", "2024-01-01T00:00:00Z")

    def test_garbage_timestamp_rejected(self):
        with pytest.raises(ValidationError):
            resolve_window("yesterday", "today")

    def test_room_metadata(self):
        window = resolve_window(
            metadata={"startTime": 100, "endTime": 200},
            event_config={"startTime": "2024-01-01T00:00:00Z"},
            now_ms=999,
        )
        assert window.source == WindowSource.ROOM_METADATA
        assert (window.start_time, window.end_time) == (100, 200)

    def test_partial_metadata_falls_through(self):
        window = resolve_window(
            metadata={"startTime": 100},
            event_config={"startTime": "2024-01-01T00:00:00Z"},
            now_ms=START + 5,
        )
        assert window.source == WindowSource.EVENT_CONFIG
        assert (window.start_time, window.end_time) == (START, START + 5)

    def test_event_config_missing_start(self):
        window = resolve_window(event_config={"endTime": "2024-01-01T00:00:00Z"}, now_ms=1)
        assert (window.start_time, window.end_time) == (0, START)

    def test_default_window(self):
        window = resolve_window(now_ms=12345)
        assert window.source == WindowSource.DEFAULT
        assert (window.start_time, window.end_time) == (0, 12345)


class TestSteps:
    """Tests for the individual aggregation steps."""

    def test_dedupe_keeps_first_seen(self):
        config = AnalyticsConfig()
        audience = [
            {"userId": "USER-1", "phone": "111", "role": "audience", "joinedAt": 10},
            {"userId": "MOD", "phone": "222", "role": "moderator", "joinedAt": 11},
            {"userId": "TEST-1", "phone": "333", "role": "audience", "joinedAt": 12},
            {"userId": "USER-2", "phone": "111", "role": "audience", "joinedAt": 13},
            {"userId": "USER-3", "phone": "444", "joinedAt": 14},
        ]
        users = dedupe_audience(audience, config)
        assert [u["userId"] for u in users] == ["USER-1", "USER-3"]

    def test_filter_bids(self):
        window = AnalyticsWindow(100, 200)
        events = [
            {"eventType": "BID_PLACED", "user": "a", "timestamp": 100},
            {"type": "BID_PLACED", "user": "b", "timestamp": 200},
            {"eventType": "BID_PLACED", "user": "c", "timestamp": 201},
            {"eventType": "BID_PLACED", "user": "xTESTx", "timestamp": 150},
            {"eventType": "SESSION_END", "user": "d", "timestamp": 150},
            {"eventType": "BID_PLACED", "timestamp": 150},
        ]
        kept = filter_bids(events, window, AnalyticsConfig())
        assert [e.get("user") for e in kept] == ["a", "b", None]

    def test_keyed_top_bidders(self):
        raw = history("Lamp", 250, "alice", [("alice", 250)])
        raw["topBidders"] = {"0": {"user": "alice", "amount": 250}, "1": None, "2": "bob"}
        parsed = AuctionHistoryRecord.from_dict(raw)
        assert parsed.top_bidders == [BidderTotal(user="alice", amount=250)]

        report = aggregate(
            "R", AnalyticsWindow(START, START + 600_000), [], [raw], [], {"Lamp": 100},
        )
        assert report.items_sold == 1
        assert report.revenue == 250

    def test_classify_sales(self):
        sold, unsold = classify_sales([
            record("A", 10, "alice"), record("B", 10, "Nobody"), record("C", 10, ""),
        ])
        assert [r.item_name for r in sold] == ["A"]
        assert [r.item_name for r in unsold] == ["B", "C"]

    def test_multiplier_skips_unknown_prices(self):
        sold = [record("Lamp", 300), record("Mystery", 1000), record("Rug", 50), record("Chair", 400)]
        avg, highest, item = compute_multipliers(sold, {"Lamp": 100, "Rug": 0, "Chair": 400})
        assert avg == 2.0
        assert highest == 3.0
        assert item == "Lamp"

    def test_highest_multiplier_first_wins_ties(self):
        _, highest, item = compute_multipliers(
            [record("A", 200), record("B", 400)], {"A": 100, "B": 200}
        )
        assert (highest, item) == (2.0, "A")

    def test_rank_window_bidders(self):
        records = [
            record("A", 0, bidders=[("x", 100), ("y", 300)]),
            record("B", 0, bidders=[("z", 200), ("x", 100)]),
            record("C", 0, bidders=[("w", 50), ("v", 10), ("u", 5)]),
        ]
        top = rank_window_bidders(records, limit=5)
        assert [(b.name, b.total) for b in top] == [
            ("y", 300), ("x", 200), ("z", 200), ("w", 50), ("v", 10),
        ]

    def test_estimate_viewers(self):
        window = AnalyticsWindow(0, 600_000)
        events = [
            {"eventType": "SESSION_END", "duration": 300_000},
            {"eventType": "SESSION_END", "duration": 600_000},
            {"eventType": "SESSION_END"},
            {"eventType": "SESSION_START", "duration": 999_999_999},
        ]
        assert estimate_viewers(events, window) == 2  # 1.5 rounds half up

    def test_estimate_viewers_empty_window(self):
        assert estimate_viewers([{"eventType": "SESSION_END", "duration": 10}], AnalyticsWindow(5, 5)) == 0

    def test_bucket_joins_counted_once(self):
        window = AnalyticsWindow(0, 900_000)
        users = [{"joinedAt": 0}, {"joinedAt": 299_999}, {"joinedAt": 300_000}, {"joinedAt": 900_000}]
        labels, bids, joins = bucket_activity(window, [], users, bucket_minutes=5)
        assert labels == ["00:00", "00:05", "00:10"]
        assert joins == [2, 1, 0]
        assert bids == [0, 0, 0]

    def test_partial_last_bucket(self):
        labels, _, _ = bucket_activity(AnalyticsWindow(0, 301_000), [], [], bucket_minutes=5)
        assert len(labels) == 2

    def test_conversion_rounds_half_up(self):
        audience = [
            {"userId": f"USER-{i}", "phone": str(i), "role": "audience", "joinedAt": START}
            for i in range(8)
        ]
        sold = [history("A", 10, "alice")]
        report = aggregate("R", AnalyticsWindow(START, START + 60_000), audience, sold, [], {})
        assert report.conversion_pct == 13  # 12.5%

    def test_no_users_no_conversion(self):
        report = aggregate(
            "R", AnalyticsWindow(START, START + 60_000), [], [history("A", 10, "alice")], [], {}
        )
        assert report.conversion_pct == 0


class TestAnalyzeRoom:
    """Tests for the store-backed entry point."""

    def test_sample_room(self, sample_room_export, scenario_inventory):
        database = MemoryDatabase(initial=sample_room_export)
        report = asyncio.run(analyze_room(database.connect(), "ROOM1", scenario_inventory))

        assert report.window_source == "room_metadata"
        assert report.real_user_count == 2
        assert report.total_bids == 3
        assert report.items_showcased == 2
        assert report.items_sold == 1
        assert report.revenue == 250
        assert report.conversion_pct == 50
        assert report.avg_multiplier == 2.5
        assert report.highest_multiplier_item == "Lamp"
        assert report.avg_viewers == 2
        assert [(b.name, b.total) for b in report.top_bidders] == [
            ("USER-ALICE0001", 250), ("USER-BOB000002", 200),
        ]
        assert [(u.name, u.starting_price) for u in report.unsold_items] == [("Chair", 400)]
        assert report.bucket_labels == ["00:00", "00:05"]
        assert report.bid_counts == [2, 1]
        assert report.join_counts == [1, 1]

    def test_explicit_window_narrows(self, sample_room_export, scenario_inventory):
        database = MemoryDatabase(initial=sample_room_export)
        report = asyncio.run(analyze_room(
            database.connect(), "ROOM1", scenario_inventory,
            start="2024-01-01T00:05:00Z", end="2024-01-01T00:10:00Z",
        ))
        assert report.window_source == "explicit"
        assert report.items_showcased == 1
        assert report.items_sold == 0
        assert report.total_bids == 1

    def test_idempotent(self, sample_room_export, scenario_inventory):
        database = MemoryDatabase(initial=sample_room_export)

        async def run():
            store = database.connect()
            first = await analyze_room(store, "ROOM1", scenario_inventory, config=Config())
            second = await analyze_room(store, "ROOM1", scenario_inventory, config=Config())
            return first, second

        first, second = asyncio.run(run())
        assert json.dumps(first.to_dict(), sort_keys=True) == json.dumps(second.to_dict(), sort_keys=True)

    def test_empty_room(self):
        report = asyncio.run(analyze_room(MemoryDatabase().connect(), "EMPTY", {}, now_ms=START))
        assert report.window_source == "default"
        assert report.real_user_count == 0
        assert report.revenue == 0
        assert report.highest_multiplier_item == "N/A"
        assert report.top_bidders == []

    def test_global_event_config(self, sample_room_export, scenario_inventory):
        del sample_room_export["rooms"]["ROOM1"]["metadata"]
        sample_room_export["event_config"] = {
            "startTime": "2024-01-01T00:00:00Z",
            "endTime": "2024-01-01T00:05:00Z",
        }
        database = MemoryDatabase(initial=sample_room_export)
        report = asyncio.run(analyze_room(database.connect(), "ROOM1", scenario_inventory))
        assert report.window_source == "event_config"
        assert report.items_showcased == 1
