"""Post-event analytics aggregator.

Reconstructs session metrics for one room over a time window from what the
live components leave behind: audience records, auction history, and the
analytics event log (bids and session ends), plus the static inventory
reference. Every step is a pure function; analyze_room() only adds the
store reads.

Usage:
    report = await analyze_room(store, "ROOM1", inventory)
    print(report.revenue, report.avg_multiplier)
"""

import asyncio
import logging
import math
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..config import AnalyticsConfig, Config
from ..errors import ValidationError
from ..models.types import (
    AnalyticsReport,
    AnalyticsWindow,
    AuctionHistoryRecord,
    EventType,
    Role,
    TopBidder,
    UnsoldItem,
    WindowSource,
    current_ts_ms,
    parse_amount,
    round_half_up,
)
from ..room import EVENT_CONFIG_PATH, Room
from ..storage.base import RealtimeStore, child_values

logger = logging.getLogger(__name__)

# Shown when no sold item has a known starting price
NO_MULTIPLIER_ITEM = "N/A"

STAFF_ROLES = (Role.HOST.value, Role.MODERATOR.value)


@dataclass
class RoomSnapshot:
    """Raw store nodes the aggregator works from."""
    event_config: Any = None
    metadata: Any = None
    audience: Any = None
    history: Any = None
    events: Any = None


# =============================================================================
# Window resolution
# =============================================================================

def parse_timestamp(value: Any) -> int:
    """Epoch milliseconds from an int or an ISO-8601 string.

    Naive ISO strings are taken as UTC.

    Raises:
        ValidationError: value is neither
    """
    if isinstance(value, bool):
        raise ValidationError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return int(value)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            parsed = datetime.fromisoformat(text)
        except ValueError as e:
            raise ValidationError(f"Invalid ISO-8601 timestamp: {value!r}") from e
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return int(parsed.timestamp() * 1000)
    raise ValidationError(f"Invalid timestamp: {value!r}")


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def resolve_window(
    explicit_start: Any = None,
    explicit_end: Any = None,
    metadata: Any = None,
    event_config: Any = None,
    now_ms: Optional[int] = None,
) -> AnalyticsWindow:
    """Pick the analytics window; the first source that applies wins.

    1. explicit start and end (both or neither)
    2. room metadata {startTime, endTime}, when both are present
    3. the global event_config {startTime, endTime}, missing fields 0 / now
    4. [0, now]

    Raises:
        ValidationError: one explicit bound only, unparseable bound, or start > end
    """
    now_ms = current_ts_ms() if now_ms is None else now_ms

    if explicit_start is not None or explicit_end is not None:
        if explicit_start is None or explicit_end is None:
            raise ValidationError("Explicit window needs both a start and an end")
        window = AnalyticsWindow(
            parse_timestamp(explicit_start), parse_timestamp(explicit_end), WindowSource.EXPLICIT
        )
    elif isinstance(metadata, dict) and _is_number(metadata.get("startTime")) \
            and _is_number(metadata.get("endTime")):
        window = AnalyticsWindow(
            int(metadata["startTime"]), int(metadata["endTime"]), WindowSource.ROOM_METADATA
        )
    elif isinstance(event_config, dict):
        start = event_config.get("startTime")
        end = event_config.get("endTime")
        window = AnalyticsWindow(
            parse_timestamp(start) if start else 0,
            parse_timestamp(end) if end else now_ms,
            WindowSource.EVENT_CONFIG,
        )
    else:
        window = AnalyticsWindow(0, now_ms, WindowSource.DEFAULT)

    if window.start_time > window.end_time:
        raise ValidationError(
            f"Window start {window.start_time} is after end {window.end_time}"
        )
    return window


# =============================================================================
# Aggregation steps
# =============================================================================

def dedupe_audience(audience: List[dict], config: AnalyticsConfig) -> List[dict]:
    """Real users: no staff, no test ids, first record per phone number."""
    unique: Dict[str, dict] = {}
    for record in audience:
        if not isinstance(record, dict):
            continue
        if record.get("role") in STAFF_ROLES:
            continue
        user_id = record.get("userId") or ""
        if user_id.startswith(config.test_user_prefix):
            continue
        phone = str(record.get("phone") or "")
        if phone not in unique:
            unique[phone] = record
    return list(unique.values())


def filter_bids(events: List[dict], window: AnalyticsWindow, config: AnalyticsConfig) -> List[dict]:
    """Placed-bid events inside the window from non-test users."""
    bids = []
    for event in events:
        if not isinstance(event, dict):
            continue
        tag = event.get("eventType") or event.get("type")
        if tag != EventType.BID_PLACED:
            continue
        if not window.contains(event.get("timestamp")):
            continue
        user = event.get("user")
        if isinstance(user, str) and config.test_user_marker in user:
            continue
        bids.append(event)
    return bids


def history_in_window(history: List[dict], window: AnalyticsWindow) -> List[AuctionHistoryRecord]:
    return [
        AuctionHistoryRecord.from_dict(h)
        for h in history
        if isinstance(h, dict) and window.contains(h.get("timestamp"))
    ]


def classify_sales(
    records: List[AuctionHistoryRecord],
) -> Tuple[List[AuctionHistoryRecord], List[AuctionHistoryRecord]]:
    """Split closed rounds into (sold, unsold)."""
    sold = [r for r in records if r.is_sold]
    unsold = [r for r in records if not r.is_sold]
    return sold, unsold


def conversion_percent(items_sold: int, real_user_count: int) -> int:
    if real_user_count <= 0:
        return 0
    return round_half_up(items_sold / real_user_count * 100)


def compute_multipliers(
    sold: List[AuctionHistoryRecord],
    inventory: Dict[str, int],
) -> Tuple[float, float, str]:
    """Average and highest final/starting price ratio.

    Items without a known positive starting price are left out entirely.

    Returns:
        (avg_multiplier, highest_multiplier, highest_multiplier_item)
    """
    ratios = []
    highest = 0.0
    highest_item = NO_MULTIPLIER_ITEM

    for record in sold:
        starting_price = inventory.get(record.item_name, 0)
        if starting_price <= 0:
            continue
        ratio = record.final_price / starting_price
        ratios.append(ratio)
        if ratio > highest:
            highest = ratio
            highest_item = record.item_name

    avg = sum(ratios) / len(ratios) if ratios else 0.0
    return avg, highest, highest_item


def rank_window_bidders(records: List[AuctionHistoryRecord], limit: int = 5) -> List[TopBidder]:
    """Sum every round's topBidders contributions per user.

    Ties keep first-encountered order.
    """
    totals: Dict[str, int] = {}
    for record in records:
        for bidder in record.top_bidders:
            totals[bidder.user] = totals.get(bidder.user, 0) + bidder.amount

    ranked = sorted(totals.items(), key=lambda kv: -kv[1])
    return [TopBidder(name=name, total=total) for name, total in ranked[:limit]]


def estimate_viewers(events: List[dict], window: AnalyticsWindow) -> int:
    """Average concurrent viewers: total session time over window length.

    Sessions lost to disconnects never log an end event and are not counted.
    """
    window_minutes = window.duration_ms / 1000 / 60
    if window_minutes <= 0:
        return 0

    total_ms = 0
    for event in events:
        if not isinstance(event, dict) or event.get("eventType") != EventType.SESSION_END:
            continue
        duration = event.get("duration")
        if _is_number(duration):
            total_ms += duration

    return round_half_up((total_ms / 1000 / 60) / window_minutes)


def bucket_label(ts_ms: int) -> str:
    return datetime.fromtimestamp(ts_ms / 1000, tz=timezone.utc).strftime("%H:%M")


def bucket_activity(
    window: AnalyticsWindow,
    bids: List[dict],
    users: List[dict],
    bucket_minutes: int = 5,
) -> Tuple[List[str], List[int], List[int]]:
    """Bid and first-join counts per half-open bucket [t, t + bucket).

    Returns:
        (labels, bid_counts, join_counts), parallel lists
    """
    bucket_ms = bucket_minutes * 60 * 1000
    if bucket_ms <= 0:
        raise ValidationError(f"Bucket size must be positive, got {bucket_minutes}")
    if window.duration_ms <= 0:
        return [], [], []

    count = math.ceil(window.duration_ms / bucket_ms)
    labels = []
    bid_counts = [0] * count
    join_counts = [0] * count

    for i in range(count):
        labels.append(bucket_label(window.start_time + i * bucket_ms))

    def bucket_of(ts: Any) -> Optional[int]:
        if not _is_number(ts) or ts < window.start_time:
            return None
        index = int((ts - window.start_time) // bucket_ms)
        return index if index < count else None

    for bid in bids:
        index = bucket_of(bid.get("timestamp"))
        if index is not None:
            bid_counts[index] += 1

    for user in users:
        index = bucket_of(user.get("joinedAt"))
        if index is not None:
            join_counts[index] += 1

    return labels, bid_counts, join_counts


def aggregate(
    room_id: str,
    window: AnalyticsWindow,
    audience: List[dict],
    history: List[dict],
    events: List[dict],
    inventory: Dict[str, int],
    config: Optional[AnalyticsConfig] = None,
) -> AnalyticsReport:
    """Compute every metric for one room and window.

    Args:
        room_id: Room identifier
        window: Resolved analytics window
        audience: Audience records in join order
        history: Auction history records in append order
        events: Analytics events in append order
        inventory: Item name -> starting price
        config: Analytics settings

    Returns:
        AnalyticsReport
    """
    config = config or AnalyticsConfig()

    users = dedupe_audience(audience, config)
    bids = filter_bids(events, window, config)
    records = history_in_window(history, window)
    sold, unsold = classify_sales(records)

    avg_multiplier, highest_multiplier, highest_item = compute_multipliers(sold, inventory)
    labels, bid_counts, join_counts = bucket_activity(window, bids, users, config.bucket_minutes)

    return AnalyticsReport(
        room_id=room_id,
        start_time=window.start_time,
        end_time=window.end_time,
        window_source=window.source.name.lower(),
        real_user_count=len(users),
        total_bids=len(bids),
        items_showcased=len(records),
        items_sold=len(sold),
        revenue=sum(r.final_price for r in sold),
        conversion_pct=conversion_percent(len(sold), len(users)),
        avg_multiplier=avg_multiplier,
        highest_multiplier=highest_multiplier,
        highest_multiplier_item=highest_item,
        avg_viewers=estimate_viewers(events, window),
        top_bidders=rank_window_bidders(records, config.top_bidders_limit),
        unsold_items=[UnsoldItem(r.item_name, inventory.get(r.item_name, 0)) for r in unsold],
        bucket_labels=labels,
        bid_counts=bid_counts,
        join_counts=join_counts,
    )


# =============================================================================
# Store access
# =============================================================================

async def load_room_snapshot(store: RealtimeStore, room: Room) -> RoomSnapshot:
    """Read every node the aggregator needs, concurrently."""
    event_config, metadata, audience, history, events = await asyncio.gather(
        store.read(EVENT_CONFIG_PATH),
        store.read(room.metadata_path),
        store.read(room.audience_path),
        store.read(room.history_path),
        store.read(room.analytics_path),
    )
    return RoomSnapshot(
        event_config=event_config,
        metadata=metadata,
        audience=audience,
        history=history,
        events=events,
    )


async def analyze_room(
    store: RealtimeStore,
    room_id: str,
    inventory: Dict[str, int],
    start: Any = None,
    end: Any = None,
    config: Optional[Config] = None,
    now_ms: Optional[int] = None,
) -> AnalyticsReport:
    """Load a room from the store and aggregate it.

    Raises:
        ValidationError: malformed window
        ConnectivityError: store unreachable
    """
    config = config or Config()
    room = Room(room_id)
    snapshot = await load_room_snapshot(store, room)

    window = resolve_window(start, end, snapshot.metadata, snapshot.event_config, now_ms)
    logger.info(
        f"[{room_id}] Analyzing window {window.start_time}..{window.end_time} "
        f"({window.source.name.lower()})"
    )

    report = aggregate(
        room_id,
        window,
        child_values(snapshot.audience),
        child_values(snapshot.history),
        child_values(snapshot.events),
        inventory,
        config.analytics,
    )
    logger.info(
        f"[{room_id}] {report.real_user_count} real users, {report.total_bids} bids, "
        f"{report.items_sold}/{report.items_showcased} sold, revenue {report.revenue}"
    )
    return report
