"""Core data types for the live-auction system."""

from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any, List, Optional
import math
import time


# Winner recorded when a round closes without a qualifying bid.
NOBODY = "Nobody"


class AuctionPhase(Enum):
    """Auction lifecycle phase."""
    IDLE = auto()
    ACTIVE = auto()


class Role(Enum):
    """Participant role within a room."""
    HOST = "host"
    MODERATOR = "moderator"
    AUDIENCE = "audience"

    @property
    def is_staff(self) -> bool:
        return self in (Role.HOST, Role.MODERATOR)

    @classmethod
    def parse(cls, value: Any) -> "Role":
        """Parse a stored role, treating anything unknown as audience."""
        if isinstance(value, Role):
            return value
        try:
            return cls(value)
        except ValueError:
            return cls.AUDIENCE


class EventType:
    """Analytics event type tags."""
    BID_PLACED = "BID_PLACED"
    SESSION_START = "SESSION_START"
    SESSION_END = "SESSION_END"


class ChatMessageType:
    """Chat entry type tags."""
    MESSAGE = "msg"
    BID = "bid"


@dataclass
class AuctionState:
    """Live auction state of a room.

    end_time is only meaningful while the auction is active.
    """
    is_active: bool = False
    end_time: int = 0
    item_name: Optional[str] = None
    round_id: Optional[str] = None

    @property
    def phase(self) -> AuctionPhase:
        return AuctionPhase.ACTIVE if self.is_active else AuctionPhase.IDLE

    @property
    def effective_end_time(self) -> Optional[int]:
        """End time, or None when inactive or unset."""
        if not self.is_active or not self.end_time:
            return None
        return self.end_time

    def is_expired(self, now_ms: int) -> bool:
        """Check if an active round has run out of time."""
        end = self.effective_end_time
        return end is not None and end <= now_ms

    def to_dict(self) -> dict:
        data = {"isActive": self.is_active, "endTime": self.end_time}
        if self.item_name is not None:
            data["itemName"] = self.item_name
        if self.round_id is not None:
            data["roundId"] = self.round_id
        return data

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "AuctionState":
        if not data:
            return cls()
        return cls(
            is_active=bool(data.get("isActive", False)),
            end_time=int(data.get("endTime") or 0),
            item_name=data.get("itemName"),
            round_id=data.get("roundId"),
        )


@dataclass
class Restrictions:
    """Moderation flags attached to an audience record."""
    is_muted: bool = False
    is_bid_banned: bool = False
    is_kicked: bool = False

    @property
    def can_bid(self) -> bool:
        return not (self.is_bid_banned or self.is_kicked)

    @property
    def can_chat(self) -> bool:
        return not (self.is_muted or self.is_kicked)

    def to_dict(self) -> dict:
        return {
            "isMuted": self.is_muted,
            "isBidBanned": self.is_bid_banned,
            "isKicked": self.is_kicked,
        }

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> "Restrictions":
        data = data or {}
        return cls(
            is_muted=bool(data.get("isMuted", False)),
            is_bid_banned=bool(data.get("isBidBanned", False)),
            is_kicked=bool(data.get("isKicked", False)),
        )


@dataclass
class AudienceRecord:
    """One login session in a room."""
    user_id: str
    phone: str
    email: str
    role: Role
    joined_at: int
    restrictions: Restrictions = field(default_factory=Restrictions)
    key: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "userId": self.user_id,
            "phone": self.phone,
            "email": self.email,
            "role": self.role.value,
            "joinedAt": self.joined_at,
            "restrictions": self.restrictions.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict, key: Optional[str] = None) -> "AudienceRecord":
        return cls(
            user_id=data.get("userId") or "",
            phone=str(data.get("phone") or ""),
            email=data.get("email") or "",
            role=Role.parse(data.get("role")),
            joined_at=int(data.get("joinedAt") or 0),
            restrictions=Restrictions.from_dict(data.get("restrictions")),
            key=key,
        )


@dataclass
class Participant:
    """The actor behind a live-room connection."""
    user_id: str
    role: Role = Role.AUDIENCE
    audience_key: Optional[str] = None

    @property
    def is_host(self) -> bool:
        return self.role == Role.HOST

    @property
    def is_staff(self) -> bool:
        return self.role.is_staff

    @classmethod
    def from_record(cls, record: AudienceRecord) -> "Participant":
        return cls(user_id=record.user_id, role=record.role, audience_key=record.key)


@dataclass
class BidderTotal:
    """A bidder and their pledged amount."""
    user: str
    amount: int

    def to_dict(self) -> dict:
        return {"user": self.user, "amount": self.amount}


@dataclass
class RoundBidder:
    """Rolling per-round aggregate for one bidder.

    last_bid is the accepted amount that brought the bidder to their total.
    round_id ties the entry to the round it was accumulated in.
    """
    user: str
    amount: int
    last_bid: int
    round_id: Optional[str] = None

    def to_dict(self) -> dict:
        data = {"user": self.user, "amount": self.amount, "lastBid": self.last_bid}
        if self.round_id is not None:
            data["round"] = self.round_id
        return data

    @classmethod
    def from_dict(cls, data: dict) -> "RoundBidder":
        return cls(
            user=data.get("user") or "",
            amount=int(data.get("amount") or 0),
            last_bid=int(data.get("lastBid") or 0),
            round_id=data.get("round"),
        )


@dataclass
class AuctionHistoryRecord:
    """Immutable record of one closed auction round."""
    item_name: str
    final_price: int
    winner: str
    top_bidders: List[BidderTotal]
    timestamp: int

    @property
    def is_sold(self) -> bool:
        return bool(self.winner) and self.winner != NOBODY

    def to_dict(self) -> dict:
        return {
            "itemName": self.item_name,
            "finalPrice": self.final_price,
            "winner": self.winner,
            "topBidders": [b.to_dict() for b in self.top_bidders],
            "timestamp": self.timestamp,
        }

    @classmethod
    def from_dict(cls, data: dict) -> "AuctionHistoryRecord":
        # Sparse arrays come back from the store as keyed objects
        bidders = data.get("topBidders")
        if isinstance(bidders, dict):
            bidders = list(bidders.values())
        elif not isinstance(bidders, list):
            bidders = []

        return cls(
            item_name=str(data.get("itemName") or ""),
            final_price=parse_amount(data.get("finalPrice")),
            winner=str(data.get("winner") or NOBODY),
            top_bidders=[
                BidderTotal(user=str(b.get("user") or ""), amount=parse_amount(b.get("amount")))
                for b in bidders
                if isinstance(b, dict)
            ],
            timestamp=parse_amount(data.get("timestamp")),
        )


class BidRejection(Enum):
    """Why a bid attempt did not move the price."""
    AUCTION_INACTIVE = auto()
    NOT_HIGHER = auto()


@dataclass
class BidResult:
    """Result of a bid attempt."""
    accepted: bool
    price: int
    amount: int
    reason: Optional[BidRejection] = None
    attempts: int = 1


@dataclass
class InventoryItem:
    """Static starting-price reference for an item."""
    name: str
    starting_price: int


class WindowSource(Enum):
    """Where an analytics window came from."""
    EXPLICIT = auto()
    ROOM_METADATA = auto()
    EVENT_CONFIG = auto()
    DEFAULT = auto()


@dataclass
class AnalyticsWindow:
    """Closed [start_time, end_time] interval in epoch milliseconds."""
    start_time: int
    end_time: int
    source: WindowSource = WindowSource.EXPLICIT

    @property
    def duration_ms(self) -> int:
        return self.end_time - self.start_time

    def contains(self, ts: Any) -> bool:
        return isinstance(ts, (int, float)) and self.start_time <= ts <= self.end_time


@dataclass
class TopBidder:
    """Window-wide bidder total."""
    name: str
    total: int


@dataclass
class UnsoldItem:
    """Item showcased without a winner."""
    name: str
    starting_price: int


@dataclass
class AnalyticsReport:
    """Flat record of session metrics for one room and window."""
    room_id: str
    start_time: int
    end_time: int
    window_source: str
    real_user_count: int
    total_bids: int
    items_showcased: int
    items_sold: int
    revenue: int
    conversion_pct: int
    avg_multiplier: float
    highest_multiplier: float
    highest_multiplier_item: str
    avg_viewers: int
    top_bidders: List[TopBidder] = field(default_factory=list)
    unsold_items: List[UnsoldItem] = field(default_factory=list)
    bucket_labels: List[str] = field(default_factory=list)
    bid_counts: List[int] = field(default_factory=list)
    join_counts: List[int] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "room_id": self.room_id,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "window_source": self.window_source,
            "real_user_count": self.real_user_count,
            "total_bids": self.total_bids,
            "items_showcased": self.items_showcased,
            "items_sold": self.items_sold,
            "revenue": self.revenue,
            "conversion_pct": self.conversion_pct,
            "avg_multiplier": self.avg_multiplier,
            "highest_multiplier": self.highest_multiplier,
            "highest_multiplier_item": self.highest_multiplier_item,
            "avg_viewers": self.avg_viewers,
            "top_bidders": [{"name": b.name, "total": b.total} for b in self.top_bidders],
            "unsold_items": [
                {"name": u.name, "starting_price": u.starting_price} for u in self.unsold_items
            ],
            "bucket_labels": list(self.bucket_labels),
            "bid_counts": list(self.bid_counts),
            "join_counts": list(self.join_counts),
        }


def parse_amount(value: Any) -> int:
    """Parse a stored amount leniently; unparseable values count as 0."""
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else 0
    if isinstance(value, str):
        digits = value.strip()
        sign = 1
        if digits.startswith("-"):
            sign, digits = -1, digits[1:]
        prefix = ""
        for ch in digits:
            if ch not in "0123456789":
                break
            prefix += ch
        return sign * int(prefix) if prefix else 0
    return 0


def round_half_up(value: float) -> int:
    """Round to nearest integer with halves away from zero."""
    if value < 0:
        return -math.floor(-value + 0.5)
    return math.floor(value + 0.5)


def time_left_seconds(end_time_ms: int, now_ms: int) -> int:
    """Whole seconds left until end_time, never negative."""
    return max(0, math.ceil((end_time_ms - now_ms) / 1000))


def current_ts_ms() -> int:
    """Get current timestamp in milliseconds."""
    return int(time.time() * 1000)
