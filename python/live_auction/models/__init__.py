"""Data models for the live-auction system."""

from .types import (
    NOBODY,
    AuctionPhase,
    Role,
    EventType,
    ChatMessageType,
    AuctionState,
    Restrictions,
    AudienceRecord,
    Participant,
    BidderTotal,
    RoundBidder,
    AuctionHistoryRecord,
    BidRejection,
    BidResult,
    InventoryItem,
    WindowSource,
    AnalyticsWindow,
    TopBidder,
    UnsoldItem,
    AnalyticsReport,
)

__all__ = [
    "NOBODY",
    "AuctionPhase",
    "Role",
    "EventType",
    "ChatMessageType",
    "AuctionState",
    "Restrictions",
    "AudienceRecord",
    "Participant",
    "BidderTotal",
    "RoundBidder",
    "AuctionHistoryRecord",
    "BidRejection",
    "BidResult",
    "InventoryItem",
    "WindowSource",
    "AnalyticsWindow",
    "TopBidder",
    "UnsoldItem",
    "AnalyticsReport",
]
