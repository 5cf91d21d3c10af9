"""Services for the live-auction system."""

from .audience import AudienceRegistry
from .chat import ChatLog
from .bid_ledger import BidLedger
from .auction import AuctionStateMachine
from .countdown import AuctionCountdown
from .presence import PresenceTracker
from .analytics import aggregate, analyze_room, load_room_snapshot, resolve_window

__all__ = [
    "AudienceRegistry",
    "ChatLog",
    "BidLedger",
    "AuctionStateMachine",
    "AuctionCountdown",
    "PresenceTracker",
    "aggregate",
    "analyze_room",
    "load_room_snapshot",
    "resolve_window",
]
