"""
Live Auction - realtime multi-viewer auction coordination

One host showcases items while many concurrent viewers outbid each other;
every client coordinates only through a shared realtime store.

Core components:
- Bid ledger: monotonic current price under racing bidders
- Auction state machine: idempotent start/stop with history records
- Presence tracker: viewer markers with disconnect cleanup
- Analytics aggregator: post-event revenue, conversion and engagement
"""

__version__ = "0.1.0"
__author__ = "live-auction"

from .config import Config, load_config
from .errors import (
    LiveAuctionError,
    ValidationError,
    PermissionDeniedError,
    ConcurrencyConflict,
    NotFoundError,
    ConnectivityError,
)
from .models.types import (
    NOBODY,
    AuctionState,
    AuctionHistoryRecord,
    AudienceRecord,
    Participant,
    Role,
    BidResult,
    AnalyticsReport,
)
from .room import Room
from .orchestrator import LiveRoom, RoomView
from .services import (
    BidLedger,
    AuctionStateMachine,
    PresenceTracker,
    AuctionCountdown,
    analyze_room,
)

__all__ = [
    # Config
    "Config",
    "load_config",
    # Errors
    "LiveAuctionError",
    "ValidationError",
    "PermissionDeniedError",
    "ConcurrencyConflict",
    "NotFoundError",
    "ConnectivityError",
    # Types
    "NOBODY",
    "AuctionState",
    "AuctionHistoryRecord",
    "AudienceRecord",
    "Participant",
    "Role",
    "BidResult",
    "AnalyticsReport",
    "Room",
    # Orchestrator
    "LiveRoom",
    "RoomView",
    # Services
    "BidLedger",
    "AuctionStateMachine",
    "PresenceTracker",
    "AuctionCountdown",
    "analyze_room",
]
