"""Per-participant live room client.

Coordinates, for one connection:
- Presence registration (viewers only)
- Subscriptions to auction state, price and viewer count
- Countdown (the host's closes expired rounds)
- Host controls and viewer bidding
"""

import logging
from dataclasses import dataclass, asdict
from typing import Awaitable, Callable, List, Optional

from .config import Config, load_config
from .models.types import (
    AuctionHistoryRecord,
    AuctionState,
    BidResult,
    Participant,
    Role,
    current_ts_ms,
)
from .room import Room
from .services.audience import AudienceRegistry
from .services.auction import AuctionStateMachine
from .services.bid_ledger import BidLedger, as_price
from .services.chat import ChatLog
from .services.countdown import AuctionCountdown
from .services.presence import PresenceTracker, count_viewers
from .storage.base import RealtimeStore, Subscription

logger = logging.getLogger(__name__)


@dataclass
class RoomView:
    """Locally observed room state.

    Fields are updated independently by separate subscriptions, so a view
    may briefly combine a new auction state with a stale price.
    """
    is_active: bool = False
    end_time: int = 0
    item_name: Optional[str] = None
    current_price: int = 0
    viewer_count: int = 0
    updates: int = 0


class LiveRoom:
    """One participant's connection to a room.

    Usage:
        async with LiveRoom(store, "ROOM1", participant) as room:
            await room.place_bid(room.suggested_bid())
    """

    def __init__(
        self,
        store: RealtimeStore,
        room_id: str,
        participant: Participant,
        config: Optional[Config] = None,
        clock: Callable[[], int] = current_ts_ms,
    ):
        self.store = store
        self.room = Room(room_id)
        self.participant = participant
        self.config = config or load_config()
        self.clock = clock

        # Components share one connection
        self.audience = AudienceRegistry(store, self.room, clock=clock)
        self.chat = ChatLog(store, self.room, self.config, audience=self.audience)
        self.ledger = BidLedger(
            store, self.room, self.config, audience=self.audience, chat=self.chat, clock=clock
        )
        self.machine = AuctionStateMachine(store, self.room, self.config, ledger=self.ledger, clock=clock)
        self.presence = PresenceTracker(store, self.room, self.config, clock=clock)
        self.countdown = AuctionCountdown(self.machine, participant, clock=clock)

        self.view = RoomView()
        self.session_id: Optional[str] = None
        self.is_running = False
        self._subscriptions: List[Subscription] = []

        # Callback for external monitoring
        self.on_view: Optional[Callable[[RoomView], Awaitable[None]]] = None

    @classmethod
    async def login(
        cls,
        store: RealtimeStore,
        room_id: str,
        email: str,
        phone: str,
        role: Role = Role.AUDIENCE,
        config: Optional[Config] = None,
        clock: Callable[[], int] = current_ts_ms,
    ) -> "LiveRoom":
        """Register an audience record and build a client for it (not started)."""
        registry = AudienceRegistry(store, Room(room_id), clock=clock)
        record = await registry.register(email, phone, role)
        return cls(store, room_id, Participant.from_record(record), config=config, clock=clock)

    @property
    def time_left(self) -> int:
        return self.countdown.time_left

    async def start(self) -> None:
        """Join presence, subscribe to room state and start the countdown."""
        if self.is_running:
            return
        logger.info(f"[{self.room.room_id}] {self.participant.user_id} entering room")

        self.session_id = await self.presence.join(self.participant)
        self._subscriptions = [
            await self.store.subscribe(self.room.auction_path, self._on_auction),
            await self.store.subscribe(self.room.price_path, self._on_price),
            await self.store.subscribe(self.room.viewers_path, self._on_viewers),
        ]
        self.countdown.start()
        self.is_running = True

    async def stop(self) -> None:
        """Stop the countdown, drop subscriptions and leave gracefully."""
        if not self.is_running:
            return
        logger.info(f"[{self.room.room_id}] {self.participant.user_id} leaving room")
        self.is_running = False

        try:
            await self.countdown.cancel()
            for subscription in self._subscriptions:
                await subscription.cancel()
        finally:
            self._subscriptions = []
            session_id, self.session_id = self.session_id, None
            await self.presence.leave(session_id)

    async def __aenter__(self) -> "LiveRoom":
        await self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.stop()

    # -------------------------------------------------------------------------
    # Actions
    # -------------------------------------------------------------------------

    async def toggle_auction(
        self,
        duration_seconds: Optional[int] = None,
        item_name: Optional[str] = None,
    ) -> Optional[AuctionHistoryRecord]:
        """Host control: stop a running round, or start one.

        Returns:
            The history record when this call closed a round, else None
        """
        state = await self.machine.read_state()
        if state.is_active:
            return await self.machine.stop(self.participant)
        await self.machine.start(self.participant, duration_seconds, item_name=item_name)
        return None

    def suggested_bid(self) -> int:
        """Next bid a viewer is offered: current price plus one increment."""
        return self.view.current_price + self.config.auction.bid_increment

    async def place_bid(self, amount: Optional[int] = None) -> BidResult:
        return await self.ledger.place_bid(
            self.participant, self.suggested_bid() if amount is None else amount
        )

    async def send_message(self, text: str) -> str:
        return await self.chat.post(self.participant, text)

    def get_stats(self) -> dict:
        """Get client statistics."""
        return {
            "room_id": self.room.room_id,
            "user_id": self.participant.user_id,
            "role": self.participant.role.value,
            "is_running": self.is_running,
            "session_id": self.session_id,
            "time_left": self.time_left,
            "view": asdict(self.view),
        }

    # -------------------------------------------------------------------------
    # Subscription handlers
    # -------------------------------------------------------------------------

    async def _on_auction(self, value) -> None:
        state = AuctionState.from_dict(value)
        self.view.is_active = state.is_active
        self.view.end_time = state.effective_end_time or 0
        self.view.item_name = state.item_name
        self.countdown.observe(state)
        await self._view_changed()

    async def _on_price(self, value) -> None:
        self.view.current_price = as_price(value)
        await self._view_changed()

    async def _on_viewers(self, value) -> None:
        self.view.viewer_count = count_viewers(value)
        await self._view_changed()

    async def _view_changed(self) -> None:
        self.view.updates += 1
        if self.on_view:
            await self.on_view(self.view)
