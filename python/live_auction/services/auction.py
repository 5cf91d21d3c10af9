"""Auction lifecycle state machine.

Two phases, IDLE and ACTIVE, stored as the room's auction node. Both
transitions are conditional writes against isActive, so any number of
clients racing to stop an expired round produce exactly one history record:
only the caller whose transition commits performs the closing side effects.

Each round carries a roundId written in the opening transition; the bid
aggregate is keyed by it, so a start that loses the race never touches the
round that won.
"""

import logging
import secrets
from typing import Any, Callable, Dict, List, Optional

from ..config import Config
from ..errors import PermissionDeniedError, ValidationError
from ..models.types import (
    NOBODY,
    AuctionHistoryRecord,
    AuctionState,
    Participant,
    current_ts_ms,
)
from ..room import Room
from ..storage.base import RealtimeStore, child_values
from .bid_ledger import BidLedger

logger = logging.getLogger(__name__)


class AuctionStateMachine:
    """Start/stop transitions for one room."""

    def __init__(
        self,
        store: RealtimeStore,
        room: Room,
        config: Config,
        ledger: Optional[BidLedger] = None,
        clock: Callable[[], int] = current_ts_ms,
    ):
        self.store = store
        self.room = room
        self.config = config
        self.ledger = ledger or BidLedger(store, room, config, clock=clock)
        self.chat = self.ledger.chat
        self.clock = clock

    async def read_state(self) -> AuctionState:
        return AuctionState.from_dict(await self.store.read(self.room.auction_path))

    async def start(
        self,
        actor: Participant,
        duration_seconds: Optional[int] = None,
        seed_price: Optional[int] = None,
        item_name: Optional[str] = None,
    ) -> bool:
        """Open a round.

        The price already in the ledger becomes the opening price unless
        seed_price is given, in which case it is set first.

        Args:
            actor: Must be the host
            duration_seconds: Round length; defaults to the configured duration
            seed_price: Optional opening price
            item_name: Name carried into the closing record

        Returns:
            True if this call opened the round, False if one was already active

        Raises:
            PermissionDeniedError: actor is not the host
            ValidationError: non-positive duration or invalid seed price
        """
        if not actor.is_host:
            raise PermissionDeniedError(f"{actor.user_id} is not the host")

        if duration_seconds is None:
            duration_seconds = self.config.auction.default_duration_seconds
        if isinstance(duration_seconds, bool) or not isinstance(duration_seconds, (int, float)) \
                or duration_seconds <= 0:
            raise ValidationError(f"Duration must be positive, got {duration_seconds!r}")

        if (await self.read_state()).is_active:
            logger.info(f"[{self.room.room_id}] Auction already active, start ignored")
            return False

        if seed_price is not None:
            await self.ledger.set_price(actor, seed_price)

        name = item_name or self.config.auction.default_item_name
        end_time = self.clock() + int(duration_seconds * 1000)
        round_id = secrets.token_hex(8)

        result = await self.store.conditional_write(
            self.room.auction_path,
            lambda current: not AuctionState.from_dict(current).is_active,
            lambda _: AuctionState(
                is_active=True, end_time=end_time, item_name=name, round_id=round_id
            ).to_dict(),
        )
        if not result.committed:
            logger.info(f"[{self.room.room_id}] Lost start race, auction already active")
            return False

        await self.ledger.reset_round(keep_round=round_id)

        price = await self.ledger.read_price()
        await self.chat.announce(
            f"🚨 AUCTION STARTED AT {self.config.auction.currency_symbol}{price}!"
        )
        logger.info(f"[{self.room.room_id}] Auction started for {name} at {price}, ends {end_time}")
        return True

    async def stop(self, actor: Participant) -> Optional[AuctionHistoryRecord]:
        """Close the active round.

        The host may stop at any time; any other participant only once the
        round has expired. Safe to call concurrently from many clients.

        Returns:
            The appended history record if this call performed the
            transition, else None

        Raises:
            PermissionDeniedError: non-host stopping a round that has not expired
        """
        state = await self.read_state()
        if not state.is_active:
            return None
        if not actor.is_host and not state.is_expired(self.clock()):
            raise PermissionDeniedError(f"{actor.user_id} cannot stop a running auction")

        closing: Dict[str, Any] = {}

        def close_round(current: Any) -> dict:
            closing["state"] = AuctionState.from_dict(current)
            return AuctionState(is_active=False, end_time=0).to_dict()

        result = await self.store.conditional_write(
            self.room.auction_path,
            lambda current: AuctionState.from_dict(current).is_active,
            close_round,
        )
        if not result.committed:
            logger.debug(f"[{self.room.room_id}] Auction already stopped by another client")
            return None

        closed_state: AuctionState = closing["state"]
        final_price = await self.ledger.read_price()
        top_bidders = await self.ledger.top_bidders(
            self.config.auction.top_bidders_k, round_id=closed_state.round_id
        )

        record = AuctionHistoryRecord(
            item_name=closed_state.item_name or self.config.auction.default_item_name,
            final_price=final_price,
            winner=top_bidders[0].user if top_bidders else NOBODY,
            top_bidders=top_bidders,
            timestamp=self.clock(),
        )

        await self.chat.announce(f"🛑 SOLD FOR {self.config.auction.currency_symbol}{final_price}")
        await self.store.append(self.room.history_path, record.to_dict())

        logger.info(
            f"[{self.room.room_id}] Auction closed: {record.item_name} "
            f"final={record.final_price} winner={record.winner}"
        )
        return record

    async def history(self) -> List[AuctionHistoryRecord]:
        """Closed rounds, oldest first."""
        node = await self.store.read(self.room.history_path)
        return [AuctionHistoryRecord.from_dict(v) for v in child_values(node) if isinstance(v, dict)]
