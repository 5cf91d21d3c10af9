"""Bid ledger: the current price of a room and the rule that moves it.

While an auction is active the price only rises: a bid is accepted iff its
amount is strictly greater than the price at the instant of the write,
evaluated inside a conditional write so racing bidders converge on the
highest amount. While idle the host may set or step the price freely.

Accepted bids also feed the rolling per-round bidder aggregate used for the
closing record's topBidders, the analytics event log and the chat.
"""

import logging
from typing import Any, Callable, List, Optional

from ..config import Config
from ..errors import PermissionDeniedError, ValidationError
from ..models.types import (
    AuctionState,
    BidderTotal,
    BidRejection,
    BidResult,
    EventType,
    Participant,
    RoundBidder,
    current_ts_ms,
    parse_amount,
)
from ..pseudonyms import pseudonym
from ..room import Room
from ..storage.base import RealtimeStore, child_values, ordered_children
from .audience import AudienceRegistry
from .chat import ChatLog

logger = logging.getLogger(__name__)


def as_price(value: Any) -> int:
    """Stored price as an integer; absent means 0."""
    if value is None:
        return 0
    return parse_amount(value)


def _require_int(value: Any, name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{name} must be an integer, got {value!r}")
    return value


def rank_round_bidders(bidders: List[RoundBidder]) -> List[RoundBidder]:
    """Order by total descending, ties by who reached their total first.

    Accepted amounts strictly increase within a round, so a smaller
    last_bid means the total was reached earlier.
    """
    return sorted(bidders, key=lambda b: (-b.amount, b.last_bid))


class BidLedger:
    """Current price and bid resolution for one room."""

    def __init__(
        self,
        store: RealtimeStore,
        room: Room,
        config: Config,
        audience: Optional[AudienceRegistry] = None,
        chat: Optional[ChatLog] = None,
        clock: Callable[[], int] = current_ts_ms,
    ):
        self.store = store
        self.room = room
        self.config = config
        self.audience = audience or AudienceRegistry(store, room, clock=clock)
        self.chat = chat or ChatLog(store, room, config, audience=self.audience)
        self.clock = clock

    async def read_price(self) -> int:
        """Current price; no side effects."""
        return as_price(await self.store.read(self.room.price_path))

    async def set_price(self, actor: Participant, new_price: int) -> int:
        """Overwrite the price while no auction is active.

        Raises:
            ValidationError: new_price is not a non-negative integer
            PermissionDeniedError: actor is not the host, or the auction is active
        """
        _require_int(new_price, "Price")
        if new_price < 0:
            raise ValidationError(f"Price must be non-negative, got {new_price}")
        await self._require_idle_host(actor)

        await self.store.write(self.room.price_path, new_price)
        logger.info(f"[{self.room.room_id}] Price set to {new_price}")
        return new_price

    async def step_price(self, actor: Participant, delta: int) -> int:
        """Adjust the price by delta while idle, floored at 0."""
        _require_int(delta, "Price step")
        await self._require_idle_host(actor)

        result = await self.store.conditional_write(
            self.room.price_path,
            lambda _: True,
            lambda current: max(0, as_price(current) + delta),
        )
        logger.info(f"[{self.room.room_id}] Price stepped by {delta} to {result.value}")
        return result.value

    async def place_bid(self, participant: Participant, amount: int) -> BidResult:
        """Attempt to raise the price to amount.

        Args:
            participant: Bidding viewer
            amount: Offered price

        Returns:
            BidResult; rejected bids leave no trace

        Raises:
            ValidationError: amount is not a positive integer
            PermissionDeniedError: host bidding, or viewer bid-banned/kicked
        """
        _require_int(amount, "Bid amount")
        if amount <= 0:
            raise ValidationError(f"Bid amount must be positive, got {amount}")
        if participant.is_host:
            raise PermissionDeniedError("The host cannot bid")

        restrictions = await self.audience.restrictions_for(participant)
        if not restrictions.can_bid:
            raise PermissionDeniedError(f"{participant.user_id} may not bid")

        state = await self._read_state()
        if not state.is_active:
            return BidResult(
                accepted=False,
                price=await self.read_price(),
                amount=amount,
                reason=BidRejection.AUCTION_INACTIVE,
            )

        result = await self.store.conditional_write(
            self.room.price_path,
            lambda current: amount > as_price(current),
            lambda _: amount,
        )

        if not result.committed:
            return BidResult(
                accepted=False,
                price=as_price(result.value),
                amount=amount,
                reason=BidRejection.NOT_HIGHER,
                attempts=result.attempts,
            )

        if result.attempts > 1:
            logger.debug(f"[{self.room.room_id}] Bid {amount} committed after {result.attempts} attempts")

        await self._record_round_bid(participant.user_id, amount, state.round_id)
        await self.store.append(self.room.analytics_path, {
            "eventType": EventType.BID_PLACED,
            "user": participant.user_id,
            "amount": amount,
            "timestamp": self.clock(),
        })
        await self.chat.announce(
            f"New Bid: {self.config.auction.currency_symbol}{amount} by {pseudonym(participant.user_id)}"
        )

        return BidResult(accepted=True, price=amount, amount=amount, attempts=result.attempts)

    async def round_bidders(self, round_id: Optional[str] = None) -> List[RoundBidder]:
        """Ranked rolling aggregate for a round; the current one by default."""
        if round_id is None:
            round_id = (await self._read_state()).round_id
        node = await self.store.read(self.room.round_bidders_path)
        bidders = [
            RoundBidder.from_dict(v) for v in child_values(node) if isinstance(v, dict)
        ]
        return rank_round_bidders([b for b in bidders if b.round_id == round_id])

    async def top_bidders(self, k: Optional[int] = None, round_id: Optional[str] = None) -> List[BidderTotal]:
        """Top-k bidders of a round, rank order."""
        k = k or self.config.auction.top_bidders_k
        ranked = await self.round_bidders(round_id)
        return [BidderTotal(user=b.user, amount=b.amount) for b in ranked[:k]]

    async def reset_round(self, keep_round: Optional[str] = None) -> None:
        """Forget the rolling aggregate of every round except keep_round.

        Each stale entry is removed with a conditional write, so an entry a
        bid has just moved into keep_round survives.
        """
        if keep_round is None:
            await self.store.remove(self.room.round_bidders_path)
            return

        def is_stale(current: Any) -> bool:
            return isinstance(current, dict) and RoundBidder.from_dict(current).round_id != keep_round

        node = await self.store.read(self.room.round_bidders_path)
        for user_id, _ in ordered_children(node):
            await self.store.conditional_write(
                self.room.round_bidder_path(user_id), is_stale, lambda _: None
            )

    async def _read_state(self) -> AuctionState:
        return AuctionState.from_dict(await self.store.read(self.room.auction_path))

    async def _record_round_bid(self, user_id: str, amount: int, round_id: Optional[str]) -> None:
        def accumulate(current: Any) -> dict:
            previous = RoundBidder.from_dict(current) if isinstance(current, dict) else None
            if previous is not None and previous.round_id != round_id:
                previous = None
            total = (previous.amount if previous else 0) + amount
            return RoundBidder(user=user_id, amount=total, last_bid=amount, round_id=round_id).to_dict()

        await self.store.conditional_write(
            self.room.round_bidder_path(user_id), lambda _: True, accumulate
        )

    async def _require_idle_host(self, actor: Participant) -> None:
        if not actor.is_host:
            raise PermissionDeniedError(f"{actor.user_id} is not the host")
        state = await self._read_state()
        if state.is_active:
            raise PermissionDeniedError("Price is locked while an auction is active")
