"""Client-side auction countdown.

Every client computes the time left on its own from the shared endTime; no
coordinator broadcasts ticks. Only the host's countdown closes the round at
zero, so expiry is detected only while a host client is connected.
"""

import asyncio
import logging
from typing import Callable, Optional

from ..models.types import AuctionState, Participant, current_ts_ms, time_left_seconds
from .auction import AuctionStateMachine

logger = logging.getLogger(__name__)


class AuctionCountdown:
    """Polls the auction state and tracks the seconds left.

    Args:
        machine: State machine of the room
        participant: Owner of this client; the host's countdown calls stop at zero
        interval_seconds: Poll interval
        clock: Millisecond clock
    """

    def __init__(
        self,
        machine: AuctionStateMachine,
        participant: Participant,
        interval_seconds: Optional[float] = None,
        clock: Callable[[], int] = current_ts_ms,
    ):
        self.machine = machine
        self.participant = participant
        self.interval_seconds = (
            interval_seconds
            if interval_seconds is not None
            else machine.config.auction.countdown_interval_seconds
        )
        self.clock = clock
        self.state = AuctionState()
        self.time_left = machine.config.auction.default_duration_seconds
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def observe(self, state: AuctionState) -> None:
        """Feed a state seen through a subscription, skipping a poll."""
        self.state = state
        self._tick()

    def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run())

    async def cancel(self) -> None:
        """Stop polling; no stop() fires after this returns."""
        if self._task is None:
            return
        task, self._task = self._task, None
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"[{self.machine.room.room_id}] Countdown stopped with error: {e}")

    async def close(self) -> None:
        await self.cancel()

    def _tick(self) -> int:
        end = self.state.effective_end_time
        if end is None:
            self.time_left = self.machine.config.auction.default_duration_seconds
        else:
            self.time_left = time_left_seconds(end, self.clock())
        return self.time_left

    async def _run(self) -> None:
        while True:
            self.state = await self.machine.read_state()
            if self.state.is_active and self._tick() == 0 and self.participant.is_host:
                record = await self.machine.stop(self.participant)
                if record is not None:
                    logger.info(f"[{self.machine.room.room_id}] Countdown expired, round closed")
            elif not self.state.is_active:
                self._tick()
            await asyncio.sleep(self.interval_seconds)
