"""Realtime store contract.

The core depends on the shared store only through this narrow surface:
keyed read/write/remove, append with generated keys, atomic conditional
update, subscription, and disconnect-triggered removal. Each key-path is an
independent unit of consistency; nothing here spans paths atomically.
"""

import asyncio
import logging
import random
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, List, Optional, Tuple

from ..errors import ConcurrencyConflict
from ..models.types import current_ts_ms

logger = logging.getLogger(__name__)


ChangeCallback = Callable[[Any], Awaitable[None]]
Predicate = Callable[[Any], bool]
Compute = Callable[[Any], Any]

PUSH_CHARS = "-0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ_abcdefghijklmnopqrstuvwxyz"


@dataclass
class TransactionResult:
    """Outcome of a conditional write."""
    committed: bool
    value: Any
    attempts: int


class Subscription:
    """Handle for an active subscription; cancel() stops delivery."""

    def __init__(
        self,
        path: str,
        task: asyncio.Task,
        on_cancel: Optional[Callable[[], None]] = None,
    ):
        self.path = path
        self._task = task
        self._on_cancel = on_cancel

    @property
    def active(self) -> bool:
        return not self._task.done()

    @property
    def error(self) -> Optional[BaseException]:
        """Exception that ended delivery, if any."""
        if not self._task.done() or self._task.cancelled():
            return None
        return self._task.exception()

    async def cancel(self) -> None:
        """Stop delivery and wait for the delivery task to finish."""
        if self._on_cancel:
            self._on_cancel()
            self._on_cancel = None

        if self._task.done():
            return
        self._task.cancel()
        if asyncio.current_task() is self._task:
            return
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Subscription to {self.path} ended with error: {e}")


class PushKeyGenerator:
    """Chronologically sortable child keys.

    Eight characters of millisecond timestamp followed by twelve random
    characters; keys generated within the same millisecond increment the
    random part so ordering still follows creation order.
    """

    def __init__(self, clock: Callable[[], int] = current_ts_ms, rng: Optional[random.Random] = None):
        self._clock = clock
        self._rng = rng or random.Random()
        self._last_ts = -1
        self._last_rand: List[int] = [0] * 12

    def next_key(self) -> str:
        now = self._clock()
        if now == self._last_ts:
            i = 11
            while i >= 0 and self._last_rand[i] == 63:
                self._last_rand[i] = 0
                i -= 1
            if i >= 0:
                self._last_rand[i] += 1
        else:
            self._last_rand = [self._rng.randrange(64) for _ in range(12)]
        self._last_ts = now

        ts_chars = []
        for _ in range(8):
            ts_chars.append(PUSH_CHARS[now % 64])
            now //= 64
        return "".join(reversed(ts_chars)) + "".join(PUSH_CHARS[n] for n in self._last_rand)


def ordered_children(node: Any) -> List[Tuple[str, Any]]:
    """Children of a collection node in key order.

    Generated keys sort in creation order, so this recovers insertion order.
    """
    if isinstance(node, dict):
        return sorted(node.items(), key=lambda kv: kv[0])
    if isinstance(node, list):
        return [(str(i), v) for i, v in enumerate(node) if v is not None]
    return []


def child_values(node: Any) -> List[Any]:
    """Values of a collection node in key order."""
    return [value for _, value in ordered_children(node)]


class RealtimeStore(ABC):
    """Client connection to a hierarchical realtime store."""

    @abstractmethod
    async def read(self, path: str) -> Any:
        """Read the value at path, or None when absent."""

    @abstractmethod
    async def write(self, path: str, value: Any) -> None:
        """Unconditionally replace the value at path."""

    @abstractmethod
    async def remove(self, path: str) -> None:
        """Delete the value at path; absent paths are not an error."""

    @abstractmethod
    async def append(self, path: str, value: Any) -> str:
        """Create a uniquely keyed child under path and return its key."""

    @abstractmethod
    async def subscribe(self, path: str, callback: ChangeCallback) -> Subscription:
        """Deliver the current value now and after every change to path."""

    @abstractmethod
    async def register_disconnect_cleanup(self, path: str) -> None:
        """Remove path automatically when this connection goes away."""

    @abstractmethod
    async def cancel_disconnect_cleanup(self, path: str) -> None:
        """Forget a cleanup registered for path."""

    @abstractmethod
    async def close(self) -> None:
        """Close the connection."""

    @abstractmethod
    async def _read_versioned(self, path: str) -> Tuple[Any, Any]:
        """Read value and an opaque version token."""

    @abstractmethod
    async def _write_if_unchanged(self, path: str, value: Any, version: Any) -> None:
        """Write value only if path still matches version.

        Raises:
            ConcurrencyConflict: another writer changed the path first
        """

    async def conditional_write(
        self,
        path: str,
        predicate: Predicate,
        compute: Compute,
    ) -> TransactionResult:
        """Atomically apply compute to the value at path if predicate holds.

        Optimistic loop: read a versioned snapshot, evaluate the predicate,
        compute the new value and write it only if the path is unchanged.
        A lost race re-reads and re-evaluates against the new value. There
        is no retry cap; cancel the calling task to abandon the write.

        Args:
            path: Store path
            predicate: Called with the current value; False aborts
            compute: Called with the current value; returns the new value

        Returns:
            TransactionResult with the committed (or current) value
        """
        attempts = 0
        while True:
            attempts += 1
            value, version = await self._read_versioned(path)
            if not predicate(value):
                return TransactionResult(committed=False, value=value, attempts=attempts)

            new_value = compute(value)
            try:
                await self._write_if_unchanged(path, new_value, version)
            except ConcurrencyConflict:
                logger.debug(f"Conditional write on {path} lost a race (attempt {attempts}), retrying")
                continue

            return TransactionResult(committed=True, value=new_value, attempts=attempts)
