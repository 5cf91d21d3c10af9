"""In-process realtime store.

MemoryDatabase holds one shared tree; every MemoryStore obtained from
connect() is an independent client connection with its own subscriptions
and disconnect cleanups. Mutations of a path happen without suspension
between the version check and the write, so each path is linearizable.
"""

import asyncio
import copy
import json
import logging
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

from ..errors import ConcurrencyConflict, ConnectivityError, NotFoundError
from ..models.types import current_ts_ms
from ..room import join_path
from .base import ChangeCallback, PushKeyGenerator, RealtimeStore, Subscription

logger = logging.getLogger(__name__)


def _split(path: str) -> List[str]:
    normalized = join_path(path) if path else ""
    return normalized.split("/") if normalized else []


def _related(a: List[str], b: List[str]) -> bool:
    """True if one path is an ancestor of (or equal to) the other."""
    n = min(len(a), len(b))
    return a[:n] == b[:n]


def _normalize(value: Any) -> Any:
    """Drop null children and empty objects, as the realtime database does."""
    if isinstance(value, dict):
        cleaned = {}
        for key, child in value.items():
            child = _normalize(child)
            if child is not None:
                cleaned[str(key)] = child
        return cleaned or None
    return value


class _Subscriber:
    """Ordered delivery queue for one subscription."""

    def __init__(self, path: str, callback: ChangeCallback, owner: "MemoryStore"):
        self.path = path
        self.segments = _split(path)
        self.callback = callback
        self.owner = owner
        self.queue: asyncio.Queue = asyncio.Queue()
        self._last: Any = object()

    def offer(self, value: Any) -> None:
        if value == self._last:
            return
        self._last = copy.deepcopy(value)
        self.queue.put_nowait(value)

    async def run(self) -> None:
        while True:
            value = await self.queue.get()
            try:
                await self.callback(value)
            except Exception:
                logger.exception(f"Subscriber callback for {self.path} failed")


class MemoryDatabase:
    """Shared in-memory tree backing any number of client connections.

    Args:
        initial: Optional initial tree (e.g. a database JSON export)
        latency_seconds: Delay applied before every store operation; any
            value (including 0) yields to other tasks, which lets
            concurrent writers interleave
        clock: Millisecond clock used for generated keys
    """

    def __init__(
        self,
        initial: Optional[dict] = None,
        latency_seconds: float = 0.0,
        clock: Callable[[], int] = current_ts_ms,
    ):
        self._root: dict = _normalize(copy.deepcopy(initial or {})) or {}
        self._subscribers: List[_Subscriber] = []
        self._keys = PushKeyGenerator(clock)
        self.latency_seconds = latency_seconds

    @classmethod
    def from_json_file(cls, path: str, **kwargs) -> "MemoryDatabase":
        """Load a database JSON export."""
        file_path = Path(path)
        if not file_path.exists():
            raise NotFoundError(f"Snapshot file not found: {path}")
        with open(file_path, "r", encoding="utf-8") as f:
            data = json.load(f)
        return cls(initial=data if isinstance(data, dict) else {}, **kwargs)

    def to_json_file(self, path: str) -> None:
        """Write the whole tree as a JSON export."""
        file_path = Path(path)
        file_path.parent.mkdir(parents=True, exist_ok=True)
        with open(file_path, "w", encoding="utf-8") as f:
            json.dump(self._root, f, indent=2, sort_keys=True, ensure_ascii=False)

    def connect(self) -> "MemoryStore":
        """Open a new client connection."""
        return MemoryStore(self)

    # -------------------------------------------------------------------------
    # Synchronous tree access
    # -------------------------------------------------------------------------

    def get(self, path: str) -> Any:
        """Copy of the value at path, or None."""
        node: Any = self._root
        for segment in _split(path):
            if not isinstance(node, dict) or segment not in node:
                return None
            node = node[segment]
        return copy.deepcopy(node) if node != {} else None

    def set(self, path: str, value: Any) -> None:
        """Replace the value at path (None deletes) and notify subscribers."""
        segments = _split(path)
        value = _normalize(copy.deepcopy(value))

        if not segments:
            self._root = value if isinstance(value, dict) else {}
        elif value is None:
            self._delete(segments)
        else:
            node = self._root
            for segment in segments[:-1]:
                child = node.get(segment)
                if not isinstance(child, dict):
                    child = {}
                    node[segment] = child
                node = child
            node[segments[-1]] = value

        self._notify(segments)

    def next_key(self) -> str:
        return self._keys.next_key()

    def snapshot(self) -> dict:
        return copy.deepcopy(self._root)

    def _delete(self, segments: List[str]) -> None:
        trail = []
        node: Any = self._root
        for segment in segments[:-1]:
            if not isinstance(node, dict) or segment not in node:
                return
            trail.append((node, segment))
            node = node[segment]
        if isinstance(node, dict):
            node.pop(segments[-1], None)
        # Prune ancestors left empty
        for parent, segment in reversed(trail):
            if parent[segment] == {}:
                del parent[segment]
            else:
                break

    def _notify(self, segments: List[str]) -> None:
        for sub in list(self._subscribers):
            if _related(sub.segments, segments):
                sub.offer(self.get(sub.path))

    def _add_subscriber(self, sub: _Subscriber) -> None:
        self._subscribers.append(sub)

    def _remove_subscriber(self, sub: _Subscriber) -> None:
        if sub in self._subscribers:
            self._subscribers.remove(sub)

    async def delay(self) -> None:
        await asyncio.sleep(self.latency_seconds)


class MemoryStore(RealtimeStore):
    """One client connection to a MemoryDatabase."""

    def __init__(self, database: MemoryDatabase):
        self.database = database
        self._connected = True
        self._cleanup_paths: List[str] = []
        self._subscriptions: List[Subscription] = []

    @property
    def connected(self) -> bool:
        return self._connected

    def _check_connected(self) -> None:
        if not self._connected:
            raise ConnectivityError("Store connection is closed")

    async def read(self, path: str) -> Any:
        self._check_connected()
        await self.database.delay()
        return self.database.get(path)

    async def write(self, path: str, value: Any) -> None:
        self._check_connected()
        await self.database.delay()
        self.database.set(path, value)

    async def remove(self, path: str) -> None:
        await self.write(path, None)

    async def append(self, path: str, value: Any) -> str:
        self._check_connected()
        await self.database.delay()
        key = self.database.next_key()
        self.database.set(join_path(path, key), value)
        return key

    async def subscribe(self, path: str, callback: ChangeCallback) -> Subscription:
        self._check_connected()
        sub = _Subscriber(path, callback, self)
        sub.offer(self.database.get(path))
        self.database._add_subscriber(sub)
        task = asyncio.create_task(sub.run())
        subscription = Subscription(path, task, on_cancel=lambda: self.database._remove_subscriber(sub))
        self._subscriptions.append(subscription)
        return subscription

    async def register_disconnect_cleanup(self, path: str) -> None:
        self._check_connected()
        self._cleanup_paths.append(join_path(path))

    async def cancel_disconnect_cleanup(self, path: str) -> None:
        """Forget a cleanup registered for path."""
        normalized = join_path(path)
        self._cleanup_paths = [p for p in self._cleanup_paths if p != normalized]

    async def _read_versioned(self, path: str) -> Tuple[Any, Any]:
        self._check_connected()
        await self.database.delay()
        value = self.database.get(path)
        return value, copy.deepcopy(value)

    async def _write_if_unchanged(self, path: str, value: Any, version: Any) -> None:
        self._check_connected()
        await self.database.delay()
        # No suspension between the check and the write
        if self.database.get(path) != version:
            raise ConcurrencyConflict(f"{path} changed since it was read")
        self.database.set(path, value)

    async def disconnect(self) -> None:
        """Drop the connection, running every registered cleanup."""
        if not self._connected:
            return
        self._connected = False

        for path in self._cleanup_paths:
            self.database.set(path, None)
        if self._cleanup_paths:
            logger.debug(f"Disconnect cleanup removed {len(self._cleanup_paths)} path(s)")
        self._cleanup_paths = []

        for subscription in self._subscriptions:
            await subscription.cancel()
        self._subscriptions = []

    async def close(self) -> None:
        await self.disconnect()
