"""Viewer presence tracker.

One `true` marker per connected non-host viewer under rooms/{room}/viewers.
The marker is removed on leave(), or by the store when the connection that
created it goes away; the tracker never checks liveness itself.
"""

import logging
import secrets
import string
from typing import Awaitable, Callable, Dict, Optional

from ..config import Config
from ..models.types import EventType, Participant, current_ts_ms
from ..storage.base import RealtimeStore, Subscription
from ..room import Room

logger = logging.getLogger(__name__)

SESSION_ID_ALPHABET = string.digits + string.ascii_lowercase


def generate_session_id(length: int = 13) -> str:
    return "".join(secrets.choice(SESSION_ID_ALPHABET) for _ in range(length))


def count_viewers(node) -> int:
    """Number of presence markers in a viewers node."""
    return len(node) if isinstance(node, dict) else 0


class PresenceTracker:
    """Presence markers owned by one client connection.

    Args:
        store: The client's connection; disconnect cleanups are bound to it
        room: Room handle
        config: Presence settings
        clock: Millisecond clock
    """

    def __init__(
        self,
        store: RealtimeStore,
        room: Room,
        config: Config,
        clock: Callable[[], int] = current_ts_ms,
    ):
        self.store = store
        self.room = room
        self.config = config
        self.clock = clock
        # session_id -> (user_id, joined_at)
        self._sessions: Dict[str, tuple] = {}

    @property
    def sessions(self) -> list:
        return list(self._sessions)

    async def join(self, participant: Participant) -> Optional[str]:
        """Register a presence marker for a viewer.

        Returns:
            The new session id, or None for the host (hosts are not counted)
        """
        if participant.is_host:
            return None

        session_id = generate_session_id(self.config.presence.session_id_length)
        path = self.room.viewer_path(session_id)

        await self.store.write(path, True)
        await self.store.register_disconnect_cleanup(path)

        joined_at = self.clock()
        self._sessions[session_id] = (participant.user_id, joined_at)
        if self.config.presence.track_sessions:
            await self.store.append(self.room.analytics_path, {
                "eventType": EventType.SESSION_START,
                "user": participant.user_id,
                "timestamp": joined_at,
            })

        logger.debug(f"[{self.room.room_id}] Viewer {participant.user_id} joined as {session_id}")
        return session_id

    async def leave(self, session_id: Optional[str]) -> None:
        """Remove a presence marker this tracker created; other ids are a no-op."""
        if not session_id:
            return

        session = self._sessions.pop(session_id, None)
        if session is None:
            return

        path = self.room.viewer_path(session_id)
        await self.store.remove(path)
        await self.store.cancel_disconnect_cleanup(path)

        user_id, joined_at = session
        if self.config.presence.track_sessions:
            now = self.clock()
            await self.store.append(self.room.analytics_path, {
                "eventType": EventType.SESSION_END,
                "user": user_id,
                "duration": max(0, now - joined_at),
                "timestamp": now,
            })
        logger.debug(f"[{self.room.room_id}] Session {session_id} left")

    async def leave_all(self) -> None:
        for session_id in list(self._sessions):
            await self.leave(session_id)

    async def count(self) -> int:
        """Live viewer count."""
        return count_viewers(await self.store.read(self.room.viewers_path))

    async def watch_count(self, callback: Callable[[int], Awaitable[None]]) -> Subscription:
        """Deliver the viewer count now and after every change."""
        async def on_change(node) -> None:
            await callback(count_viewers(node))

        return await self.store.subscribe(self.room.viewers_path, on_change)
