"""Room chat log.

An append-only list of entries; the only rules are the mute/kick checks on
participant messages.
"""

import logging
from typing import List, Optional

from ..config import Config
from ..errors import PermissionDeniedError, ValidationError
from ..models.types import ChatMessageType, Participant
from ..room import Room
from ..storage.base import RealtimeStore, child_values
from .audience import AudienceRegistry

logger = logging.getLogger(__name__)


class ChatLog:
    """Append-only chat log for one room."""

    def __init__(
        self,
        store: RealtimeStore,
        room: Room,
        config: Config,
        audience: Optional[AudienceRegistry] = None,
    ):
        self.store = store
        self.room = room
        self.config = config
        self.audience = audience or AudienceRegistry(store, room)

    async def post(self, participant: Participant, text: str) -> str:
        """Post a participant message.

        Raises:
            ValidationError: text is empty
            PermissionDeniedError: participant is muted or kicked
        """
        text = (text or "").strip()
        if not text:
            raise ValidationError("Chat message is empty")

        restrictions = await self.audience.restrictions_for(participant)
        if not restrictions.can_chat:
            raise PermissionDeniedError(f"{participant.user_id} may not chat")

        return await self.store.append(self.room.chat_path, {
            "user": "HOST" if participant.is_host else "User",
            "text": text,
            "isHost": participant.is_host,
            "type": ChatMessageType.MESSAGE,
        })

    async def announce(self, text: str) -> str:
        """Append a system announcement."""
        logger.debug(f"[{self.room.room_id}] {text}")
        return await self.store.append(self.room.chat_path, {
            "text": text,
            "type": ChatMessageType.BID,
        })

    async def recent(self, limit: Optional[int] = None) -> List[dict]:
        """Most recent entries, oldest first."""
        limit = limit or self.config.chat.history_limit
        entries = child_values(await self.store.read(self.room.chat_path))
        return entries[-limit:]
