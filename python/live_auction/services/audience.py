"""Audience records and moderation.

Each login appends one AudienceRecord under audience_data/{room}. Staff
(host or moderator) can mute, bid-ban and kick; those flags gate chat and
bidding but never touch presence records.
"""

import logging
import re
import secrets
import string
from typing import Callable, List, Optional

from ..errors import PermissionDeniedError, ValidationError
from ..models.types import (
    AudienceRecord,
    Participant,
    Restrictions,
    Role,
    current_ts_ms,
)
from ..room import Room, join_path
from ..storage.base import RealtimeStore, ordered_children

logger = logging.getLogger(__name__)


EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
PHONE_PATTERN = re.compile(r"^\d{10,}$")

TOGGLEABLE_RESTRICTIONS = ("isMuted", "isBidBanned")

USER_ID_ALPHABET = string.digits + string.ascii_uppercase


def generate_user_id(role: Role) -> str:
    """HOST for hosts, USER-XXXXXXXXX for everyone else."""
    if role == Role.HOST:
        return "HOST"
    return "USER-" + "".join(secrets.choice(USER_ID_ALPHABET) for _ in range(9))


class AudienceRegistry:
    """Login records and restriction flags for one room."""

    def __init__(
        self,
        store: RealtimeStore,
        room: Room,
        clock: Callable[[], int] = current_ts_ms,
    ):
        self.store = store
        self.room = room
        self.clock = clock

    async def register(self, email: str, phone: str, role: Role = Role.AUDIENCE) -> AudienceRecord:
        """Record a login and return the stored record.

        Raises:
            ValidationError: email or phone is malformed
        """
        email = (email or "").strip()
        phone = (phone or "").strip()
        if not EMAIL_PATTERN.match(email):
            raise ValidationError("Invalid email format")
        if not PHONE_PATTERN.match(phone):
            raise ValidationError("Invalid phone number (min 10 digits)")

        record = AudienceRecord(
            user_id=generate_user_id(role),
            phone=phone,
            email=email,
            role=role,
            joined_at=self.clock(),
        )
        record.key = await self.store.append(self.room.audience_path, record.to_dict())
        logger.info(f"[{self.room.room_id}] {record.role.value} {record.user_id} joined")
        return record

    async def get(self, key: str) -> Optional[AudienceRecord]:
        data = await self.store.read(self.room.audience_record_path(key))
        if not isinstance(data, dict):
            return None
        return AudienceRecord.from_dict(data, key=key)

    async def list_records(self) -> List[AudienceRecord]:
        """All records in join order."""
        node = await self.store.read(self.room.audience_path)
        return [
            AudienceRecord.from_dict(data, key=key)
            for key, data in ordered_children(node)
            if isinstance(data, dict)
        ]

    async def list_viewers(self) -> List[AudienceRecord]:
        """Records a moderator can act on (everyone but the host)."""
        return [r for r in await self.list_records() if r.role != Role.HOST]

    async def restrictions_for(self, participant: Participant) -> Restrictions:
        """Current restriction flags of a participant."""
        if not participant.audience_key:
            return Restrictions()
        data = await self.store.read(
            join_path(self.room.audience_record_path(participant.audience_key), "restrictions")
        )
        return Restrictions.from_dict(data)

    async def toggle_restriction(self, actor: Participant, key: str, flag: str) -> bool:
        """Flip isMuted or isBidBanned on a record; returns the new value.

        Raises:
            PermissionDeniedError: actor is not staff
            ValidationError: unknown flag
        """
        self._require_staff(actor)
        if flag not in TOGGLEABLE_RESTRICTIONS:
            raise ValidationError(f"Unknown restriction: {flag}")

        path = join_path(self.room.audience_record_path(key), "restrictions", flag)
        result = await self.store.conditional_write(path, lambda _: True, lambda current: not bool(current))
        logger.info(f"[{self.room.room_id}] {actor.user_id} set {flag}={result.value} on {key}")
        return bool(result.value)

    async def kick(self, actor: Participant, key: str) -> None:
        """Mark a record as kicked.

        Raises:
            PermissionDeniedError: actor is not staff
        """
        self._require_staff(actor)
        await self.store.write(
            join_path(self.room.audience_record_path(key), "restrictions", "isKicked"), True
        )
        logger.info(f"[{self.room.room_id}] {actor.user_id} kicked {key}")

    def _require_staff(self, actor: Participant) -> None:
        if not actor.is_staff:
            raise PermissionDeniedError(f"{actor.user_id} is not a host or moderator")
