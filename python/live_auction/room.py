"""Room-scoped store paths.

Every component receives a Room explicitly; there is no process-wide room state.
"""

from dataclasses import dataclass

from .errors import ValidationError

FORBIDDEN_KEY_CHARS = set(".#$[]/")

EVENT_CONFIG_PATH = "event_config"


def validate_key(key: str) -> str:
    """Check that a single path segment is usable as a store key."""
    if not isinstance(key, str) or not key:
        raise ValidationError(f"Invalid store key: {key!r}")
    if FORBIDDEN_KEY_CHARS & set(key):
        raise ValidationError(f"Store key contains forbidden characters: {key!r}")
    return key


def join_path(*segments: str) -> str:
    """Join validated segments into a store path."""
    parts = []
    for segment in segments:
        parts.extend(p for p in str(segment).split("/") if p)
    for part in parts:
        validate_key(part)
    return "/".join(parts)


@dataclass(frozen=True)
class Room:
    """Handle for one auction room."""
    room_id: str

    def __post_init__(self):
        validate_key(self.room_id)

    @property
    def base_path(self) -> str:
        return join_path("rooms", self.room_id)

    @property
    def price_path(self) -> str:
        return join_path(self.base_path, "bid")

    @property
    def auction_path(self) -> str:
        return join_path(self.base_path, "auction")

    @property
    def viewers_path(self) -> str:
        return join_path(self.base_path, "viewers")

    def viewer_path(self, session_id: str) -> str:
        return join_path(self.viewers_path, session_id)

    @property
    def round_bidders_path(self) -> str:
        return join_path(self.base_path, "roundBidders")

    def round_bidder_path(self, user_id: str) -> str:
        return join_path(self.round_bidders_path, user_id)

    @property
    def history_path(self) -> str:
        return join_path(self.base_path, "auctionHistory")

    @property
    def chat_path(self) -> str:
        return join_path(self.base_path, "chat")

    @property
    def metadata_path(self) -> str:
        return join_path(self.base_path, "metadata")

    @property
    def audience_path(self) -> str:
        return join_path("audience_data", self.room_id)

    def audience_record_path(self, key: str) -> str:
        return join_path(self.audience_path, key)

    @property
    def analytics_path(self) -> str:
        return join_path("analytics", self.room_id)
