"""Exception taxonomy for the live-auction core."""


class LiveAuctionError(Exception):
    """Base class for all live-auction errors."""


class ValidationError(LiveAuctionError):
    """Malformed numeric input, path or time window.

    Raised before any store write and never retried.
    """


class PermissionDeniedError(LiveAuctionError):
    """Actor lacks the role or carries a restriction that forbids the operation."""


class ConcurrencyConflict(LiveAuctionError):
    """A conditional write lost a race against another writer.

    Handled internally by the store's retry loop.
    """


class NotFoundError(LiveAuctionError):
    """A referenced room, inventory file or window source is absent."""


class ConnectivityError(LiveAuctionError):
    """The realtime store could not be reached."""
