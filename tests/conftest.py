"""Pytest configuration and fixtures."""

import sys
from pathlib import Path

import pytest

# Add the python package to the path
PACKAGE_DIR = Path(__file__).parent.parent / "python"
sys.path.insert(0, str(PACKAGE_DIR))

from live_auction.config import Config
from live_auction.models.types import Participant, Role
from live_auction.room import Room
from live_auction.storage.memory_store import MemoryDatabase


class FakeClock:
    """Settable millisecond clock."""

    def __init__(self, now_ms: int = 1704067200000):  # 2024-01-01 00:00:00 UTC
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += int(seconds * 1000)


@pytest.fixture
def sample_config() -> Config:
    """Create a sample configuration for testing."""
    config = Config()
    config.auction.countdown_interval_seconds = 0.01
    return config


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def database(clock) -> MemoryDatabase:
    """Empty in-memory database with a fake clock."""
    return MemoryDatabase(clock=clock)


@pytest.fixture
def room() -> Room:
    return Room("ROOM1")


@pytest.fixture
def host() -> Participant:
    return Participant(user_id="HOST", role=Role.HOST)


@pytest.fixture
def alice() -> Participant:
    return Participant(user_id="USER-ALICE0001")


@pytest.fixture
def bob() -> Participant:
    return Participant(user_id="USER-BOB000002")


@pytest.fixture
def scenario_inventory() -> dict:
    return {"Lamp": 100, "Chair": 400, "Rug": 0}


@pytest.fixture
def sample_room_export() -> dict:
    """Database export of one finished event in ROOM1.

    Window is the first ten minutes of 2024-01-01 UTC.
    """
    start = 1704067200000
    return {
        "rooms": {
            "ROOM1": {
                "bid": 250,
                "auction": {"isActive": False, "endTime": 0},
                "metadata": {"startTime": start, "endTime": start + 600_000},
                "auctionHistory": {
                    "-A001": {
                        "itemName": "Lamp",
                        "finalPrice": 250,
                        "winner": "USER-ALICE0001",
                        "topBidders": [
                            {"user": "USER-ALICE0001", "amount": 250},
                            {"user": "USER-BOB000002", "amount": 200},
                        ],
                        "timestamp": start + 120_000,
                    },
                    "-A002": {
                        "itemName": "Chair",
                        "finalPrice": 400,
                        "winner": "Nobody",
                        "topBidders": [],
                        "timestamp": start + 420_000,
                    },
                },
            },
        },
        "audience_data": {
            "ROOM1": {
                "-U001": {"userId": "HOST", "phone": "1111111111", "role": "host", "joinedAt": start},
                "-U002": {"userId": "USER-ALICE0001", "phone": "2222222222", "role": "audience",
                          "joinedAt": start + 10_000},
                "-U003": {"userId": "USER-BOB000002", "phone": "3333333333", "role": "audience",
                          "joinedAt": start + 310_000},
                "-U004": {"userId": "USER-ALICE0009", "phone": "2222222222", "role": "audience",
                          "joinedAt": start + 320_000},
                "-U005": {"userId": "TEST-QA", "phone": "4444444444", "role": "audience",
                          "joinedAt": start + 20_000},
            },
        },
        "analytics": {
            "ROOM1": {
                "-E001": {"eventType": "BID_PLACED", "user": "USER-BOB000002", "amount": 200,
                          "timestamp": start + 60_000},
                "-E002": {"eventType": "BID_PLACED", "user": "USER-ALICE0001", "amount": 250,
                          "timestamp": start + 90_000},
                "-E003": {"eventType": "BID_PLACED", "user": "TEST-QA", "amount": 300,
                          "timestamp": start + 100_000},
                "-E004": {"eventType": "BID_PLACED", "user": "USER-BOB000002", "amount": 300,
                          "timestamp": start + 400_000},
                "-E005": {"eventType": "SESSION_END", "user": "USER-BOB000002", "duration": 300_000,
                          "timestamp": start + 500_000},
                "-E006": {"eventType": "SESSION_END", "user": "USER-ALICE0001", "duration": 600_000,
                          "timestamp": start + 600_000},
            },
        },
    }
