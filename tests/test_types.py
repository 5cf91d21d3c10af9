"""Tests for data types and models."""

import pytest
from live_auction.models.types import (
    NOBODY,
    AuctionPhase,
    AuctionState,
    AudienceRecord,
    AuctionHistoryRecord,
    AnalyticsWindow,
    BidderTotal,
    Participant,
    Restrictions,
    Role,
    RoundBidder,
    parse_amount,
    round_half_up,
    time_left_seconds,
    current_ts_ms,
)


class TestAuctionState:
    """Tests for AuctionState type."""

    def test_default_is_idle(self):
        state = AuctionState()
        assert state.phase == AuctionPhase.IDLE
        assert state.effective_end_time is None

    def test_from_missing_node(self):
        assert AuctionState.from_dict(None) == AuctionState()

    def test_end_time_ignored_when_inactive(self):
        state = AuctionState.from_dict({"isActive": False, "endTime": 5000})
        assert state.effective_end_time is None
        assert state.is_expired(10_000) is False

    def test_active_expiry(self):
        state = AuctionState(is_active=True, end_time=5000)
        assert state.phase == AuctionPhase.ACTIVE
        assert state.is_expired(4999) is False
        assert state.is_expired(5000) is True

    def test_to_dict_wire_names(self):
        state = AuctionState(is_active=True, end_time=42, item_name="Lamp")
        assert state.to_dict() == {"isActive": True, "endTime": 42, "itemName": "Lamp"}
        assert AuctionState(is_active=False, end_time=0).to_dict() == {"isActive": False, "endTime": 0}


class TestRoles:
    """Tests for roles and participants."""

    def test_staff(self):
        assert Role.HOST.is_staff
        assert Role.MODERATOR.is_staff
        assert not Role.AUDIENCE.is_staff

    def test_parse_unknown_role(self):
        assert Role.parse("superuser") == Role.AUDIENCE
        assert Role.parse("moderator") == Role.MODERATOR

    def test_participant_from_record(self):
        record = AudienceRecord.from_dict(
            {"userId": "USER-1", "phone": 9999999999, "email": "a@b.co", "role": "moderator",
             "joinedAt": 1000},
            key="-K1",
        )
        participant = Participant.from_record(record)
        assert participant.user_id == "USER-1"
        assert participant.is_staff and not participant.is_host
        assert participant.audience_key == "-K1"
        assert record.phone == "9999999999"


class TestRestrictions:
    """Tests for moderation flags."""

    def test_defaults_allow_everything(self):
        r = Restrictions()
        assert r.can_bid and r.can_chat

    def test_bid_ban(self):
        r = Restrictions.from_dict({"isBidBanned": True})
        assert not r.can_bid
        assert r.can_chat

    def test_kick_blocks_everything(self):
        r = Restrictions(is_kicked=True)
        assert not r.can_bid
        assert not r.can_chat


class TestRecords:
    """Tests for bidder and history records."""

    def test_round_bidder_wire_names(self):
        bidder = RoundBidder(user="u", amount=300, last_bid=200)
        assert bidder.to_dict() == {"user": "u", "amount": 300, "lastBid": 200}
        assert RoundBidder.from_dict(bidder.to_dict()) == bidder

        tagged = RoundBidder(user="u", amount=300, last_bid=200, round_id="r1")
        assert tagged.to_dict()["round"] == "r1"
        assert RoundBidder.from_dict(tagged.to_dict()) == tagged

    def test_history_record_wire_names(self):
        record = AuctionHistoryRecord(
            item_name="Lamp",
            final_price=250,
            winner="alice",
            top_bidders=[BidderTotal("alice", 250)],
            timestamp=99,
        )
        assert record.to_dict() == {
            "itemName": "Lamp",
            "finalPrice": 250,
            "winner": "alice",
            "topBidders": [{"user": "alice", "amount": 250}],
            "timestamp": 99,
        }
        assert record.is_sold

    def test_history_without_winner_is_unsold(self):
        record = AuctionHistoryRecord.from_dict({"itemName": "Rug", "finalPrice": 10})
        assert record.winner == NOBODY
        assert not record.is_sold
        assert record.top_bidders == []

    def test_history_parses_string_amounts(self):
        record = AuctionHistoryRecord.from_dict({
            "finalPrice": "300",
            "topBidders": [{"user": "a", "amount": "120abc"}, {"user": "b", "amount": "x"}],
        })
        assert record.final_price == 300
        assert [b.amount for b in record.top_bidders] == [120, 0]


class TestHelpers:
    """Tests for numeric helpers."""

    @pytest.mark.parametrize("value,expected", [
        (None, 0), (True, 0), (7, 7), (7.9, 7), ("42", 42), (" 42px", 42), ("-5", -5), ("abc", 0),
        ("12²", 12), ("²", 0),
    ])
    def test_parse_amount(self, value, expected):
        assert parse_amount(value) == expected

    @pytest.mark.parametrize("value,expected", [
        (0.5, 1), (1.5, 2), (2.5, 3), (2.49, 2), (-0.5, -1), (0, 0),
    ])
    def test_round_half_up(self, value, expected):
        assert round_half_up(value) == expected

    def test_time_left_rounds_up(self):
        assert time_left_seconds(10_000, 0) == 10
        assert time_left_seconds(10_000, 9_001) == 1
        assert time_left_seconds(10_000, 10_000) == 0
        assert time_left_seconds(10_000, 20_000) == 0

    def test_window_contains_is_closed(self):
        window = AnalyticsWindow(100, 200)
        assert window.contains(100)
        assert window.contains(200)
        assert not window.contains(201)
        assert not window.contains("150")
        assert window.duration_ms == 100

    def test_current_ts_ms(self):
        ts = current_ts_ms()
        assert ts > 1704067200000
