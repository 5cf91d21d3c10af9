"""Tests for the LiveRoom client."""

import asyncio

from live_auction.errors import ConnectivityError
from live_auction.models.types import BidRejection, Role
from live_auction.orchestrator import LiveRoom
from live_auction.storage.base import child_values

SETTLE = 0.02


def make_room(database, participant, config, clock) -> LiveRoom:
    return LiveRoom(database.connect(), "ROOM1", participant, config=config, clock=clock)


class TestLifecycle:
    """Tests for entering and leaving a room."""

    def test_viewer_counted_while_inside(self, database, room, sample_config, clock, alice):
        client = make_room(database, alice, sample_config, clock)

        async def run():
            async with client:
                await asyncio.sleep(SETTLE)
                inside = client.view.viewer_count
                assert client.session_id is not None
            return inside

        assert asyncio.run(run()) == 1
        assert client.is_running is False
        assert client.session_id is None
        assert database.get(room.viewers_path) is None

    def test_host_not_counted(self, database, room, sample_config, clock, host):
        client = make_room(database, host, sample_config, clock)

        async def run():
            async with client:
                await asyncio.sleep(SETTLE)
                return client.view.viewer_count

        assert asyncio.run(run()) == 0

    def test_start_twice(self, database, room, sample_config, clock, alice):
        client = make_room(database, alice, sample_config, clock)

        async def run():
            await client.start()
            await client.start()
            await asyncio.sleep(SETTLE)
            count = client.view.viewer_count
            await client.stop()
            await client.stop()
            return count

        assert asyncio.run(run()) == 1

    def test_stop_after_store_error(self, database, room, sample_config, clock, alice):
        client = make_room(database, alice, sample_config, clock)

        async def unreachable():
            raise ConnectivityError("store unreachable")

        client.machine.read_state = unreachable

        async def run():
            await client.start()
            await asyncio.sleep(SETTLE)
            subscriptions = list(client._subscriptions)
            await client.stop()
            return subscriptions

        subscriptions = asyncio.run(run())
        assert [s.active for s in subscriptions] == [False, False, False]
        assert client.session_id is None
        assert database.get(room.viewers_path) is None

    def test_login_registers_audience(self, database, room, sample_config, clock):
        async def run():
            return await LiveRoom.login(
                database.connect(), "ROOM1", "v@example.com", "9876543210",
                config=sample_config, clock=clock,
            )

        client = asyncio.run(run())
        assert client.participant.user_id.startswith("USER-")
        assert client.participant.role == Role.AUDIENCE
        records = child_values(database.get(room.audience_path))
        assert records[0]["userId"] == client.participant.user_id


class TestLiveUpdates:
    """Tests for the subscribed room view."""

    def test_viewer_follows_round(self, database, room, sample_config, clock, host, alice, bob):
        host_client = make_room(database, host, sample_config, clock)
        alice_client = make_room(database, alice, sample_config, clock)
        bob_client = make_room(database, bob, sample_config, clock)
        views = []

        async def on_view(view):
            views.append((view.is_active, view.current_price))

        alice_client.on_view = on_view

        async def run():
            for client in (host_client, alice_client, bob_client):
                await client.start()
            await host_client.ledger.set_price(host, 100)
            await host_client.toggle_auction(30, item_name="Lamp")
            await asyncio.sleep(SETTLE)

            assert alice_client.view.is_active
            assert alice_client.view.item_name == "Lamp"
            assert alice_client.view.end_time == clock() + 30_000
            assert alice_client.view.viewer_count == 2
            assert alice_client.time_left == 30
            assert alice_client.suggested_bid() == 110

            result = await alice_client.place_bid()
            assert result.accepted
            await asyncio.sleep(SETTLE)
            assert bob_client.view.current_price == 110

            stale = await bob_client.place_bid(110)
            assert stale.reason == BidRejection.NOT_HIGHER

            record = await host_client.toggle_auction()
            await asyncio.sleep(SETTLE)
            closed = bob_client.view.is_active

            for client in (host_client, alice_client, bob_client):
                await client.stop()
            return record, closed

        record, closed = asyncio.run(run())
        assert record.winner == alice.user_id
        assert record.final_price == 110
        assert closed is False
        assert (True, 110) in views

    def test_toggle_on_idle_room_starts(self, database, room, sample_config, clock, host):
        client = make_room(database, host, sample_config, clock)

        async def run():
            assert await client.toggle_auction(10) is None
            return await client.machine.read_state()

        state = asyncio.run(run())
        assert state.is_active
        assert state.end_time == clock() + 10_000

    def test_host_client_closes_expired_round(self, database, room, sample_config, clock, host):
        client = make_room(database, host, sample_config, clock)

        async def run():
            async with client:
                await client.toggle_auction(5)
                clock.advance(6)
                await asyncio.sleep(0.1)
                return client.view.is_active

        assert asyncio.run(run()) is False
        assert len(child_values(database.get(room.history_path))) == 1

    def test_send_message(self, database, room, sample_config, clock, alice):
        client = make_room(database, alice, sample_config, clock)
        asyncio.run(client.send_message("hello"))
        assert child_values(database.get(room.chat_path))[0]["text"] == "hello"

    def test_stats(self, database, sample_config, clock, alice):
        client = make_room(database, alice, sample_config, clock)
        stats = client.get_stats()
        assert stats["room_id"] == "ROOM1"
        assert stats["role"] == "audience"
        assert stats["is_running"] is False
        assert stats["view"]["current_price"] == 0
