"""Tests for room signal fan-out over the in-memory realtime backend."""

from __future__ import annotations

from collections.abc import AsyncIterator

import pytest

from roomchat.realtime import (
    EphemeralEvent,
    EphemeralEventType,
    InMemoryRealtime,
    room_channel,
)


class Collector:
    def __init__(self, fail_first: bool = False) -> None:
        self.seen: list[EphemeralEvent] = []
        self._fail_first = fail_first

    async def __call__(self, event: EphemeralEvent) -> None:
        self.seen.append(event)
        if self._fail_first and len(self.seen) == 1:
            raise RuntimeError("subscriber blew up")

    @property
    def users(self) -> list[str | None]:
        return [e.user_id for e in self.seen]


def _typing(room_id: str = "lobby", user_id: str = "alice", **extra: object) -> EphemeralEvent:
    return EphemeralEvent(
        room_id=room_id,
        type=EphemeralEventType.TYPING_START,
        user_id=user_id,
        **extra,  # type: ignore[arg-type]
    )


@pytest.fixture
async def realtime() -> AsyncIterator[InMemoryRealtime]:
    backend = InMemoryRealtime()
    yield backend
    await backend.close()


class TestEphemeralEvent:
    def test_fresh_event(self) -> None:
        event = _typing()
        assert event.id
        assert event.origin_connection_id is None
        assert event.payload == {}
        assert event.timestamp.tzinfo is not None

    def test_types_match_socket_event_names(self) -> None:
        assert EphemeralEventType.USER_JOINED_ROOM == "userJoinedRoom"
        assert EphemeralEventType.TYPING_STOP == "userStoppedTyping"


class TestRoomFanout:
    async def test_every_subscriber_sees_signal(self, realtime, advance) -> None:
        first, second = Collector(), Collector()
        await realtime.subscribe_to_room("lobby", first)
        await realtime.subscribe_to_room("lobby", second)

        await realtime.publish_to_room("lobby", _typing(user_id="bob"))
        await advance()

        assert first.users == ["bob"]
        assert second.users == ["bob"]

    async def test_other_rooms_stay_quiet(self, realtime, advance) -> None:
        lobby = Collector()
        await realtime.subscribe_to_room("lobby", lobby)

        await realtime.publish_to_room("kitchen", _typing("kitchen"))
        await advance()

        assert lobby.seen == []

    async def test_leaving_stops_delivery(self, realtime, advance) -> None:
        lobby = Collector()
        subscription = await realtime.subscribe_to_room("lobby", lobby)
        assert realtime.subscriber_count(room_channel("lobby")) == 1

        assert await realtime.unsubscribe(subscription)
        assert not await realtime.unsubscribe(subscription)
        assert realtime.subscriber_count(room_channel("lobby")) == 0

        await realtime.publish_to_room("lobby", _typing())
        await advance()
        assert lobby.seen == []

    async def test_failing_subscriber_keeps_receiving(self, realtime, advance) -> None:
        flaky = Collector(fail_first=True)
        await realtime.subscribe_to_room("lobby", flaky)

        await realtime.publish_to_room("lobby", _typing(user_id="bob"))
        await realtime.publish_to_room("lobby", _typing(user_id="carol"))
        await advance()

        assert flaky.users == ["bob", "carol"]


class TestBackpressure:
    async def test_lagging_subscriber_loses_oldest(self, advance) -> None:
        backend = InMemoryRealtime(max_queue_size=2)
        lagging = Collector()
        await backend.subscribe_to_room("lobby", lagging)

        for user in ("u1", "u2", "u3"):
            await backend.publish_to_room("lobby", _typing(user_id=user))
        await advance()

        assert lagging.users == ["u2", "u3"]
        await backend.close()

    async def test_publish_after_close_is_dropped(self) -> None:
        backend = InMemoryRealtime()
        await backend.subscribe_to_room("lobby", Collector())
        await backend.close()

        assert backend.subscription_count == 0
        await backend.publish_to_room("lobby", _typing())
