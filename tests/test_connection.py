"""Tests for connection tracking and message routing."""

import json
import logging

import pytest

from extreload.domain import InboundKind, ReloaderOptions, ThrottleDecision
from extreload.events import Event, EventBus, EventType
from extreload.reload import ConnectionManager, ReloadThrottle


def reloaded(name: str = "Test Extension") -> str:
    return json.dumps({"type": "RELOADED", "payload": name})


@pytest.fixture
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture
def manager(clock, event_bus) -> ConnectionManager:
    throttle = ReloadThrottle(clock=clock, sleep=clock.sleep)
    return ConnectionManager(ReloaderOptions(), throttle=throttle, event_bus=event_bus)


@pytest.fixture
def published(event_bus) -> list[Event]:
    events: list[Event] = []
    event_bus.add_callback(events.append)
    return events


class TestMessageClassification:
    """Handshake versus acknowledgment."""

    async def test_first_message_is_handshake(self, manager, channel_factory):
        await manager.on_connection_opened(channel_factory())

        kind = await manager.on_message(reloaded())

        assert kind == InboundKind.ANNOUNCE
        assert manager.extension_name == "Test Extension"
        assert manager.connection.peer_name == "Test Extension"
        assert manager.throttle.state.reload_count == 0

    async def test_later_messages_are_acknowledgments(self, manager, channel_factory, clock):
        await manager.on_connection_opened(channel_factory())
        await manager.on_message(reloaded())

        kinds = [await manager.on_message(reloaded()) for _ in range(3)]

        assert kinds == [InboundKind.ACKNOWLEDGED] * 3
        assert manager.throttle.state.reload_count == 3
        assert manager.throttle.state.last_reload_at == clock.now

    async def test_classification_survives_connection_replacement(
        self, manager, channel_factory
    ):
        """A restarted extension's greeting on a new connection is an acknowledgment."""
        first = channel_factory()
        second = channel_factory()
        await manager.on_connection_opened(first)
        await manager.on_message(reloaded())

        await manager.on_connection_opened(second)
        kind = await manager.on_message(reloaded())

        assert kind == InboundKind.ACKNOWLEDGED
        assert manager.connection.channel is second
        assert manager.throttle.state.reload_count == 1

    @pytest.mark.parametrize(
        "raw",
        [
            "not json",
            '{"type": "PING", "payload": "x"}',
            '{"type": "RELOADED"}',
            '["RELOADED", "x"]',
            "",
        ],
    )
    async def test_malformed_messages_are_ignored(self, manager, channel_factory, raw):
        await manager.on_connection_opened(channel_factory())

        assert await manager.on_message(raw) is None
        assert manager.has_seen_first_contact is False
        assert await manager.on_message(reloaded()) == InboundKind.ANNOUNCE

    async def test_log_messages(self, manager, channel_factory, caplog):
        caplog.set_level(logging.INFO, logger="extreload.reload.connection")
        await manager.on_connection_opened(channel_factory())

        await manager.on_message(reloaded("My Extension"))
        await manager.on_message(reloaded("My Extension"))

        assert "My Extension will reload on change" in caplog.text
        assert "My Extension was reloaded" in caplog.text


class TestConnectionLifecycle:
    """Connection replacement and trigger binding."""

    async def test_new_connection_replaces_previous(self, manager, channel_factory):
        first = await manager.on_connection_opened(channel_factory())
        await manager.on_message(reloaded())

        second = await manager.on_connection_opened(channel_factory())

        assert manager.connection is second
        assert second is not first
        assert second.peer_name is None

    async def test_build_trigger_bound_once(self, manager, event_bus, channel_factory):
        assert event_bus.callback_count == 0

        await manager.on_connection_opened(channel_factory())
        await manager.on_connection_opened(channel_factory())

        assert event_bus.callback_count == 1

    async def test_build_before_first_connection_does_nothing(self, manager, event_bus):
        await event_bus.emit(EventType.BUILD_COMPLETED)

        assert manager.connection is None
        assert event_bus.callback_count == 0

    async def test_build_completed_sends_reload(self, manager, event_bus, channel_factory):
        channel = channel_factory()
        await manager.on_connection_opened(channel)

        await event_bus.emit(EventType.BUILD_COMPLETED)

        assert channel.sent == ["RELOAD_ALL"]

    async def test_extension_only_command(self, clock, channel_factory):
        throttle = ReloadThrottle(clock=clock, sleep=clock.sleep)
        manager = ConnectionManager(ReloaderOptions(reloadFullPage=False), throttle=throttle)
        channel = channel_factory()
        await manager.on_connection_opened(channel)

        await manager.request_reload()

        assert channel.sent == ["RELOAD_EXTENSION"]

    async def test_closed_connection_stays_tracked(self, manager, channel_factory, published):
        channel = channel_factory()
        connection = await manager.on_connection_opened(channel)

        channel.is_open = False
        await manager.on_connection_closed(connection)

        assert manager.connection is connection
        assert await manager.request_reload() == ThrottleDecision.STALE_CONNECTION
        assert EventType.CONNECTION_CLOSED in [e.type for e in published]


class TestRequestReload:
    """Decisions surfaced as events."""

    async def test_no_connection(self, manager, published):
        for _ in range(3):
            assert await manager.request_reload() == ThrottleDecision.NO_CONNECTION

        dropped = [e for e in published if e.type == EventType.RELOAD_DROPPED]
        assert len(dropped) == 3
        assert dropped[0].data["reason"] == "no_connection"

    async def test_sent_event(self, manager, channel_factory, published):
        await manager.on_connection_opened(channel_factory())

        await manager.request_reload()

        sent = [e for e in published if e.type == EventType.RELOAD_SENT]
        assert sent[0].data["command"] == "RELOAD_ALL"

    def test_snapshot_without_connection(self, manager):
        snapshot = manager.snapshot()

        assert snapshot["connected"] is False
        assert snapshot["extension_name"] is None
        assert snapshot["command"] == "RELOAD_ALL"
        assert snapshot["throttle"]["reload_count"] == 0


class TestReloadCycles:
    """Trigger -> send -> acknowledge, end to end through the manager."""

    async def test_five_cycles_then_backoff_then_retry(
        self, manager, channel_factory, clock, published, caplog
    ):
        caplog.set_level(logging.INFO, logger="extreload.reload.throttle")
        channel = channel_factory()
        await manager.on_connection_opened(channel)
        await manager.on_message(reloaded())

        for _ in range(5):
            assert await manager.request_reload() == ThrottleDecision.SENT
            clock.advance(0.5)
            assert await manager.on_message(reloaded()) == InboundKind.ACKNOWLEDGED

        assert channel.sent == ["RELOAD_ALL"] * 5

        assert await manager.request_reload() == ThrottleDecision.BACKOFF
        assert channel.sent == ["RELOAD_ALL"] * 5

        await manager.throttle.wait_for_backoff()

        steps = [r for r in caplog.records if r.getMessage().startswith("Reloading in")]
        assert len(steps) == 10
        assert channel.sent == ["RELOAD_ALL"] * 6
        assert manager.throttle.state.reload_count == 0
        assert manager.throttle.state.is_waiting is False
        assert EventType.BACKOFF_STARTED in [e.type for e in published]

    async def test_retry_uses_current_connection(self, manager, channel_factory, clock):
        """A connection replaced during backoff receives the retried command."""
        old = channel_factory()
        new = channel_factory()
        await manager.on_connection_opened(old)
        await manager.on_message(reloaded())
        for _ in range(5):
            await manager.request_reload()
            await manager.on_message(reloaded())

        await manager.request_reload()
        await manager.on_connection_opened(new)
        await manager.throttle.wait_for_backoff()

        assert len(old.sent) == 5
        assert new.sent == ["RELOAD_ALL"]
