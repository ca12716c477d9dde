"""Tests for event infrastructure."""

import asyncio
import logging
from datetime import UTC, datetime

import pytest

from src.errors import ValidationError
from src.events import (
    ActionCreated,
    ConsentGranted,
    DecisionFinalized,
    EventBus,
    EventKind,
    parse_event,
)
from src.models.action_item import ActionItem
from src.models.consent import ConsentProfile
from src.models.decision import DecisionCard
from src.policy.engine import build_consent


def _action_event(meeting_id: str = "m-1") -> ActionCreated:
    action = ActionItem(meeting_id=meeting_id, title="Send minutes", owner="a@example.com")
    return ActionCreated(meeting_id=meeting_id, action=action)


class TestEventTypes:
    """Tests for typed event definitions."""

    def test_kind_is_fixed_per_type(self) -> None:
        """Each event type carries its own kind."""
        decision = DecisionCard(meeting_id="m-1", headline="Ship it", owner="b@example.com")
        assert _action_event().kind == EventKind.ACTION_CREATED
        assert DecisionFinalized(meeting_id="m-1", decision=decision).kind == (
            EventKind.DECISION_FINALIZED
        )

    def test_is_immutable(self) -> None:
        """Events are frozen (immutable)."""
        event = _action_event()
        with pytest.raises(Exception):  # ValidationError for frozen model
            event.meeting_id = "other"  # type: ignore[misc]

    def test_requires_meeting_id(self) -> None:
        with pytest.raises(Exception):
            ActionCreated(
                meeting_id="",
                action=ActionItem(meeting_id="m-1", title="x", owner="a"),
            )

    def test_consent_payload_is_json_compatible(self) -> None:
        consent = build_consent("m-1", ConsentProfile.BAS, datetime.now(UTC))
        event = ConsentGranted(meeting_id="m-1", consent=consent)

        payload = event.payload
        assert payload["profile"] == "bas"
        assert sorted(payload["scope"]) == ["audio", "chat"]

    def test_parse_event_builds_typed_event(self) -> None:
        raw = {
            "kind": "action.created",
            "meeting_id": "m-1",
            "action": {"meeting_id": "m-1", "title": "Book room", "owner": "c@example.com"},
        }
        event = parse_event(raw)
        assert isinstance(event, ActionCreated)
        assert event.action.title == "Book room"

    def test_parse_event_rejects_unknown_kind(self) -> None:
        with pytest.raises(ValidationError):
            parse_event({"kind": "meeting.exploded", "meeting_id": "m-1"})

    def test_parse_event_rejects_payload_for_wrong_kind(self) -> None:
        with pytest.raises(ValidationError):
            parse_event({"kind": "decision.finalized", "meeting_id": "m-1", "action": {}})


class TestEventBus:
    """Tests for EventBus."""

    async def test_subscribe_and_publish(self) -> None:
        """Event bus delivers events to subscribers."""
        bus = EventBus()
        received: list[ActionCreated] = []

        async def handler(event: ActionCreated) -> None:
            received.append(event)

        bus.subscribe(EventKind.ACTION_CREATED, handler)
        event = _action_event()
        await bus.publish(event)
        await bus.drain()

        assert received == [event]

    async def test_only_matching_kind_is_delivered(self) -> None:
        bus = EventBus()
        received = []
        bus.subscribe(EventKind.DECISION_FINALIZED, received.append)

        await bus.publish(_action_event())

        assert received == []

    async def test_handlers_invoked_in_registration_order(self) -> None:
        bus = EventBus()
        order: list[str] = []

        async def first(event: ActionCreated) -> None:
            order.append("first")

        async def second(event: ActionCreated) -> None:
            order.append("second")

        async def third(event: ActionCreated) -> None:
            order.append("third")

        bus.subscribe(EventKind.ACTION_CREATED, first)
        bus.subscribe(EventKind.ACTION_CREATED, second)
        bus.subscribe(EventKind.ACTION_CREATED, third)
        await bus.publish(_action_event())
        await bus.drain()

        assert order == ["first", "second", "third"]

    async def test_publish_does_not_wait_for_handlers(self) -> None:
        """Publish returns while a slow handler is still running."""
        bus = EventBus()
        release = asyncio.Event()
        finished: list[bool] = []

        async def slow(event: ActionCreated) -> None:
            await release.wait()
            finished.append(True)

        bus.subscribe(EventKind.ACTION_CREATED, slow)
        await bus.publish(_action_event())
        assert finished == []

        release.set()
        await bus.drain()
        assert finished == [True]

    async def test_handler_error_isolation(self) -> None:
        """One failing handler doesn't affect others."""
        bus = EventBus()
        received: list[ActionCreated] = []

        def failing_sync(event: ActionCreated) -> None:
            raise RuntimeError("sync failure")

        async def failing_async(event: ActionCreated) -> None:
            raise RuntimeError("async failure")

        async def succeeding(event: ActionCreated) -> None:
            received.append(event)

        bus.subscribe(EventKind.ACTION_CREATED, failing_sync)
        bus.subscribe(EventKind.ACTION_CREATED, failing_async)
        bus.subscribe(EventKind.ACTION_CREATED, succeeding)

        await bus.publish(_action_event())
        await bus.drain()

        assert len(received) == 1

    async def test_handler_errors_logged_with_traceback(self, caplog) -> None:
        bus = EventBus()

        def failing_sync(event: ActionCreated) -> None:
            raise RuntimeError("sync failure")

        async def failing_async(event: ActionCreated) -> None:
            raise ValueError("async failure")

        bus.subscribe(EventKind.ACTION_CREATED, failing_sync)
        bus.subscribe(EventKind.ACTION_CREATED, failing_async)

        with caplog.at_level(logging.ERROR, logger="src.events.bus"):
            await bus.publish(_action_event())
            await bus.drain()

        records = [r for r in caplog.records if r.name == "src.events.bus"]
        assert [type(r.exc_info[1]) for r in records] == [RuntimeError, ValueError]
        assert all(r.exc_info[2] is not None for r in records)

    async def test_unsubscribe(self) -> None:
        bus = EventBus()
        received = []
        bus.subscribe(EventKind.ACTION_CREATED, received.append)
        bus.unsubscribe(EventKind.ACTION_CREATED, received.append)
        # Removing twice is harmless
        bus.unsubscribe(EventKind.ACTION_CREATED, received.append)

        await bus.publish(_action_event())

        assert received == []
        assert bus.subscriber_count(EventKind.ACTION_CREATED) == 0

    async def test_publish_without_subscribers(self) -> None:
        bus = EventBus()
        await bus.publish(_action_event())
        await bus.drain()
