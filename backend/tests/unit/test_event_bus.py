"""
Tests for EventBus system.

Subscribers (notifications) must receive the events they asked for, and a
failing subscriber must never break the emitter (the update cycle).
"""

import pytest

from event_bus import Event, EventType


@pytest.mark.unit
def test_event_creation():
    """
    Test that events can be created with required fields.
    """
    event = Event(
        event_type=EventType.UPDATE_COMPLETED,
        scope_type='container',
        scope_id='a1b2c3d4e5f6',
        scope_name='web',
        data={'new_container_id': 'e' * 64}
    )

    assert event.event_type == EventType.UPDATE_COMPLETED
    assert event.timestamp.tzinfo is not None

    data = event.to_dict()
    assert data['event_type'] == 'update_completed'
    assert data['scope_name'] == 'web'
    assert data['data'] == {'new_container_id': 'e' * 64}


@pytest.mark.unit
def test_event_data_defaults_to_empty():
    event = Event(EventType.CYCLE_STARTED, 'system', 'scheduler', 'scheduler')

    assert event.data == {}


@pytest.mark.unit
@pytest.mark.asyncio
async def test_subscribers_receive_their_event_type(event_bus):
    received = []

    async def handler(event):
        received.append(event.event_type)

    event_bus.subscribe(EventType.UPDATE_NOTIFICATION, handler)

    await event_bus.emit(Event(EventType.UPDATE_NOTIFICATION, 'container', 'a1b2', 'web'))
    await event_bus.emit(Event(EventType.UPDATE_COMPLETED, 'container', 'a1b2', 'web'))

    assert received == [EventType.UPDATE_NOTIFICATION]


@pytest.mark.unit
@pytest.mark.asyncio
async def test_failing_subscriber_is_isolated(event_bus):
    """
    Test that one subscriber raising does not stop the others or the emitter.
    """
    received = []

    async def broken(event):
        raise RuntimeError("smtp down")

    async def healthy(event):
        received.append(event.scope_name)

    event_bus.subscribe(EventType.CONTAINER_LOST, broken)
    event_bus.subscribe(EventType.CONTAINER_LOST, healthy)

    await event_bus.emit(Event(EventType.CONTAINER_LOST, 'container', 'a1b2', 'web'))

    assert received == ['web']


@pytest.mark.unit
@pytest.mark.asyncio
async def test_unsubscribe(event_bus):
    received = []

    async def handler(event):
        received.append(event)

    event_bus.subscribe(EventType.RELEASE_FAILED, handler)
    event_bus.unsubscribe(EventType.RELEASE_FAILED, handler)

    await event_bus.emit(Event(EventType.RELEASE_FAILED, 'release', '', 'containerpulse'))

    assert received == []
    assert event_bus.subscribers == {}
