"""
Unit tests for UpdateLoop.

Tests verify:
- Containers are processed in inventory order and one failure never stops the rest
- The inventory is rebuilt after recreations
- A scheduled self-update ends the loop
- Run-now cuts the sleep short without queueing extra cycles
"""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from event_bus import EventType
from inventory.models import ContainerRecord, InventorySnapshot
from scheduler.update_loop import UpdateLoop
from updates.types import RecreationResult, UpdateAction, UpdateResult, UpdateStatus


class RecordingBus:
    def __init__(self):
        self.events = []

    async def emit(self, event):
        self.events.append(event)


@pytest.fixture
def snapshot(make_inspect, ids):
    return InventorySnapshot(records=(
        ContainerRecord.from_inspect(make_inspect(name='db', container_id=ids.db, image='postgres:16')),
        ContainerRecord.from_inspect(make_inspect()),
    ))


@pytest.fixture
def parts(snapshot, ids):
    builder = MagicMock()
    builder.build = AsyncMock(return_value=snapshot)
    checker = MagicMock()
    checker.check_all = AsyncMock(return_value={
        'db': UpdateStatus('db', ids.old_image, ids.old_image),
        'web': UpdateStatus('web', ids.old_image, ids.new_image, update_available=True),
    })
    executor = MagicMock()
    executor.process = AsyncMock(side_effect=lambda record, status: UpdateResult(record.name, UpdateAction.NONE))
    executor.check_self = AsyncMock(return_value=None)
    return builder, checker, executor


@pytest.fixture
def bus():
    return RecordingBus()


@pytest.mark.unit
class TestRunCycle:

    @pytest.mark.asyncio
    async def test_processes_in_inventory_order(self, parts, bus):
        builder, checker, executor = parts
        loop = UpdateLoop(builder, checker, executor, event_bus=bus)

        results = await loop.run_cycle()

        assert [c.args[0].name for c in executor.process.await_args_list] == ['db', 'web']
        assert list(results) == ['db', 'web']
        assert builder.build.await_count == 1
        assert loop.last_cycle_at is not None
        assert loop.cycle_running is False
        assert [e.event_type for e in bus.events] == [EventType.CYCLE_STARTED, EventType.CYCLE_COMPLETED]

    @pytest.mark.asyncio
    async def test_one_failure_does_not_stop_the_rest(self, parts, bus):
        builder, checker, executor = parts

        async def process(record, status):
            if record.name == 'db':
                raise RuntimeError("engine went away")
            return UpdateResult(record.name, UpdateAction.NONE)

        executor.process.side_effect = process
        loop = UpdateLoop(builder, checker, executor, event_bus=bus)

        results = await loop.run_cycle()

        assert results['db'].action == UpdateAction.FAILED
        assert 'engine went away' in results['db'].message
        assert results['web'].action == UpdateAction.NONE

    @pytest.mark.asyncio
    async def test_reinventory_after_recreation(self, parts, bus):
        builder, checker, executor = parts

        async def process(record, status):
            if record.name == 'web':
                return UpdateResult('web', UpdateAction.RECREATED,
                                    recreation=RecreationResult.success_result('web', 'e' * 64))
            return UpdateResult(record.name, UpdateAction.NONE)

        executor.process.side_effect = process
        loop = UpdateLoop(builder, checker, executor, event_bus=bus)

        await loop.run_cycle()

        assert builder.build.await_count == 2

    @pytest.mark.asyncio
    async def test_self_update_stops_loop(self, parts, bus):
        builder, checker, executor = parts
        executor.check_self.return_value = UpdateResult('containerpulse', UpdateAction.SELF_UPDATE_SCHEDULED)
        loop = UpdateLoop(builder, checker, executor, event_bus=bus)

        results = await loop.run_cycle()

        assert results['containerpulse'].action == UpdateAction.SELF_UPDATE_SCHEDULED
        assert loop.stopping is True
        assert bus.events[-1].event_type == EventType.CYCLE_STARTED

    @pytest.mark.asyncio
    async def test_self_check_failure_still_completes_cycle(self, parts, bus):
        builder, checker, executor = parts

        async def process(record, status):
            if record.name == 'web':
                return UpdateResult('web', UpdateAction.RECREATED,
                                    recreation=RecreationResult.success_result('web', 'e' * 64))
            return UpdateResult(record.name, UpdateAction.NONE)

        executor.process.side_effect = process
        executor.check_self.side_effect = OSError("read-only file system")
        loop = UpdateLoop(builder, checker, executor, event_bus=bus)

        results = await loop.run_cycle()

        assert list(results) == ['db', 'web']
        assert builder.build.await_count == 2
        assert loop.last_cycle_at is not None
        assert loop.stopping is False
        assert bus.events[-1].event_type == EventType.CYCLE_COMPLETED

    @pytest.mark.asyncio
    async def test_statuses_are_replaced_each_cycle(self, parts, bus, ids):
        builder, checker, executor = parts
        loop = UpdateLoop(builder, checker, executor, event_bus=bus)
        loop.statuses = {'gone': UpdateStatus('gone', ids.old_image)}

        await loop.run_cycle()

        assert set(loop.statuses) == {'db', 'web'}


@pytest.mark.unit
class TestRunForever:

    @pytest.mark.asyncio
    async def test_wake_interrupts_sleep(self, parts, bus):
        builder, checker, executor = parts
        loop = UpdateLoop(builder, checker, executor, interval=3600, event_bus=bus)
        cycles = []

        async def run_cycle():
            cycles.append(1)
            if len(cycles) == 2:
                loop.stop()
            return {}

        loop.run_cycle = run_cycle
        task = asyncio.create_task(loop.run_forever())
        for _ in range(5):
            await asyncio.sleep(0)
        assert len(cycles) == 1

        loop.wake()
        await asyncio.wait_for(task, timeout=1)

        assert len(cycles) == 2

    @pytest.mark.asyncio
    async def test_failed_cycle_keeps_looping(self, parts, bus):
        builder, checker, executor = parts
        loop = UpdateLoop(builder, checker, executor, interval=0, event_bus=bus)
        cycles = []

        async def run_cycle():
            cycles.append(1)
            if len(cycles) == 1:
                raise RuntimeError("inventory failed")
            loop.stop()
            return {}

        loop.run_cycle = run_cycle

        await asyncio.wait_for(loop.run_forever(), timeout=1)

        assert len(cycles) == 2

    @pytest.mark.asyncio
    async def test_signal_handler_unsupported(self, parts, bus):
        builder, checker, executor = parts
        loop = UpdateLoop(builder, checker, executor, event_bus=bus)
        event_loop = MagicMock()
        event_loop.add_signal_handler.side_effect = NotImplementedError()

        assert loop.install_signal_handler(event_loop) is False
