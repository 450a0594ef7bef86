"""
Update Executor Service

Routes an update request for one container to the right path:

- no update available / cannot determine: nothing to do
- update-approach=notify: emit an UpdateNotification, never recreate
- the updater's own container: deferred self-update
- otherwise: in-process recreation

Scheduled cycles and manual/webhook triggers share one process; requests for
the same container are serialized with a per-container asyncio.Lock, and a
request that finds the container already replaced does nothing.
"""

import asyncio
import logging
from typing import Dict, Optional

from docker.errors import APIError, NotFound

from event_bus import Event, EventBus, EventType, get_event_bus
from inventory.builder import is_eligible
from inventory.models import ContainerRecord
from inventory.self_identity import SelfIdentity
from notifications import UpdateNotification
from updates.types import UpdateAction, UpdateResult, UpdateStatus
from utils.container_id import same_container

logger = logging.getLogger(__name__)

UPDATE_APPROACH_LABEL = 'update-approach'
NOTIFY_APPROACH = 'notify'
NOT_ELIGIBLE_MESSAGE = "Container is not labeled for auto-update"


def is_notify_only(record: ContainerRecord) -> bool:
    return record.label(UPDATE_APPROACH_LABEL) == NOTIFY_APPROACH


class UpdateExecutor:
    """
    Args:
        inspector: ContainerInspector
        checker: UpdateChecker
        recreator: RecreationExecutor
        self_update: SelfUpdateHandler
        identity: resolved SelfIdentity
        event_bus: EventBus (defaults to the global bus)
    """

    def __init__(self, inspector, checker, recreator, self_update, identity: SelfIdentity,
                 event_bus: Optional[EventBus] = None):
        self.inspector = inspector
        self.checker = checker
        self.recreator = recreator
        self.self_update = self_update
        self.identity = identity
        self.event_bus = event_bus or get_event_bus()
        self._locks: Dict[str, asyncio.Lock] = {}

    def _lock_for(self, name: str) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    def is_container_updating(self, name: str) -> bool:
        lock = self._locks.get(name)
        return lock is not None and lock.locked()

    async def process(self, record: ContainerRecord, status: UpdateStatus) -> UpdateResult:
        """
        Act on a status computed during the scheduled cycle.
        """
        async with self._lock_for(record.name):
            if status.update_available and not await self._still_current(record):
                logger.info(f"Container {record.name} was replaced since it was checked, skipping")
                return UpdateResult(record.name, UpdateAction.NONE, status=status,
                                    message="Container already replaced")
            return await self._route(record, status)

    async def update_by_name(self, name: str) -> UpdateResult:
        """
        Manual/webhook update: inspect the container now, check it, route it.

        Raises:
            docker.errors.NotFound: no container with that name
        """
        name = name.lstrip('/')
        async with self._lock_for(name):
            attrs = await self.inspector.inspect(name)
            record = ContainerRecord.from_inspect(attrs)

            if not is_eligible(record.labels):
                return UpdateResult(name, UpdateAction.SKIPPED, message=NOT_ELIGIBLE_MESSAGE)

            status = await self.checker.check(record)
            return await self._route(record, status)

    async def check_self(self) -> Optional[UpdateResult]:
        """
        Check the updater's own container (it is never in the inventory).

        Returns:
            UpdateResult, or None when not containerized or not opted in
        """
        if not self.identity.resolved:
            return None
        try:
            attrs = await self.inspector.inspect(self.identity.container_id)
        except (NotFound, APIError) as e:
            logger.warning(f"Could not inspect own container: {e}")
            return None

        record = ContainerRecord.from_inspect(attrs)
        if not is_eligible(record.labels):
            logger.debug("Own container is not labeled for auto-update")
            return None

        async with self._lock_for(record.name):
            status = await self.checker.check(record)
            return await self._route(record, status)

    async def _still_current(self, record: ContainerRecord) -> bool:
        try:
            attrs = await self.inspector.inspect(record.name)
        except NotFound:
            return False
        return same_container(attrs.get('Id', ''), record.id)

    async def _route(self, record: ContainerRecord, status: UpdateStatus) -> UpdateResult:
        if status.error:
            return UpdateResult(record.name, UpdateAction.SKIPPED, status=status, message=status.error)

        if not status.update_available:
            return UpdateResult(record.name, UpdateAction.NONE, status=status,
                                message="Locally built image" if status.locally_built else "Up to date")

        await self._emit(EventType.UPDATE_AVAILABLE, record, {
            'current_image_id': status.current_image_id,
            'latest_image_id': status.latest_image_id,
        })

        if is_notify_only(record):
            notification = UpdateNotification(
                container_name=record.name,
                current_image=record.image,
                candidate_image=record.image,
                current_image_id=status.current_image_id,
                candidate_image_id=status.latest_image_id,
            )
            logger.info(f"Container {record.name} has update-approach=notify. Sending notification instead of updating.")
            await self._emit(EventType.UPDATE_NOTIFICATION, record, notification.to_dict())
            return UpdateResult(record.name, UpdateAction.NOTIFIED, status=status)

        if self.identity.matches(record.id):
            scheduled = await self.self_update.handle(record)
            if not scheduled:
                return UpdateResult(record.name, UpdateAction.FAILED, status=status,
                                    message="Failed to launch self-update helper")
            await self._emit(EventType.SELF_UPDATE_SCHEDULED, record, {'image': record.image})
            return UpdateResult(record.name, UpdateAction.SELF_UPDATE_SCHEDULED, status=status)

        await self._emit(EventType.UPDATE_STARTED, record, {'image': record.image})
        result = await self.recreator.recreate(record, new_image_id=status.latest_image_id)

        if result.success:
            await self._emit(EventType.UPDATE_COMPLETED, record, {
                'new_container_id': result.new_container_id,
                'latest_image_id': status.latest_image_id,
            })
            return UpdateResult(record.name, UpdateAction.RECREATED, status=status, recreation=result)

        event_type = EventType.CONTAINER_LOST if result.container_lost else EventType.UPDATE_FAILED
        await self._emit(event_type, record, {
            'failed_step': result.failed_step.value if result.failed_step else None,
            'error': result.error_message,
            'backup_path': result.backup_path,
        })
        return UpdateResult(record.name, UpdateAction.FAILED, status=status, recreation=result,
                            message=result.error_message)

    async def _emit(self, event_type: EventType, record: ContainerRecord, data: dict) -> None:
        await self.event_bus.emit(Event(
            event_type=event_type,
            scope_type='container',
            scope_id=record.id,
            scope_name=record.name,
            data=data,
        ))
