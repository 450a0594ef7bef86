"""
Service wiring for ContainerPulse.

Builds the component graph from AppConfig. Shared by the web process
(main.py lifespan) and the command line (cli.py).
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional

from config import paths
from config.settings import AppConfig
from deployment.backups import DeploymentBackupStore
from deployment.compose import ComposeRunner
from deployment.release_controller import ReleaseController
from event_bus import EventBus, get_event_bus
from health_check.http_checker import HttpHealthChecker
from inventory.backups import BackupStore
from inventory.builder import InventoryBuilder, read_inventory
from inventory.inspector import ContainerInspector
from inventory.models import InventorySnapshot
from inventory.self_identity import SelfIdentity, resolve_self_identity
from scheduler.update_loop import UpdateLoop
from service_watchdog.watchdog import Watchdog
from updates.handoff import HandoffMarker
from updates.provenance import get_classifier
from updates.recreation_executor import RecreationExecutor
from updates.self_update import SelfUpdateHandler
from updates.update_checker import UpdateChecker
from updates.update_executor import UpdateExecutor

logger = logging.getLogger(__name__)


@dataclass
class UpdaterServices:
    inspector: ContainerInspector
    identity: SelfIdentity
    builder: InventoryBuilder
    checker: UpdateChecker
    recreator: RecreationExecutor
    self_update: SelfUpdateHandler
    executor: UpdateExecutor
    loop: UpdateLoop
    event_bus: EventBus
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def current_inventory(self) -> InventorySnapshot:
        """The loop's snapshot, or the persisted one before the first cycle"""
        if len(self.loop.snapshot):
            return self.loop.snapshot
        return read_inventory(self.builder.inventory_file)


def handoff_marker() -> HandoffMarker:
    return HandoffMarker(paths.HANDOFF_FILE)


async def build_updater(inspector: Optional[ContainerInspector] = None,
                        request_exit: Optional[Callable[[], None]] = None,
                        event_bus: Optional[EventBus] = None) -> UpdaterServices:
    """Resolve our own identity and wire the update pipeline"""
    paths.ensure_data_dirs()
    inspector = inspector or ContainerInspector()
    event_bus = event_bus or get_event_bus()

    identity = await resolve_self_identity(inspector, AppConfig.SELF_ID)
    builder = InventoryBuilder(inspector, identity, paths.INVENTORY_FILE, BackupStore(paths.BACKUP_DIR))
    checker = UpdateChecker(
        inspector,
        classifier=get_classifier(AppConfig.LOCAL_IMAGE_PATTERN),
        pull_timeout=AppConfig.PULL_TIMEOUT,
    )
    recreator = RecreationExecutor(
        inspector,
        builder.backups,
        stop_timeout=AppConfig.STOP_TIMEOUT,
        cleanup_old_images=AppConfig.CLEANUP_OLD_IMAGES,
    )
    self_update = SelfUpdateHandler(
        inspector,
        identity,
        handoff_marker(),
        compose_file=AppConfig.COMPOSE_FILE,
        persisted_compose_file=paths.PERSISTED_COMPOSE_FILE,
        delay=AppConfig.SELF_UPDATE_DELAY,
        lease_seconds=AppConfig.HANDOFF_LEASE_SECONDS,
        request_exit=request_exit,
    )
    executor = UpdateExecutor(inspector, checker, recreator, self_update, identity, event_bus=event_bus)
    loop = UpdateLoop(builder, checker, executor, interval=AppConfig.UPDATE_INTERVAL, event_bus=event_bus)

    return UpdaterServices(
        inspector=inspector,
        identity=identity,
        builder=builder,
        checker=checker,
        recreator=recreator,
        self_update=self_update,
        executor=executor,
        loop=loop,
        event_bus=event_bus,
    )


def build_release_controller(inspector: Optional[ContainerInspector] = None) -> ReleaseController:
    paths.ensure_data_dirs()
    inspector = inspector or ContainerInspector()
    backups = DeploymentBackupStore(
        paths.DEPLOYMENT_BACKUP_DIR,
        inspector,
        service_name=AppConfig.SERVICE_NAME,
        image=AppConfig.SERVICE_IMAGE,
        compose_file=AppConfig.COMPOSE_FILE,
    )
    health = HttpHealthChecker(
        AppConfig.HEALTH_URL,
        attempts=AppConfig.HEALTH_CHECK_ATTEMPTS,
        interval=AppConfig.HEALTH_CHECK_INTERVAL,
    )
    return ReleaseController(
        inspector,
        backups,
        ComposeRunner(AppConfig.COMPOSE_FILE),
        health,
        service_name=AppConfig.SERVICE_NAME,
        image=AppConfig.SERVICE_IMAGE,
        pull_timeout=AppConfig.PULL_TIMEOUT,
    )


def build_watchdog(inspector: Optional[ContainerInspector] = None) -> Watchdog:
    return Watchdog(
        inspector or ContainerInspector(),
        handoff_marker(),
        service_name=AppConfig.SERVICE_NAME,
        image=AppConfig.SERVICE_IMAGE,
        compose=ComposeRunner(AppConfig.COMPOSE_FILE),
        interval=AppConfig.WATCHDOG_INTERVAL,
        pull_timeout=AppConfig.PULL_TIMEOUT,
        port=AppConfig.PORT,
    )
