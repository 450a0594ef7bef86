"""
Release/Rollback Controller

Redeploys the updater's own service from its compose file with a safety net:

1. Back up the running deployment (must succeed before anything changes)
2. Pull the service image; unless forced, stop here if already current
3. `docker compose up -d`
4. Poll the liveness URL
5. On deploy or health failure, restore the backed-up compose file,
   redeploy it and health-check again

A rollback that does not come back healthy ends in `failed`; nothing
further is attempted automatically.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from docker.errors import APIError, NotFound

from deployment import state_machine as states
from deployment.state_machine import ReleaseStateMachine
from event_bus import Event, EventBus, EventType, get_event_bus
from exceptions import ComposeCommandError, ImagePullError, ReleaseError
from utils.image_id import full_image_id, normalize_image_id

logger = logging.getLogger(__name__)

# Service images kept after a healthy deploy
KEEP_IMAGES = 2


@dataclass
class Release:
    state: str = states.IDLE
    history: List[Tuple[str, datetime]] = field(default_factory=list)
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None


@dataclass
class ReleaseResult:
    state: str
    backup_timestamp: Optional[str] = None
    error: Optional[str] = None
    message: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.state in (states.HEALTHY, states.ROLLED_BACK) and self.error is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'state': self.state,
            'backup': self.backup_timestamp,
            'error': self.error,
            'message': self.message,
        }


def image_repository(reference: str) -> str:
    """Strip the tag (not a registry port) from an image reference"""
    name, sep, tag = reference.rpartition(':')
    if sep and '/' not in tag:
        return name
    return reference


class ReleaseController:
    """
    Args:
        inspector: ContainerInspector
        backups: DeploymentBackupStore
        compose: ComposeRunner for the service's compose file
        health: HttpHealthChecker for the liveness URL
        service_name: updater container / compose service name
        image: updater image reference
        pull_timeout: seconds allowed for the image pull
    """

    def __init__(self, inspector, backups, compose, health, service_name: str, image: str,
                 pull_timeout: int = 600, event_bus: Optional[EventBus] = None):
        self.inspector = inspector
        self.backups = backups
        self.compose = compose
        self.health = health
        self.service_name = service_name
        self.image = image
        self.pull_timeout = pull_timeout
        self.event_bus = event_bus or get_event_bus()
        self.sm = ReleaseStateMachine()

    def _move(self, release: Release, to_state: str) -> None:
        if not self.sm.transition(release, to_state):
            raise ReleaseError(f"Invalid release transition {release.state} -> {to_state}")

    async def _running_image_id(self) -> Optional[str]:
        """Image id of the running service container, None when not running"""
        try:
            attrs = await self.inspector.inspect(self.service_name)
        except NotFound:
            return None
        if not (attrs.get('State') or {}).get('Running'):
            return None
        return attrs.get('Image')

    async def deploy(self, force: bool = False) -> ReleaseResult:
        logger.info("Starting ContainerPulse deployment...")
        release = Release()

        if not self.compose.available:
            return ReleaseResult(states.FAILED, error=f"Compose file not found: {self.compose.compose_file}")

        running_image_id = await self._running_image_id()
        was_running = running_image_id is not None
        logger.info(f"{self.service_name} is {'currently' if was_running else 'not currently'} running")

        # Backing up
        self._move(release, states.BACKING_UP)
        try:
            backup_timestamp = await self.backups.create()
        except (OSError, APIError) as e:
            self._move(release, states.FAILED)
            return await self._finish(ReleaseResult(states.FAILED, error=f"Backup failed: {e}"))

        # Deploying
        self._move(release, states.DEPLOYING)
        logger.info(f"Pulling latest image: {self.image}")
        try:
            latest_id = await self.inspector.pull(self.image, timeout=self.pull_timeout)
        except ImagePullError as e:
            self._move(release, states.FAILED)
            return await self._finish(ReleaseResult(
                states.FAILED, backup_timestamp, error=f"Failed to pull latest image: {e}"
            ))

        if not force and was_running and full_image_id(running_image_id) == full_image_id(latest_id):
            self._move(release, states.HEALTHY)
            logger.info("ContainerPulse is already running the latest image")
            return await self._finish(ReleaseResult(
                states.HEALTHY, backup_timestamp, message="Already running the latest image"
            ))

        logger.info("Deploying ContainerPulse...")
        try:
            await self.compose.up(remove_orphans=True)
        except ComposeCommandError as e:
            logger.error(f"Failed to start ContainerPulse with docker compose: {e}")
            return await self._after_failed_deploy(release, backup_timestamp, was_running, str(e))

        # Health checking
        self._move(release, states.HEALTH_CHECKING)
        if await self.health.wait_healthy():
            self._move(release, states.HEALTHY)
            logger.info("ContainerPulse deployment successful!")
            await self._cleanup_old_images()
            return await self._finish(ReleaseResult(states.HEALTHY, backup_timestamp))

        logger.error("ContainerPulse deployment failed - service is not healthy")
        return await self._after_failed_deploy(
            release, backup_timestamp, was_running, "Service is not healthy after deploy"
        )

    async def _after_failed_deploy(self, release: Release, backup_timestamp: str,
                                   was_running: bool, error: str) -> ReleaseResult:
        if not was_running:
            self._move(release, states.FAILED)
            return await self._finish(ReleaseResult(states.FAILED, backup_timestamp, error=error))

        logger.warning("Attempting automatic rollback...")
        self._move(release, states.ROLLING_BACK)
        result = await self._rollback(release, backup_timestamp)
        if result.state == states.ROLLED_BACK:
            logger.warning("Rollback successful, but deployment failed")
            result.error = error
        return await self._finish(result)

    async def rollback(self, timestamp: Optional[str] = None) -> ReleaseResult:
        """Manual rollback to a backup (default: latest)"""
        release = Release()
        self._move(release, states.ROLLING_BACK)
        return await self._finish(await self._rollback(release, timestamp))

    async def _rollback(self, release: Release, timestamp: Optional[str]) -> ReleaseResult:
        try:
            timestamp = self.backups.restore_compose(timestamp)
        except ReleaseError as e:
            logger.error(str(e))
            self._move(release, states.FAILED)
            return ReleaseResult(states.FAILED, timestamp, error=str(e))

        logger.warning(f"Rolling back to backup: {timestamp}")
        try:
            await self.compose.down()
        except ComposeCommandError as e:
            logger.warning(f"compose down failed during rollback, continuing: {e}")

        try:
            await self.compose.up()
        except ComposeCommandError as e:
            self._move(release, states.FAILED)
            logger.critical(f"Both deployment and rollback failed! {e}")
            return ReleaseResult(states.FAILED, timestamp, error=f"Rollback deploy failed: {e}")

        self._move(release, states.ROLLBACK_HEALTH_CHECKING)
        if await self.health.wait_healthy():
            self._move(release, states.ROLLED_BACK)
            logger.info("Rollback completed successfully")
            return ReleaseResult(states.ROLLED_BACK, timestamp)

        self._move(release, states.FAILED)
        logger.critical("Both deployment and rollback failed! Service is not healthy; manual intervention required")
        return ReleaseResult(states.FAILED, timestamp, error="Rollback failed - service is not healthy")

    async def _cleanup_old_images(self) -> None:
        """Remove service images beyond the newest KEEP_IMAGES (best effort)"""
        try:
            images = await self.inspector.list_images(image_repository(self.image))
        except APIError as e:
            logger.warning(f"Could not list images for cleanup: {e}")
            return

        images = sorted(images, key=lambda i: i.attrs.get('Created', ''), reverse=True)
        for image in images[KEEP_IMAGES:]:
            try:
                await self.inspector.remove_image(image.id)
                logger.info(f"Removed old image {normalize_image_id(image.id)}")
            except APIError as e:
                logger.warning(f"Could not remove old image {normalize_image_id(image.id)}: {e}")

    async def backup(self) -> str:
        return await self.backups.create()

    def list_backups(self) -> Dict[str, Any]:
        return {'backups': self.backups.list_backups(), 'latest': self.backups.latest()}

    async def check_health(self, attempts: Optional[int] = None) -> bool:
        return await self.health.wait_healthy(attempts)

    async def status(self) -> Dict[str, Any]:
        try:
            attrs = await self.inspector.inspect(self.service_name)
        except NotFound:
            attrs = None

        state = (attrs or {}).get('State') or {}
        running = bool(state.get('Running'))
        return {
            'service': self.service_name,
            'running': running,
            'status': state.get('Status') if attrs else 'absent',
            'container_id': (attrs or {}).get('Id', '')[:12] or None,
            'image': self.image,
            'image_id': normalize_image_id(attrs['Image']) if attrs and attrs.get('Image') else None,
            'healthy': await self.health.check_once() if running else False,
            'latest_backup': self.backups.latest(),
        }

    async def _finish(self, result: ReleaseResult) -> ReleaseResult:
        event_type = {
            states.HEALTHY: EventType.RELEASE_HEALTHY,
            states.ROLLED_BACK: EventType.RELEASE_ROLLED_BACK,
        }.get(result.state, EventType.RELEASE_FAILED)
        await self.event_bus.emit(Event(
            event_type=event_type,
            scope_type='release',
            scope_id=result.backup_timestamp or '',
            scope_name=self.service_name,
            data=result.to_dict(),
        ))
        return result
