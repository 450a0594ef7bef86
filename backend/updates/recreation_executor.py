"""
Recreation Executor

Replaces a container with an equivalent one running a freshly pulled image.

Workflow:
1. Backup the ContainerRecord (nothing touched on failure)
2. Synthesize and validate creation parameters
3. Stop the container (bounded wait; left running on failure)
4. Remove it, keeping volumes (fatal for this cycle on failure; already
   gone is fine, e.g. AutoRemove containers vanish on stop)
5. Create the replacement (container lost on failure)
6. Start it (created-but-stopped container kept on failure)
7. Optionally remove the old image (best effort)

Each step converts its failure into a RecreationResult; nothing here raises
to the caller. There is no automatic retry or recovery once the old
container has been removed.
"""

import logging
from typing import Optional

from docker.errors import APIError, DockerException, NotFound

from exceptions import CreationParamsError
from inventory.backups import BackupStore
from inventory.models import ContainerRecord
from updates.creation_params import synthesize
from updates.types import RecreationResult, RecreationStep
from utils.image_id import full_image_id, normalize_image_id

logger = logging.getLogger(__name__)


class RecreationExecutor:
    """
    Args:
        inspector: ContainerInspector
        backups: BackupStore for pre-update records
        stop_timeout: seconds the engine waits before killing on stop
        cleanup_old_images: remove the previous image after a successful start
    """

    def __init__(
        self,
        inspector,
        backups: BackupStore,
        stop_timeout: int = 30,
        cleanup_old_images: bool = False,
    ):
        self.inspector = inspector
        self.backups = backups
        self.stop_timeout = stop_timeout
        self.cleanup_old_images = cleanup_old_images

    async def recreate(self, record: ContainerRecord, new_image_id: Optional[str] = None) -> RecreationResult:
        """
        Recreate `record` on the image its reference now resolves to.

        Args:
            record: container as inventoried
            new_image_id: id the reference resolved to after pull (for logging
                and verification of the created container)
        """
        name = record.name
        logger.info(f"Updating container {name} to the latest version of {record.image}")

        # Step 1: Backup
        try:
            backup_path = self.backups.write_pre_update(record)
        except OSError as e:
            logger.error(f"Backup failed for {name}, not updating: {e}")
            return RecreationResult.failure_result(name, RecreationStep.BACKUP, f"Backup failed: {e}")

        # Step 2: Synthesize while the old container still exists
        try:
            params = synthesize(record)
        except CreationParamsError as e:
            logger.error(f"Cannot recreate {name}: {e}")
            return RecreationResult.failure_result(
                name, RecreationStep.SYNTHESIZE, str(e), backup_path=backup_path
            )

        # Step 3: Stop
        logger.info(f"Stopping container {name}")
        try:
            await self.inspector.stop(record.id, timeout=self.stop_timeout)
        except DockerException as e:
            logger.error(f"Failed to stop container {name}, leaving it running: {e}")
            return RecreationResult.failure_result(
                name, RecreationStep.STOP, f"Stop failed: {e}", backup_path=backup_path
            )

        # Step 4: Remove (volumes preserved)
        logger.info(f"Removing container {name}")
        try:
            await self.inspector.remove(record.id, v=False)
        except NotFound:
            logger.info(f"Container {name} was already removed by the engine")
        except DockerException as e:
            logger.critical(
                f"Failed to remove container {name} after stopping it: {e}. "
                f"Manual intervention required; backup at {backup_path}"
            )
            return RecreationResult.failure_result(
                name, RecreationStep.REMOVE, f"Remove failed: {e}",
                container_lost=True, backup_path=backup_path
            )

        # Step 5: Create
        logger.info(f"Creating new container {name} with image {params.image}")
        try:
            new_container_id = await self.inspector.create(params)
        except DockerException as e:
            logger.critical(
                f"Failed to create replacement for {name}: {e}. "
                f"Container is gone; recreate manually from backup {backup_path}"
            )
            return RecreationResult.failure_result(
                name, RecreationStep.CREATE, f"Create failed: {e}",
                container_lost=True, backup_path=backup_path
            )

        # Step 6: Start
        try:
            await self.inspector.start(new_container_id)
        except DockerException as e:
            logger.error(
                f"Created container {name} ({new_container_id[:12]}) failed to start: {e}. "
                f"Left in place for inspection"
            )
            return RecreationResult.failure_result(
                name, RecreationStep.START, f"Start failed: {e}",
                new_container_id=new_container_id, backup_path=backup_path
            )

        logger.info(f"Container {name} updated successfully ({record.short_id} -> {new_container_id[:12]})")

        # Step 7: Cleanup
        if self.cleanup_old_images:
            await self._cleanup_old_image(record, new_image_id)

        return RecreationResult.success_result(name, new_container_id, backup_path=backup_path)

    async def _cleanup_old_image(self, record: ContainerRecord, new_image_id: Optional[str]) -> None:
        """Best-effort removal of the image the old container ran on"""
        old_id = record.image_id
        if not old_id:
            return
        if new_image_id and full_image_id(old_id) == full_image_id(new_image_id):
            return

        logger.info(f"Cleaning up old image {normalize_image_id(old_id)} for {record.name}")
        try:
            await self.inspector.remove_image(old_id)
        except (APIError, DockerException) as e:
            logger.warning(f"Could not remove old image {normalize_image_id(old_id)}: {e}")
