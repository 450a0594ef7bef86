"""
Self-Update Handler

The updater cannot stop and recreate the container it is running in: the
stop would kill the process half-way through. Instead it:

1. Copies the compose file to the persistent data directory
2. Claims the handoff marker (the watchdog stands back while it is live)
3. Launches a detached helper container from the new image running
   `containerpulse restart-worker`, which removes this container after a
   grace period and deploys the replacement
4. Asks the current process to exit

The restart policy or the watchdog may still race the helper; the marker
narrows that window but does not close it.
"""

import logging
import os
import shutil
from typing import Callable, Optional

from docker.errors import APIError

from inventory.models import ContainerRecord
from inventory.self_identity import SelfIdentity
from updates.handoff import HandoffMarker

logger = logging.getLogger(__name__)

HELPER_NAME_SUFFIX = '-restart-worker'
# Compose names containers <project>-<service>-<n> unless container_name is set
COMPOSE_SERVICE_LABEL = 'com.docker.compose.service'


class SelfUpdateHandler:
    """
    Args:
        inspector: ContainerInspector
        identity: resolved SelfIdentity
        handoff: HandoffMarker shared with the watchdog
        compose_file: the service's compose file inside this container
        persisted_compose_file: copy location on the data volume
        delay: grace period before the helper removes this container
        lease_seconds: handoff lease duration
        request_exit: callback that asks the process to terminate
    """

    def __init__(
        self,
        inspector,
        identity: SelfIdentity,
        handoff: HandoffMarker,
        compose_file: Optional[str],
        persisted_compose_file: str,
        delay: int = 10,
        lease_seconds: int = 300,
        request_exit: Optional[Callable[[], None]] = None,
    ):
        self.inspector = inspector
        self.identity = identity
        self.handoff = handoff
        self.compose_file = compose_file
        self.persisted_compose_file = persisted_compose_file
        self.delay = delay
        self.lease_seconds = lease_seconds
        self.request_exit = request_exit

    def is_self(self, record: ContainerRecord) -> bool:
        return self.identity.matches(record.id)

    def _persist_compose_file(self) -> Optional[str]:
        if not self.compose_file or not os.path.isfile(self.compose_file):
            return None
        if os.path.abspath(self.compose_file) == os.path.abspath(self.persisted_compose_file):
            return self.persisted_compose_file
        try:
            os.makedirs(os.path.dirname(self.persisted_compose_file), exist_ok=True)
            shutil.copy2(self.compose_file, self.persisted_compose_file)
            return self.persisted_compose_file
        except OSError as e:
            logger.warning(f"Could not copy compose file for self-update, fallback will be used: {e}")
            return None

    def helper_command(self, record: ContainerRecord, generation: int,
                       compose_file: Optional[str]) -> list:
        command = [
            'containerpulse', 'restart-worker',
            '--old-container', record.id,
            '--service-name', record.name,
            '--compose-service', record.label(COMPOSE_SERVICE_LABEL, record.name),
            '--image', record.image,
            '--generation', str(generation),
            '--delay', str(self.delay),
        ]
        if compose_file:
            command += ['--compose-file', compose_file]
        return command

    async def handle(self, record: ContainerRecord) -> bool:
        """
        Schedule the deferred restart of this container.

        Returns:
            True when the helper was launched and the process should exit
        """
        logger.warning("SELF-UPDATE DETECTED: Preparing to update ContainerPulse itself")

        compose_file = self._persist_compose_file()
        generation = self.handoff.claim(
            owner='restart-worker',
            lease_seconds=self.lease_seconds,
            old_container_id=record.id,
        )

        try:
            helper = await self.inspector.run_detached(
                record.image,
                command=self.helper_command(record, generation, compose_file),
                name=f"{record.name}{HELPER_NAME_SUFFIX}-{generation}",
                environment=list(record.env),
                volumes_from=[record.id],
                auto_remove=True,
                labels={'containerpulse.role': 'restart-worker'},
            )
        except APIError as e:
            logger.error(f"Failed to launch self-update helper, staying up: {e}")
            self.handoff.release(generation)
            return False

        logger.info(
            f"SELF-UPDATE: helper {helper.id[:12]} will restart {record.name} "
            f"with new image in {self.delay} seconds"
        )
        if self.request_exit is not None:
            logger.info("Exiting to allow restart...")
            self.request_exit()
        return True
