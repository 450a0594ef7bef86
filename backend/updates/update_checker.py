"""
Update Checker Service

Determines, for every inventoried container, whether a newer image exists.

Workflow per container:
    1. Classify provenance; locally built images are never pulled
    2. Pull the configured reference (bounded by PULL_TIMEOUT)
    3. Compare the resolved image id with the id recorded at inventory time
Failures downgrade that container to "cannot determine" and never stop the
remaining checks.
"""

import logging
from typing import Dict, Optional

from exceptions import ImagePullError
from inventory.models import ContainerRecord, InventorySnapshot
from updates.provenance import ProvenanceClassifier, HeuristicClassifier
from updates.types import UpdateStatus
from utils.image_id import image_ids_differ, normalize_image_id

logger = logging.getLogger(__name__)


class UpdateChecker:
    """
    Args:
        inspector: ContainerInspector used for pulls
        classifier: ProvenanceClassifier (default heuristic)
        pull_timeout: seconds allowed per pull
    """

    def __init__(self, inspector, classifier: Optional[ProvenanceClassifier] = None,
                 pull_timeout: int = 600):
        self.inspector = inspector
        self.classifier = classifier or HeuristicClassifier()
        self.pull_timeout = pull_timeout

    async def check(self, record: ContainerRecord) -> UpdateStatus:
        """Check one container; always returns a status"""
        try:
            return await self._check(record)
        except Exception as e:
            logger.error(f"Unexpected error checking {record.name} for updates: {e}", exc_info=True)
            return UpdateStatus.cannot_determine(record.name, record.image_id, str(e))

    async def _check(self, record: ContainerRecord) -> UpdateStatus:
        if self.classifier.is_locally_built(record.image):
            logger.info(f"Skipping update check for locally built image: {record.image} ({record.name})")
            return UpdateStatus(
                container_name=record.name,
                current_image_id=record.image_id,
                latest_image_id=record.image_id,
                update_available=False,
                locally_built=True,
            )

        logger.info(f"Checking for updates to {record.name} (image: {record.image})")
        try:
            latest_id = await self.inspector.pull(record.image, timeout=self.pull_timeout)
        except ImagePullError as e:
            logger.error(f"Cannot determine update status for {record.name}: {e} ({e.reason})")
            return UpdateStatus.cannot_determine(record.name, record.image_id, str(e))

        update_available = image_ids_differ(record.image_id, latest_id)
        if update_available:
            logger.info(
                f"Update available for {record.name}: "
                f"{normalize_image_id(record.image_id)} -> {normalize_image_id(latest_id)}"
            )
        else:
            logger.info(f"Container {record.name} is already using the latest image")

        return UpdateStatus(
            container_name=record.name,
            current_image_id=record.image_id,
            latest_image_id=latest_id,
            update_available=update_available,
        )

    async def check_all(self, snapshot: InventorySnapshot) -> Dict[str, UpdateStatus]:
        """
        Check every container in the snapshot, one at a time.

        Returns:
            Dict of container name -> UpdateStatus, in snapshot order
        """
        logger.info(f"Starting update check for {len(snapshot)} container(s)")
        statuses: Dict[str, UpdateStatus] = {}
        for record in snapshot:
            statuses[record.name] = await self.check(record)

        found = sum(1 for s in statuses.values() if s.update_available)
        errors = sum(1 for s in statuses.values() if s.error)
        logger.info(f"Update check complete: {found} update(s) available, {errors} error(s)")
        return statuses

    async def check_one(self, id_or_name: str, snapshot: InventorySnapshot) -> Optional[UpdateStatus]:
        """
        Check a single inventoried container by id or name.

        Returns:
            UpdateStatus, or None when the container is not in the snapshot
        """
        record = snapshot.find(id_or_name)
        if record is None:
            return None
        return await self.check(record)
