"""
Inventory Builder

Produces the InventorySnapshot of every running, update-eligible container,
excluding the updater's own container (by id). The snapshot is persisted
atomically for the dashboard and passed by value to the rest of the cycle.
"""

import json
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Mapping, Optional

from docker.errors import NotFound, APIError

from inventory.backups import BackupStore
from inventory.models import ContainerRecord, InventorySnapshot
from inventory.self_identity import SelfIdentity
from utils.atomic_write import atomic_write_json

logger = logging.getLogger(__name__)

# Any one of these set to "true" opts a container in
ELIGIBILITY_LABELS = (
    'auto-update',
    'com.your.auto-update',
    'com.github.containrrr.watchtower.enable',
    'com.centurylinklabs.watchtower.enable',
)


def is_eligible(labels: Optional[Mapping[str, str]]) -> bool:
    """True when any recognised eligibility label equals "true" (exact string)"""
    if not labels:
        return False
    return any(labels.get(label) == 'true' for label in ELIGIBILITY_LABELS)


def read_inventory(path: str) -> InventorySnapshot:
    """
    Load the persisted inventory.

    A missing, unreadable or malformed file yields an empty snapshot.
    """
    try:
        with open(path, 'r', encoding='utf-8') as f:
            data = json.load(f)
        return InventorySnapshot.from_inventory(data)
    except FileNotFoundError:
        return InventorySnapshot()
    except (OSError, ValueError) as e:
        logger.warning(f"Inventory file {path} unreadable, treating as empty: {e}")
        return InventorySnapshot()


class InventoryBuilder:
    """
    Args:
        inspector: ContainerInspector
        self_identity: resolved SelfIdentity
        inventory_file: path of the persisted snapshot
        backups: BackupStore receiving the raw inspect dumps
    """

    def __init__(
        self,
        inspector,
        self_identity: SelfIdentity,
        inventory_file: str,
        backups: BackupStore,
    ):
        self.inspector = inspector
        self.self_identity = self_identity
        self.inventory_file = inventory_file
        self.backups = backups

    async def build(self) -> InventorySnapshot:
        """
        Inspect all running containers and persist the eligible ones.

        Containers that vanish between list and inspect are skipped.
        """
        logger.info("Documenting all running containers...")
        container_ids = await self.inspector.list_running()

        records = []
        for container_id in container_ids:
            if self.self_identity.matches(container_id):
                logger.debug("Skipping our own container")
                continue

            try:
                attrs = await self.inspector.inspect(container_id)
            except (NotFound, APIError) as e:
                logger.warning(f"Skipping container {container_id[:12]}: inspect failed: {e}")
                continue

            record = self._record_if_eligible(attrs)
            if record is None:
                continue

            try:
                self.backups.write_inspect(record.name, attrs)
            except OSError as e:
                logger.warning(f"Could not write inspect dump for {record.name}: {e}")

            records.append(record)

        snapshot = InventorySnapshot(records=tuple(records), built_at=datetime.now(timezone.utc))
        self.persist(snapshot)
        logger.info(
            f"Container documentation complete: {len(snapshot)} eligible container(s) "
            f"saved to {self.inventory_file}"
        )
        return snapshot

    def _record_if_eligible(self, attrs: Dict[str, Any]) -> Optional[ContainerRecord]:
        # Re-check identity with the inspected full id
        if self.self_identity.matches(attrs.get('Id', '')):
            return None

        state = attrs.get('State') or {}
        if not state.get('Running', state.get('Status') == 'running'):
            return None

        labels = (attrs.get('Config') or {}).get('Labels') or {}
        if not is_eligible(labels):
            logger.debug(f"Skipping container {attrs.get('Id', '')[:12]} (no auto-update label)")
            return None

        return ContainerRecord.from_inspect(attrs)

    def persist(self, snapshot: InventorySnapshot) -> None:
        atomic_write_json(self.inventory_file, snapshot.to_inventory())
