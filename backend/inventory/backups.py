"""
Per-container backup store.

Layout under BACKUP_DIR:
    <name>/inspect.json                        full raw inspection, rewritten every cycle
    <name>/pre-update-YYYYmmddHHMMSS.json      ContainerRecord before a destructive step

Pre-update records are never modified or pruned here.
"""

import logging
import os
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from inventory.models import ContainerRecord
from utils.atomic_write import atomic_write_json

logger = logging.getLogger(__name__)

PRE_UPDATE_PREFIX = 'pre-update-'


class BackupStore:
    def __init__(self, backup_dir: str):
        self.backup_dir = backup_dir

    def container_dir(self, name: str) -> str:
        return os.path.join(self.backup_dir, name.lstrip('/'))

    def write_inspect(self, name: str, attrs: Dict[str, Any]) -> str:
        """Write the raw inspection dump for a container"""
        path = os.path.join(self.container_dir(name), 'inspect.json')
        atomic_write_json(path, attrs)
        return path

    def write_pre_update(self, record: ContainerRecord, now: Optional[datetime] = None) -> str:
        """
        Write a BackupRecord for a container about to be recreated.

        Returns:
            Path of the written backup

        Raises:
            OSError: backup could not be written (caller must not proceed)
        """
        now = now or datetime.now(timezone.utc)
        filename = f"{PRE_UPDATE_PREFIX}{now.strftime('%Y%m%d%H%M%S')}.json"
        path = os.path.join(self.container_dir(record.name), filename)

        # Same-second updates must not overwrite an earlier backup
        counter = 1
        while os.path.exists(path):
            path = os.path.join(
                self.container_dir(record.name),
                f"{PRE_UPDATE_PREFIX}{now.strftime('%Y%m%d%H%M%S')}-{counter}.json"
            )
            counter += 1

        atomic_write_json(path, record.to_inventory())
        logger.info(f"Backed up {record.name} configuration to {path}")
        return path

    def list_pre_update(self, name: str) -> List[str]:
        directory = self.container_dir(name)
        if not os.path.isdir(directory):
            return []
        return sorted(
            os.path.join(directory, f)
            for f in os.listdir(directory)
            if f.startswith(PRE_UPDATE_PREFIX) and f.endswith('.json')
        )
