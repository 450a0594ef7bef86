"""
Deployment backups for the release controller.

Layout under DEPLOYMENT_BACKUP_DIR:
    <YYYYmmdd_HHMMSS>/container_inspect.json
    <YYYYmmdd_HHMMSS>/container_logs.txt
    <YYYYmmdd_HHMMSS>/docker-compose.prod.yml
    <YYYYmmdd_HHMMSS>/image_info.json
    latest_backup                              name of the newest backup
"""

import logging
import os
import re
import shutil
from datetime import datetime
from typing import List, Optional

from docker.errors import NotFound, ImageNotFound

from exceptions import ReleaseError
from utils.atomic_write import atomic_write_json, atomic_write_text

logger = logging.getLogger(__name__)

BACKUP_NAME_RE = re.compile(r'^\d{8}_\d{6}$')
LATEST_POINTER = 'latest_backup'
COMPOSE_BACKUP_NAME = 'docker-compose.prod.yml'


class DeploymentBackupStore:
    """
    Args:
        backup_dir: root of the deployment backups
        inspector: ContainerInspector
        service_name: updater container name
        image: updater image reference
        compose_file: the compose file being deployed
    """

    def __init__(self, backup_dir: str, inspector, service_name: str, image: str,
                 compose_file: Optional[str]):
        self.backup_dir = backup_dir
        self.inspector = inspector
        self.service_name = service_name
        self.image = image
        self.compose_file = compose_file

    def path(self, timestamp: str) -> str:
        return os.path.join(self.backup_dir, timestamp)

    async def create(self, now: Optional[datetime] = None) -> str:
        """
        Snapshot the running service.

        Returns:
            The backup timestamp

        Raises:
            OSError: backup could not be written
        """
        timestamp = (now or datetime.now()).strftime('%Y%m%d_%H%M%S')
        backup_path = self.path(timestamp)
        os.makedirs(backup_path, exist_ok=True)
        logger.info(f"Backing up current state to: {backup_path}")

        try:
            attrs = await self.inspector.inspect(self.service_name)
            atomic_write_json(os.path.join(backup_path, 'container_inspect.json'), attrs)
            logs = await self.inspector.logs(self.service_name)
            atomic_write_text(os.path.join(backup_path, 'container_logs.txt'), logs)
        except NotFound:
            logger.info(f"{self.service_name} is not running, backing up configuration only")

        if self.compose_file and os.path.isfile(self.compose_file):
            shutil.copy2(self.compose_file, os.path.join(backup_path, COMPOSE_BACKUP_NAME))

        try:
            image_attrs = await self.inspector.image_attrs(self.image)
            atomic_write_json(os.path.join(backup_path, 'image_info.json'), {
                'reference': self.image,
                'id': image_attrs.get('Id'),
                'repo_tags': image_attrs.get('RepoTags') or [],
                'repo_digests': image_attrs.get('RepoDigests') or [],
                'created': image_attrs.get('Created'),
            })
        except (ImageNotFound, NotFound):
            logger.debug(f"Image {self.image} not present locally, no image info saved")

        atomic_write_text(os.path.join(self.backup_dir, LATEST_POINTER), timestamp + '\n')
        logger.info(f"Backup completed: {backup_path}")
        return timestamp

    def list_backups(self) -> List[str]:
        """Backup timestamps, newest first"""
        if not os.path.isdir(self.backup_dir):
            return []
        return sorted(
            (name for name in os.listdir(self.backup_dir)
             if BACKUP_NAME_RE.match(name) and os.path.isdir(self.path(name))),
            reverse=True
        )

    def latest(self) -> Optional[str]:
        try:
            with open(os.path.join(self.backup_dir, LATEST_POINTER), 'r', encoding='utf-8') as f:
                timestamp = f.read().strip()
        except OSError:
            return None
        return timestamp or None

    def restore_compose(self, timestamp: Optional[str] = None) -> str:
        """
        Copy a backup's compose file over the live one.

        Returns:
            The timestamp restored from

        Raises:
            ReleaseError: no such backup (or no latest backup)
        """
        timestamp = timestamp or self.latest()
        if not timestamp:
            raise ReleaseError("No backup timestamp provided and no latest backup found")

        backup_path = self.path(timestamp)
        if not os.path.isdir(backup_path):
            raise ReleaseError(f"Backup not found: {backup_path}")

        saved_compose = os.path.join(backup_path, COMPOSE_BACKUP_NAME)
        if os.path.isfile(saved_compose) and self.compose_file:
            shutil.copy2(saved_compose, self.compose_file)
            logger.info(f"Restored compose file from backup {timestamp}")
        return timestamp
