"""
Self-update handoff marker.

Before the updater hands its own restart to a detached helper, it writes a
marker claiming responsibility for bringing the service back:

    {"generation": 4, "owner": "restart-worker", "old_container_id": "...",
     "created_at": "...", "expires_at": "..."}

While the lease is live the watchdog stands back. The helper clears the
marker when done, but only if the generation is still its own, so a newer
claim is never released by an older worker.
"""

import json
import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from utils.atomic_write import atomic_write_json

logger = logging.getLogger(__name__)


class HandoffMarker:
    def __init__(self, path: str):
        self.path = path

    def read(self) -> Optional[Dict[str, Any]]:
        try:
            with open(self.path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except FileNotFoundError:
            return None
        except (OSError, ValueError) as e:
            logger.warning(f"Ignoring unreadable handoff marker {self.path}: {e}")
            return None
        return data if isinstance(data, dict) else None

    def claim(self, owner: str, lease_seconds: int, old_container_id: Optional[str] = None,
              now: Optional[datetime] = None) -> int:
        """
        Write a new claim and return its generation.
        """
        now = now or datetime.now(timezone.utc)
        previous = self.read() or {}
        generation = int(previous.get('generation', 0)) + 1
        atomic_write_json(self.path, {
            'generation': generation,
            'owner': owner,
            'old_container_id': old_container_id,
            'created_at': now.isoformat(),
            'expires_at': (now + timedelta(seconds=lease_seconds)).isoformat(),
        })
        logger.info(f"Claimed self-update handoff generation {generation} for {owner}")
        return generation

    def live_claim(self, now: Optional[datetime] = None) -> Optional[Dict[str, Any]]:
        """The current claim when its lease has not expired, else None"""
        data = self.read()
        if not data or not data.get('expires_at'):
            return None
        try:
            expires_at = datetime.fromisoformat(data['expires_at'])
        except (TypeError, ValueError):
            return None
        now = now or datetime.now(timezone.utc)
        return data if expires_at > now else None

    def release(self, generation: int) -> bool:
        """
        Remove the marker if it still holds `generation`.

        Returns:
            True if the marker was removed
        """
        data = self.read()
        if data is None:
            return False
        if int(data.get('generation', -1)) != generation:
            logger.info(
                f"Handoff marker now at generation {data.get('generation')}, "
                f"not releasing generation {generation}"
            )
            return False
        try:
            os.remove(self.path)
        except FileNotFoundError:
            return False
        logger.info(f"Released self-update handoff generation {generation}")
        return True
