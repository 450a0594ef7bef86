"""
Service watchdog.

Runs beside the updater (`containerpulse watchdog`) and keeps its container
alive. Every interval the updater container is either present (running) or
absent. When absent:

1. A live self-update handoff lease means the restart worker owns recovery;
   wait for it
2. Try to start the existing (stopped) container
3. Pull the image, remove any stale container and redeploy from the compose
   file, or the fallback configuration when there is none

There is no backoff: an absent container is retried every interval.
"""

import asyncio
import logging
from enum import Enum
from typing import Optional

from docker.errors import APIError, NotFound

from deployment.compose import ComposeRunner
from deployment.fallback import deploy_fallback
from exceptions import ComposeCommandError, ImagePullError
from updates.handoff import HandoffMarker

logger = logging.getLogger(__name__)


class WatchdogOutcome(str, Enum):
    PRESENT = 'present'
    HANDOFF_PENDING = 'handoff_pending'
    STARTED = 'started'
    REDEPLOYED = 'redeployed'
    FAILED = 'failed'


class Watchdog:
    """
    Args:
        inspector: ContainerInspector
        handoff: self-update handoff marker shared with the updater
        service_name: name of the updater container
        image: updater image reference
        compose: ComposeRunner for the updater's compose file, or None
        interval: seconds between checks
    """

    def __init__(self, inspector, handoff: HandoffMarker, service_name: str, image: str,
                 compose: Optional[ComposeRunner] = None, interval: int = 30,
                 pull_timeout: int = 600, port: int = 3000):
        self.inspector = inspector
        self.handoff = handoff
        self.service_name = service_name
        self.image = image
        self.compose = compose
        self.interval = interval
        self.pull_timeout = pull_timeout
        self.port = port
        self._stop = asyncio.Event()

    def stop(self) -> None:
        self._stop.set()

    async def check_once(self) -> WatchdogOutcome:
        try:
            attrs = await self.inspector.inspect(self.service_name)
        except NotFound:
            attrs = None

        if attrs and (attrs.get('State') or {}).get('Running'):
            return WatchdogOutcome.PRESENT

        claim = self.handoff.live_claim()
        if claim:
            logger.info(
                f"{self.service_name} is absent but self-update handoff generation "
                f"{claim.get('generation')} is live until {claim.get('expires_at')}, waiting"
            )
            return WatchdogOutcome.HANDOFF_PENDING

        logger.warning(f"{self.service_name} is not running, attempting recovery")

        if attrs:
            try:
                await self.inspector.start(attrs['Id'])
                logger.info(f"Started existing {self.service_name} container")
                return WatchdogOutcome.STARTED
            except APIError as e:
                logger.warning(f"Could not start existing {self.service_name} container: {e}")

        return await self._redeploy(attrs)

    async def _redeploy(self, attrs) -> WatchdogOutcome:
        try:
            await self.inspector.pull(self.image, timeout=self.pull_timeout)
        except ImagePullError as e:
            logger.warning(f"Pull of {self.image} failed, redeploying with the local image: {e}")

        if attrs:
            try:
                await self.inspector.remove(attrs['Id'], force=True)
                logger.info(f"Removed stale {self.service_name} container")
            except NotFound:
                pass
            except APIError as e:
                logger.warning(f"Could not remove stale {self.service_name} container: {e}")

        if self.compose is not None and self.compose.available:
            try:
                await self.compose.up(self.service_name)
                logger.info(f"Redeployed {self.service_name} from {self.compose.compose_file}")
                return WatchdogOutcome.REDEPLOYED
            except ComposeCommandError as e:
                logger.error(f"Compose redeploy of {self.service_name} failed: {e}")

        try:
            await deploy_fallback(self.inspector, self.service_name, self.image, port=self.port)
            return WatchdogOutcome.REDEPLOYED
        except APIError as e:
            logger.error(f"Failed to redeploy {self.service_name}, retrying in {self.interval}s: {e}")
            return WatchdogOutcome.FAILED

    async def run_forever(self) -> None:
        logger.info(f"Watchdog started for {self.service_name} (interval {self.interval}s)")
        while not self._stop.is_set():
            try:
                outcome = await self.check_once()
                logger.debug(f"Watchdog check: {outcome.value}")
            except Exception as e:
                logger.error(f"Error in watchdog check: {e}")

            try:
                await asyncio.wait_for(self._stop.wait(), timeout=self.interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Watchdog stopped")
