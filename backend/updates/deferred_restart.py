"""
Deferred restart worker.

Runs inside a detached helper container (`containerpulse restart-worker`)
started by the self-update handler. It outlives the updater it replaces:

1. Wait for the grace period so the old process can exit
2. Force-remove the old container
3. Bring the service back via compose when the compose file exists,
   otherwise from the fallback configuration
4. Release the handoff marker (only its own generation)
"""

import asyncio
import logging
from typing import Optional

from docker.errors import APIError, NotFound

from deployment.compose import ComposeRunner
from deployment.fallback import deploy_fallback
from exceptions import ComposeCommandError
from updates.handoff import HandoffMarker

logger = logging.getLogger(__name__)


async def run_restart_worker(
    inspector,
    handoff: HandoffMarker,
    generation: int,
    old_container: str,
    service_name: str,
    image: str,
    compose_file: Optional[str],
    delay: int = 10,
    port: int = 3000,
    compose_service: Optional[str] = None,
) -> bool:
    """
    Replace the old updater container.

    Args:
        inspector: ContainerInspector
        handoff: marker claimed by the self-update handler
        generation: generation of that claim
        old_container: id (or name) of the container being replaced
        service_name: container name of the updater
        image: image for the fallback deployment
        compose_file: persisted compose file, if any
        delay: seconds to wait before removing the old container
        compose_service: compose service to bring up (defaults to service_name)

    Returns:
        True when a replacement was deployed
    """
    logger.info(f"Deferred restart of {service_name} in {delay}s (handoff generation {generation})")
    await asyncio.sleep(delay)

    try:
        try:
            await inspector.remove(old_container, force=True)
            logger.info(f"Removed old container {old_container[:12]}")
        except NotFound:
            logger.info(f"Old container {old_container[:12]} already gone")
        except APIError as e:
            logger.error(f"Failed to remove old container {old_container[:12]}: {e}")

        compose = ComposeRunner(compose_file) if compose_file else None
        if compose is not None and compose.available:
            try:
                await compose.up(compose_service or service_name)
                logger.info(f"Redeployed {service_name} from {compose_file}")
                return True
            except ComposeCommandError as e:
                logger.error(f"Compose redeploy failed, using fallback configuration: {e}")

        try:
            await deploy_fallback(inspector, service_name, image, port=port)
            return True
        except APIError as e:
            logger.critical(f"Deferred restart could not bring {service_name} back: {e}")
            return False
    finally:
        handoff.release(generation)
