"""
Container Inspector

Thin async facade over the Docker SDK for everything the updater asks of the
engine: listing and inspecting containers, pulling images, and the
create/start/stop/remove primitives used by recreation. Errors propagate as
docker.errors.* (or ImagePullError for pulls); nothing here swallows them.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import docker
from docker.errors import APIError, ImageNotFound, NotFound

from exceptions import ImagePullError
from utils.async_docker import async_docker_call, async_containers_list

logger = logging.getLogger(__name__)


def _classify_pull_error(error: Exception) -> str:
    """Map a docker SDK pull exception to an ImagePullError reason"""
    if isinstance(error, (ImageNotFound, NotFound)):
        return ImagePullError.NOT_FOUND

    message = str(error).lower()
    if isinstance(error, APIError):
        status = getattr(error, 'status_code', None)
        if status == 404 or 'not found' in message or 'manifest unknown' in message:
            return ImagePullError.NOT_FOUND
        if status in (401, 403) or 'unauthorized' in message or 'denied' in message:
            return ImagePullError.AUTH_DENIED
    return ImagePullError.ERROR


class ContainerInspector:
    """
    Engine boundary for ContainerPulse.

    Args:
        client: docker.DockerClient (defaults to docker.from_env())
    """

    def __init__(self, client: Optional[docker.DockerClient] = None):
        self._client = client

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = docker.from_env()
        return self._client

    async def list_running(self) -> List[str]:
        """Return full ids of all running containers"""
        containers = await async_containers_list(self.client, filters={'status': 'running'})
        return [c.id for c in containers]

    async def inspect(self, id_or_name: str) -> Dict[str, Any]:
        """
        Full raw inspection data for a container.

        Raises:
            docker.errors.NotFound: container does not exist
        """
        return await async_docker_call(self.client.api.inspect_container, id_or_name)

    async def image_id(self, reference: str) -> Optional[str]:
        """Resolve an image reference to its local image id, None if absent"""
        try:
            image = await async_docker_call(self.client.images.get, reference)
            return image.id
        except ImageNotFound:
            return None

    async def image_attrs(self, reference: str) -> Dict[str, Any]:
        image = await async_docker_call(self.client.images.get, reference)
        return image.attrs

    async def pull(self, reference: str, timeout: int = 600) -> str:
        """
        Pull an image by reference and return the resolved image id.

        Args:
            reference: image reference as configured on the container
            timeout: seconds to wait for the pull to complete

        Raises:
            ImagePullError: reason not_found, auth_denied, timeout or error
        """
        try:
            image = await asyncio.wait_for(
                async_docker_call(self.client.images.pull, reference),
                timeout=timeout
            )
        except asyncio.TimeoutError:
            raise ImagePullError(
                reference, ImagePullError.TIMEOUT,
                f"Image pull timed out after {timeout}s for {reference}"
            )
        except (APIError, docker.errors.DockerException) as e:
            reason = _classify_pull_error(e)
            raise ImagePullError(reference, reason, f"Failed to pull {reference}: {e}") from e

        # images.pull returns a list when the reference carries no tag and all_tags applies
        if isinstance(image, list):
            image = image[0] if image else None
        if image is None:
            resolved = await self.image_id(reference)
            if not resolved:
                raise ImagePullError(reference, ImagePullError.NOT_FOUND)
            return resolved

        logger.debug(f"Pulled {reference} -> {image.id}")
        return image.id

    async def create(self, params) -> str:
        """
        Create a container from CreationParams.

        Returns:
            Full id of the created (not started) container
        """
        api = self.client.api
        host_config = api.create_host_config(**params.host_config_kwargs())
        networking_config = None
        endpoints = params.endpoint_configs()
        if endpoints:
            networking_config = api.create_networking_config({
                name: api.create_endpoint_config(**kwargs)
                for name, kwargs in endpoints.items()
            })

        response = await async_docker_call(
            api.create_container,
            host_config=host_config,
            networking_config=networking_config,
            **params.create_kwargs(),
        )

        container_id = response['Id']

        # create_container only accepts one endpoint on older engines; attach the rest
        try:
            for name, kwargs in params.extra_network_connects().items():
                await async_docker_call(api.connect_container_to_network, container_id, name, **kwargs)
        except APIError:
            # A half-attached container is not a faithful replacement
            try:
                await async_docker_call(api.remove_container, container_id, force=True)
            except APIError as cleanup_error:
                logger.warning(f"Failed to remove partially created container {container_id[:12]}: {cleanup_error}")
            raise

        return container_id

    async def start(self, container_id: str) -> None:
        await async_docker_call(self.client.api.start, container_id)

    async def stop(self, container_id: str, timeout: int = 30) -> None:
        await async_docker_call(self.client.api.stop, container_id, timeout=timeout)

    async def remove(self, container_id: str, force: bool = False, v: bool = False) -> None:
        """Remove a container; named volumes survive unless v=True"""
        await async_docker_call(self.client.api.remove_container, container_id, v=v, force=force)

    async def remove_image(self, image_id: str) -> None:
        await async_docker_call(self.client.images.remove, image_id)

    async def list_images(self, reference: str) -> List[Any]:
        """Local images for a repository name"""
        return await async_docker_call(self.client.images.list, name=reference)

    async def logs(self, container_id: str, tail: int = 1000) -> str:
        data = await async_docker_call(self.client.api.logs, container_id, tail=tail)
        if isinstance(data, bytes):
            return data.decode('utf-8', errors='replace')
        return data

    async def run_detached(self, image: str, **kwargs):
        """Run a detached helper container (containers.run(detach=True))"""
        return await async_docker_call(self.client.containers.run, image, detach=True, **kwargs)
