"""
Async wrappers for Docker SDK to prevent event loop blocking.

The official Docker SDK (docker-py) is synchronous. These wrappers use asyncio.to_thread()
to run blocking calls in a thread pool, keeping the asyncio event loop responsive while
the scheduler and the web surface share one process.

Usage:
    from utils.async_docker import async_docker_call, async_containers_list

    # Generic wrapper
    attrs = await async_docker_call(client.api.inspect_container, container_id)

    # Convenience functions
    containers = await async_containers_list(client)
"""

import asyncio
from typing import Callable, TypeVar, List

# Type variable for generic return types
T = TypeVar('T')


async def async_docker_call(sync_fn: Callable[..., T], *args, **kwargs) -> T:
    """
    Execute a synchronous Docker SDK call in a thread pool.

    Uses asyncio.to_thread() which delegates to the default ThreadPoolExecutor.
    Once issued, the engine call is not cancelled; awaiting code that times out
    only stops waiting for it.

    Args:
        sync_fn: Synchronous function to call (e.g., client.info, container.start)
        *args: Positional arguments to pass to sync_fn
        **kwargs: Keyword arguments to pass to sync_fn

    Returns:
        Result from the synchronous function
    """
    return await asyncio.to_thread(sync_fn, *args, **kwargs)


async def async_containers_list(client, **kwargs) -> List:
    """
    List containers asynchronously.

    Defaults ignore_removed=True to skip ghost containers that appear in
    Docker's list endpoint but 404 on inspect.

    Args:
        client: Docker client instance
        **kwargs: Arguments to pass to containers.list() (e.g., all=True)

    Returns:
        List of Container objects
    """
    kwargs.setdefault('ignore_removed', True)
    return await async_docker_call(client.containers.list, **kwargs)
