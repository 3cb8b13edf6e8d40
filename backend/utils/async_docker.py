"""
Async wrapper for blocking Docker SDK calls.

The Docker SDK talks to the daemon over a blocking HTTP socket, so every call
is pushed onto a worker thread to keep the event loop responsive.
"""

import asyncio
from typing import Any, Callable, TypeVar

T = TypeVar('T')


async def async_docker_call(func: Callable[..., T], *args: Any, **kwargs: Any) -> T:
    """
    Run a blocking Docker SDK callable in a worker thread.

    Example:
        containers = await async_docker_call(client.containers.list)
    """
    return await asyncio.to_thread(func, *args, **kwargs)
