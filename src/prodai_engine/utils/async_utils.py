"""Bridge between Celery's synchronous tasks and the async worker."""

import asyncio
from collections.abc import Coroutine
from typing import Any, TypeVar

T = TypeVar("T")


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Run a coroutine to completion from synchronous code.

    The event loop of the current thread is reused and left open, since a
    Celery worker process runs many tasks back to back on the same thread.

    Args:
        coro: The coroutine to execute.

    Returns:
        The coroutine's result.
    """
    try:
        loop = asyncio.get_event_loop()
        if loop.is_closed():
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
    except RuntimeError:
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
    return loop.run_until_complete(coro)
