"""Concurrent fan-out / fan-in of independent store operations."""
import asyncio
from typing import Any, Awaitable


async def fan_out(*awaitables: Awaitable[Any]) -> list[Any]:
    """
    Await all, returning results in argument order.

    If any fails (or the caller is cancelled) the siblings still in flight
    are cancelled and awaited before the error propagates.
    """
    tasks = [asyncio.ensure_future(aw) for aw in awaitables]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
