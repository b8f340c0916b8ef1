"""Blocking calls on a shared worker pool, timed from the moment they start."""

import asyncio
from concurrent.futures import Executor
from typing import Any, Callable


async def run_blocking(executor: Executor | None, timeout_s: float, func: Callable[..., Any], *args) -> Any:
    """
    Run ``func(*args)`` on ``executor`` and wait at most ``timeout_s`` for it.

    The deadline starts when a worker picks the call up, so time spent queued
    behind other calls (hung siblings included) is never charged to it.

    Raises:
        asyncio.TimeoutError: If the call runs longer than ``timeout_s``
    """
    loop = asyncio.get_running_loop()
    started = asyncio.Event()

    def call():
        try:
            loop.call_soon_threadsafe(started.set)
        except RuntimeError:
            # loop already closed; nobody is waiting for this result
            pass
        return func(*args)

    future = loop.run_in_executor(executor, call)
    start_wait = asyncio.ensure_future(started.wait())
    try:
        await asyncio.wait({future, start_wait}, return_when=asyncio.FIRST_COMPLETED)
    except asyncio.CancelledError:
        future.cancel()
        raise
    finally:
        start_wait.cancel()

    if future.done():
        return future.result()
    return await asyncio.wait_for(future, timeout=timeout_s)
