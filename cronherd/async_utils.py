"""Helpers for driving awaitables returned by task handlers."""

from __future__ import annotations

import asyncio
import inspect
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Awaitable, Callable


def wait_for(awaitable: Awaitable[Any]) -> Any:
    """Block until *awaitable* finishes and return its result.

    Handlers normally run on scheduler worker threads where no event loop
    exists, so ``asyncio.run`` is used directly.  When the caller already
    sits inside a running loop the awaitable is driven by a fresh loop on a
    helper thread instead.
    """

    async def _consume() -> Any:
        return await awaitable

    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(_consume())
    with ThreadPoolExecutor(max_workers=1) as executor:
        return executor.submit(asyncio.run, _consume()).result()


def call_handler(handler: Callable[[], Any]) -> Any:
    """Call a zero-argument handler, awaiting the result if needed."""

    result = handler()
    if inspect.isawaitable(result):
        result = wait_for(result)
    return result
