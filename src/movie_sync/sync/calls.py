"""Helpers for issuing bounded backend calls."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

from ..errors import NetworkTimeoutError

T = TypeVar("T")


async def bounded(call: Awaitable[T], timeout: float) -> T:
    """Await ``call``, converting an overrun of ``timeout`` seconds into NetworkTimeoutError."""
    try:
        return await asyncio.wait_for(call, timeout)
    except asyncio.TimeoutError as e:
        raise NetworkTimeoutError(f"Call exceeded {timeout:.0f}s") from e
