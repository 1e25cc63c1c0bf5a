"""Async helpers shared across the engine."""

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


async def with_timeout(awaitable: Awaitable[T], seconds: float, label: str) -> T:
    """
    Await with a deadline.

    Raises:
        TimeoutError: "<label> timed out after <ms>ms"
    """
    try:
        return await asyncio.wait_for(awaitable, timeout=seconds)
    except asyncio.TimeoutError:
        raise TimeoutError(f"{label} timed out after {int(seconds * 1000)}ms") from None
