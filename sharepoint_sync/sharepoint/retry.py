from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

from ..errors import SourceError

"""Retry with exponential backoff (delay, 2*delay, 4*delay, ...)."""

__all__ = ["retry_with_backoff"]

logger = logging.getLogger(__name__)

T = TypeVar("T")


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    *,
    attempts: int = 3,
    initial_delay: float = 1.0,
    retry_on: tuple[type[BaseException], ...] = (SourceError,),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> T:
    """Await ``fn()`` up to ``attempts`` times; re-raise the last error."""
    if attempts < 1:
        raise ValueError(f"attempts must be >= 1: {attempts}")
    for attempt in range(attempts):
        try:
            return await fn()
        except retry_on as e:
            if attempt == attempts - 1:
                raise
            delay = initial_delay * (2 ** attempt)
            logger.warning(f"retry attempt {attempt + 1}/{attempts} after {delay:g}s: {e}")
            await sleep(delay)
    raise AssertionError("unreachable")  # pragma: no cover
