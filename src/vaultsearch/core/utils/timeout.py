"""
Timeout helper for optional LLM calls.

Query expansion and hypothetical-passage generation must never delay or fail a retrieval:
the call is cancelled when the deadline passes and a fallback value is returned instead.
"""

import asyncio
from typing import Any, Awaitable, Callable, Optional, TypeVar

T = TypeVar("T")


async def run_with_timeout(
    func: Callable[[], Awaitable[T]],
    timeout: float,
    fallback: T,
    operation: str,
    logger: Optional[Any] = None,
) -> T:
    """
    Await ``func()`` for at most ``timeout`` seconds.

    The pending call is cancelled on timeout. Timeouts and errors both yield ``fallback``.
    ``asyncio.CancelledError`` from the caller side still propagates.
    """
    try:
        return await asyncio.wait_for(func(), timeout=timeout)
    except asyncio.TimeoutError:
        if logger:
            logger.warning("Operation timed out, using fallback", operation=operation, timeout=timeout)
    except Exception as e:
        if logger:
            logger.warning("Operation failed, using fallback", operation=operation, error=str(e))
    return fallback
