from typing import TypeVar, Callable, Optional, Type, Tuple, Any, Awaitable
import asyncio

T = TypeVar('T')


async def retry_async(
    func: Callable[..., Awaitable[T]],
    max_attempts: int = 3,
    backoff: str = "exponential",
    initial_delay: float = 0.5,
    max_delay: float = 30.0,
    retry_on: Tuple[Type[Exception], ...] = (Exception,),
    logger: Optional[Any] = None,
) -> T:
    """
    Retry an async function with configurable backoff.

    Errors exposing ``is_retryable()`` (the vaultsearch hierarchy) are only retried when it
    returns True; anything else in ``retry_on`` is always retried.

    Args:
        func: Zero-argument callable returning the awaitable to retry
        max_attempts: Maximum number of attempts
        backoff: "exponential", "linear", or "constant"
        initial_delay: Initial delay in seconds
        max_delay: Maximum delay between retries
        retry_on: Tuple of exceptions to retry on
        logger: Optional logger for retry attempts

    Returns:
        Result from successful function call

    Raises:
        Last exception if all retries fail
    """
    for attempt in range(max_attempts):
        try:
            return await func()
        except retry_on as e:
            is_retryable = getattr(e, "is_retryable", None)
            if callable(is_retryable) and not is_retryable():
                raise

            if attempt >= max_attempts - 1:
                if logger:
                    logger.error("All retry attempts failed", attempts=max_attempts, error=str(e))
                raise

            if backoff == "exponential":
                delay = min(initial_delay * (2**attempt), max_delay)
            elif backoff == "linear":
                delay = min(initial_delay * (attempt + 1), max_delay)
            else:  # constant
                delay = initial_delay

            if logger:
                logger.warning(
                    "Retry attempt failed",
                    attempt=attempt + 1,
                    max_attempts=max_attempts,
                    delay=delay,
                    error=str(e),
                )

            await asyncio.sleep(delay)

    raise RuntimeError("retry_async called with max_attempts < 1")
