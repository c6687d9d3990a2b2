"""
Retry mechanisms with exponential backoff for handling transient failures.
"""

import asyncio
import logging
import random
from typing import Any, Awaitable, Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_delay: float = 0.2
    max_delay: float = 5.0
    exponential_base: float = 2.0
    jitter: bool = True


def compute_delay(config: RetryConfig, attempt: int) -> float:
    delay = min(config.base_delay * (config.exponential_base ** attempt), config.max_delay)
    if config.jitter:
        # Spread retries from concurrent callers
        delay = delay * (0.5 + random.random() * 0.5)
    return delay


async def retry_async(
    func: Callable[..., Awaitable[Any]],
    config: RetryConfig,
    *args,
    retryable_exceptions: tuple = (Exception,),
    non_retryable_exceptions: tuple = (),
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **kwargs
) -> Any:
    """
    Retry an async function with exponential backoff.

    Args:
        func: The async function to retry
        config: Retry configuration
        retryable_exceptions: Exceptions that should trigger retries
        non_retryable_exceptions: Exceptions that should not trigger retries
        sleep: Delay function awaited between attempts
        *args, **kwargs: Arguments to pass to the function

    Returns:
        The result of the function call

    Raises:
        The last exception if all retries are exhausted
    """
    name = getattr(func, "__name__", repr(func))
    last_exception = None

    for attempt in range(config.max_attempts):
        try:
            result = await func(*args, **kwargs)
            if attempt > 0:
                logger.info(f"Function {name} succeeded on attempt {attempt + 1}")
            return result

        except non_retryable_exceptions as e:
            logger.error(f"Non-retryable error in {name}: {e}")
            raise

        except retryable_exceptions as e:
            last_exception = e

            if attempt == config.max_attempts - 1:
                break

            delay = compute_delay(config, attempt)
            logger.warning(
                f"Attempt {attempt + 1} failed for {name}: {e}. "
                f"Retrying in {delay:.2f}s..."
            )
            await sleep(delay)

    logger.error(f"All {config.max_attempts} attempts failed for {name}")
    raise last_exception

