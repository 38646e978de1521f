"""Retry policies for infrastructure connections.

Only connections to our own infrastructure (Redis) are retried. Calls to the
analysis worker are never retried here: a repeated dispatch would start a
second, billed worker run.
"""

import logging
from typing import Callable, Tuple, Type, TypeVar

from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


# Startup connection policy
# - Wait 2s, 4s, 8s, 16s between attempts (capped at 32s)
# - Stop after 5 attempts
# - Re-raise the last exception if all attempts fail
service_startup_retry = retry(
    stop=stop_after_attempt(5),
    wait=wait_exponential(multiplier=1, min=2, max=32),
    before_sleep=before_sleep_log(logger, logging.WARNING),
    reraise=True,
)


def create_custom_retry(
    max_attempts: int = 5,
    min_wait: float = 2,
    max_wait: float = 32,
    multiplier: float = 1,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """Create a retry decorator for a specific infrastructure call.

    Args:
        max_attempts: Maximum number of attempts
        min_wait: Minimum wait time between attempts (seconds)
        max_wait: Maximum wait time between attempts (seconds)
        multiplier: Exponential backoff multiplier
        retry_on: Exception types that trigger another attempt

    Example:
        ```python
        store_retry = create_custom_retry(
            max_attempts=3, min_wait=0.1, max_wait=1, retry_on=(ConnectionError,)
        )

        @store_retry
        async def read_job(job_id):
            ...
        ```
    """
    return retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=multiplier, min=min_wait, max=max_wait),
        retry=retry_if_exception_type(retry_on),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
