"""
Retry Helper - re-invokes a failing call after a delay

Used only by the single-shot remote backends; the tool-call loop and the
local model never retry.
"""

import time
from functools import wraps
from typing import Callable, Tuple, Type

from loguru import logger


def retry_with_delay(
    max_retries: int = 1,
    delay: float = 2.0,
    backoff_multiplier: float = 1.0,
    exceptions: Tuple[Type[Exception], ...] = (Exception,),
    should_retry: Callable[[Exception], bool] = lambda e: True,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator that retries a function on the given exceptions.

    Args:
        max_retries: Extra attempts after the first (total = max_retries + 1)
        delay: Seconds to wait before each retry
        backoff_multiplier: 1.0 keeps the delay fixed
        exceptions: Exception types that may trigger a retry
        should_retry: Further filter; returning False re-raises immediately
        sleep: Injected for tests

    Example:
        @retry_with_delay(max_retries=1, delay=2.0, exceptions=(CurationError,))
        def call_api():
            ...
    """
    def decorator(func: Callable) -> Callable:
        @wraps(func)
        def wrapper(*args, **kwargs):
            wait = delay
            for attempt in range(max_retries + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == max_retries or not should_retry(e):
                        if attempt == max_retries and max_retries > 0:
                            logger.error(f"{func.__name__} failed after {attempt + 1} attempts: {e}")
                        raise

                    logger.warning(
                        f"{func.__name__} failed (attempt {attempt + 1}/{max_retries + 1}), "
                        f"retrying in {wait:.1f}s: {e}"
                    )
                    sleep(wait)
                    wait *= backoff_multiplier

        return wrapper
    return decorator
