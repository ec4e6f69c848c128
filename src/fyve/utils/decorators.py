"""Decorator utilities for cross-cutting concerns."""
import functools
import logging
import time
from typing import Any, Callable, Optional, Tuple, Type, TypeVar, cast

logger = logging.getLogger(__name__)

F = TypeVar('F', bound=Callable[..., Any])


def log_operation(description: str):
    """Decorator for timing and logging a container operation.

    Args:
        description: Human readable name used in the log lines
    """
    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            logger.info(f"Starting: {description}")
            start_time = time.monotonic()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                duration = time.monotonic() - start_time
                logger.error(f"Failed: {description} after {duration:.2f}s - {e}")
                raise
            duration = time.monotonic() - start_time
            logger.info(f"Completed: {description} in {duration:.2f}s")
            return result
        return cast(F, wrapper)
    return decorator


def retry(max_attempts: int = 3, delay: float = 1.0, backoff: float = 2.0,
          exceptions: Tuple[Type[BaseException], ...] = (Exception,),
          logger_name: Optional[str] = None,
          sleep: Callable[[float], None] = time.sleep):
    """Decorator for retrying a call with exponential backoff.

    Args:
        max_attempts: Total number of attempts, including the first
        delay: Seconds to wait after the first failure
        backoff: Multiplier applied to the delay after each failure
        exceptions: Exception types that trigger a retry
        logger_name: Optional logger name (defaults to this module's logger)
        sleep: Sleep function, replaceable in tests

    Returns:
        Decorator function
    """
    retry_logger = logging.getLogger(logger_name) if logger_name else logger
    max_attempts = max(max_attempts, 1)

    def decorator(func: F) -> F:
        name = getattr(func, "__name__", repr(func))

        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            current_delay = delay
            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt >= max_attempts:
                        retry_logger.error(f"All {max_attempts} attempts failed for {name}: {e}")
                        raise
                    retry_logger.warning(
                        f"Attempt {attempt}/{max_attempts} for {name} failed: {e}. "
                        f"Retrying in {current_delay:.2f}s"
                    )
                    sleep(current_delay)
                    current_delay *= backoff
        return cast(F, wrapper)
    return decorator
