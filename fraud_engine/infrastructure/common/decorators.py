"""Infrastructure decorators for cross-cutting concerns."""

import functools
import time
from typing import Callable, Optional

import structlog

from .context import (
    ExecutionContext,
    get_current_execution_context,
    reset_execution_context,
    set_execution_context,
)

logger = structlog.get_logger(__name__)


def with_execution_context(operation_type: Optional[str] = None):
    """Decorator to inject execution context into function."""
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            # Reuse the caller's context so nested operations share a correlation id
            if get_current_execution_context():
                return func(*args, **kwargs)

            context = ExecutionContext.create_for_system(
                operation_type=operation_type or func.__name__,
            )

            token = set_execution_context(context)
            try:
                return func(*args, **kwargs)
            finally:
                reset_execution_context(token)

        return wrapper

    return decorator


def with_retry(
    max_attempts: int = 3,
    backoff_factor: float = 1.0,
    exceptions: tuple = (Exception,),
    on_retry: Optional[Callable] = None,
):
    """Decorator for automatic retry with exponential backoff.

    ``max_attempts`` and ``backoff_factor`` may also be callables taking the
    decorated method's ``self``, so services can read them from their config.
    """
    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args, **kwargs):
            attempts = max_attempts(args[0]) if callable(max_attempts) else max_attempts
            backoff = backoff_factor(args[0]) if callable(backoff_factor) else backoff_factor
            attempts = max(1, attempts)

            for attempt in range(attempts):
                try:
                    return func(*args, **kwargs)
                except exceptions as e:
                    if attempt == attempts - 1:
                        logger.error(
                            "Function failed after all retry attempts",
                            function=func.__name__,
                            attempts=attempts,
                            error=str(e),
                        )
                        raise

                    delay = backoff * (2 ** attempt)

                    logger.warning(
                        "Function failed, retrying",
                        function=func.__name__,
                        attempt=attempt + 1,
                        max_attempts=attempts,
                        delay_seconds=delay,
                        error=str(e),
                    )

                    if on_retry:
                        on_retry(attempt, e)

                    if delay > 0:
                        time.sleep(delay)

        return wrapper

    return decorator
