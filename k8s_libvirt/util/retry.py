"""
Retry and polling helpers for operations against freshly booted VMs.
"""

import logging
import time
from collections.abc import Callable
from functools import wraps
from typing import TypeVar

from k8s_libvirt.exceptions import RetryableError

T = TypeVar("T")

logger = logging.getLogger(__name__)


def retry_with_backoff(
    max_attempts: int = 3,
    initial_delay: float = 1.0,
    backoff_factor: float = 2.0,
    max_delay: float = 60.0,
    retryable_exceptions: tuple[type[Exception], ...] = (Exception,),
    on_retry: Callable[[Exception, int, int], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
):
    """
    Decorator to retry a function with exponential backoff.

    Args:
        max_attempts: Maximum number of attempts (default: 3)
        initial_delay: Initial delay in seconds (default: 1.0)
        backoff_factor: Multiplier for delay after each failure (default: 2.0)
        max_delay: Maximum delay between retries (default: 60.0)
        retryable_exceptions: Tuple of exception types to retry (default: all)
        on_retry: Optional callback called on each retry: (error, attempt, max_attempts)
        sleep: Sleep function, replaceable in tests

    Returns:
        Decorated function with retry logic

    Example:
        @retry_with_backoff(max_attempts=5, initial_delay=5.0)
        def ping_nodes():
            runner.ping("all")
    """

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @wraps(func)
        def wrapper(*args, **kwargs) -> T:
            delay = initial_delay
            last_exception = None

            for attempt in range(1, max_attempts + 1):
                try:
                    return func(*args, **kwargs)
                except retryable_exceptions as e:
                    last_exception = e

                    if attempt == max_attempts:
                        break

                    if on_retry is not None:
                        on_retry(e, attempt, max_attempts)

                    sleep(min(delay, max_delay))
                    delay *= backoff_factor

            assert last_exception is not None
            raise RetryableError(last_exception, max_attempts, max_attempts)

        return wrapper

    return decorator


def log_retry(error: Exception, attempt: int, max_attempts: int) -> None:
    """on_retry callback that reports through the module logger."""
    logger.warning(f"Attempt {attempt}/{max_attempts} failed: {error}. Retrying...")


def is_retryable_error(message: str) -> bool:
    """
    Decide whether SSH/Ansible error output describes a transient condition.

    VMs that are still booting refuse connections, drop them while sshd
    restarts, or have not picked up a DHCP lease yet. Authentication and
    configuration errors are permanent.
    """
    text = message.lower()

    if "permission denied" in text or "host key verification failed" in text:
        return False

    return any(
        keyword in text
        for keyword in [
            "connection refused",
            "connection reset",
            "connection closed",
            "connection timed out",
            "timed out",
            "no route to host",
            "network is unreachable",
            "kex_exchange_identification",
            "unreachable",
        ]
    )


def wait_until(
    predicate: Callable[[], bool],
    timeout: float,
    interval: float,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> bool:
    """
    Poll predicate every interval seconds until it returns True.

    Returns:
        True once predicate succeeds, False when timeout elapses first
    """
    deadline = clock() + timeout
    while True:
        if predicate():
            return True
        remaining = deadline - clock()
        if remaining <= 0:
            return False
        sleep(min(interval, remaining))
