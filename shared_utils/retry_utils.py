"""
Bounded retries with exponential backoff for calls to external collaborators
(STAC catalogs, object stores, export targets).

Author: Diego Bengochea
"""

import logging
import time
from typing import Any, Callable, Optional, Tuple, Type


def retry_call(
    func: Callable[..., Any],
    *args,
    attempts: int = 3,
    initial_backoff: float = 1.0,
    label: str = "call",
    no_retry: Tuple[Type[BaseException], ...] = (),
    logger: Optional[logging.Logger] = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs
) -> Any:
    """
    Call ``func`` until it succeeds or ``attempts`` calls have failed.

    The wait between attempts doubles after every failure. Exceptions listed in
    ``no_retry`` are re-raised immediately. When every attempt fails, the last
    exception is re-raised.

    Args:
        func: Callable to invoke
        attempts: Maximum number of calls (>= 1)
        initial_backoff: Seconds to wait after the first failure
        label: Short description used in log messages
        no_retry: Exception types that are never retried
        logger: Logger for retry messages
        sleep: Sleep function, injectable for tests

    Returns:
        Whatever ``func`` returns

    Examples:
        >>> items = retry_call(catalog.search, attempts=3, label="STAC search", bbox=bbox)
    """
    logger = logger or logging.getLogger(__name__)
    attempts = max(1, int(attempts))

    for attempt in range(1, attempts + 1):
        try:
            return func(*args, **kwargs)
        except no_retry:
            raise
        except Exception as e:
            if attempt == attempts:
                logger.error(f"{label} failed after {attempts} attempt(s): {e}")
                raise
            wait_s = initial_backoff * (2 ** (attempt - 1))
            logger.warning(
                f"{label} error on attempt {attempt}/{attempts}: {e}; retrying in {wait_s:.1f}s"
            )
            sleep(wait_s)
