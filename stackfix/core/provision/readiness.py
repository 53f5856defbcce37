"""
Readiness — bounded waits for things that take time to come up.

Nothing here waits forever. Every wait has a deadline and raises
ReadinessTimeoutError when it passes.
"""

from __future__ import annotations

import logging
import socket
import time
from collections.abc import Callable

from stackfix.core.errors import ReadinessTimeoutError

logger = logging.getLogger(__name__)


def wait_until(
    predicate: Callable[[], bool],
    timeout: float,
    interval: float = 5.0,
    description: str = "condition",
    clock: Callable[[], float] = time.monotonic,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Poll ``predicate`` until it returns True or ``timeout`` expires.

    Exceptions raised by the predicate count as "not yet".

    Raises:
        ReadinessTimeoutError: the deadline passed first.
    """
    deadline = clock() + timeout
    attempts = 0
    last_error: str | None = None

    while True:
        attempts += 1
        try:
            if predicate():
                logger.debug("%s ready after %d attempt(s)", description, attempts)
                return
            last_error = None
        except Exception as e:
            last_error = str(e)
            logger.debug("%s probe raised: %s", description, e)

        remaining = deadline - clock()
        if remaining <= 0:
            break
        sleep(min(interval, remaining))

    detail = f" (last error: {last_error})" if last_error else ""
    raise ReadinessTimeoutError(
        f"Timed out after {timeout}s waiting for {description}{detail}"
    )


def tcp_probe(host: str, port: int = 22, timeout: float = 5.0) -> bool:
    """Whether a TCP connection to ``host:port`` can be opened."""
    try:
        with socket.create_connection((host, port), timeout=timeout):
            return True
    except OSError:
        return False
