"""Bounded polling — used by the boot readiness wait."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReadinessWaitConfig:
    probe: Callable[[], bool]
    interval: float = 2.0
    max_attempts: int = 30


def wait_until(
    predicate: Callable[[], bool],
    interval: float,
    max_attempts: int,
    sleep: Callable[[float], object] = time.sleep,
    cancelled: Callable[[], bool] = lambda: False,
) -> int | None:
    """Poll ``predicate`` up to ``max_attempts`` times.

    Returns the attempt number that succeeded, or None when attempts are
    exhausted or ``cancelled()`` turns true. Never sleeps after the last try.
    """
    for attempt in range(1, max_attempts + 1):
        try:
            if predicate():
                return attempt
        except Exception as e:
            logger.debug("Poll attempt %d raised %s: %s", attempt, type(e).__name__, e)
        if attempt == max_attempts or cancelled():
            break
        sleep(interval)
        if cancelled():
            break
    return None
