"""Bounded waits for device state transitions."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from hpe_mgmt_utility.errors import PollTimeout

_LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class PollPolicy:
    """Fixed or growing interval between attempts, capped by max_attempts."""

    interval: float = 10.0
    max_attempts: int = 90
    backoff: float = 1.0
    max_interval: float = 300.0

    def delays(self):
        delay = self.interval
        for _ in range(self.max_attempts - 1):
            yield delay
            delay = min(delay * self.backoff, self.max_interval)


def wait_until(
    check: Callable[[], Optional[T]],
    policy: PollPolicy,
    description: str,
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """Call ``check`` until it returns a truthy value and return that value.

    Raises PollTimeout once ``policy.max_attempts`` calls came back falsy.
    """

    attempt = 1
    result = check()
    if result:
        return result
    for delay in policy.delays():
        _LOGGER.debug("Waiting %.0fs for %s (attempt %s/%s)", delay, description, attempt, policy.max_attempts)
        sleep(delay)
        attempt += 1
        result = check()
        if result:
            return result
    raise PollTimeout(description, attempt)
