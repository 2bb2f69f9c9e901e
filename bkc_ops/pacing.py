#!/usr/bin/env python3
"""
Submission pacing between consecutive state-changing transactions
"""

import logging
import time
from typing import Callable, Set

logger = logging.getLogger(__name__)


class RateLimiter:
    """Called before every submit issued by a signer"""

    def before_submit(self, signer_id: str) -> None:
        raise NotImplementedError


class NoDelay(RateLimiter):
    """No pacing at all; used by tests and local dev chains"""

    def before_submit(self, signer_id: str) -> None:
        return None


class FixedDelay(RateLimiter):
    """
    Wait delay_ms before every submit from a signer except its first one.

    Submits are only issued once the previous transaction confirmed, so the
    wait always lands between two confirmed operations. This is a fixed wait,
    never a retry: a provider error after the wait still surfaces to the
    caller.
    """

    def __init__(self, delay_ms: int, sleep: Callable[[float], None] = time.sleep):
        if delay_ms < 0:
            raise ValueError("delay_ms must be >= 0")
        self.delay = delay_ms / 1000.0
        self._sleep = sleep
        self._seen: Set[str] = set()

    def before_submit(self, signer_id: str) -> None:
        if signer_id in self._seen:
            logger.debug(f"Pacing {signer_id}: waiting {self.delay:.2f}s before next submit")
            self._sleep(self.delay)
        else:
            self._seen.add(signer_id)


def build_limiter(delay_ms: int) -> RateLimiter:
    return FixedDelay(delay_ms) if delay_ms > 0 else NoDelay()
