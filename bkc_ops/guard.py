#!/usr/bin/env python3
"""
Idempotency Guard
Check-then-create wrapper for on-chain resources whose creation is not
naturally idempotent
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, List, Optional

from .errors import CreationUnverified

logger = logging.getLogger(__name__)

CREATED = "created"
SKIPPED = "skipped"
FAILED = "failed"


@dataclass
class GuardedResource:
    """
    A resource the guard may create.

    Attributes:
        key: Resource identifier (e.g. pool boost bips)
        label: Human-readable name for logs
        exists: Chain read returning True when the resource is present
        create: Submits the creation and returns once it is confirmed
    """
    key: Any
    label: str
    exists: Callable[[], bool]
    create: Callable[[], Any]


@dataclass
class ResourceOutcome:
    key: Any
    label: str
    status: str
    error: Optional[Exception] = None


@dataclass
class GuardSummary:
    """Partial-success summary of a guarded batch"""
    outcomes: List[ResourceOutcome] = field(default_factory=list)
    error: Optional[Exception] = None

    def _count(self, status: str) -> int:
        return sum(1 for o in self.outcomes if o.status == status)

    @property
    def created(self) -> int:
        return self._count(CREATED)

    @property
    def skipped(self) -> int:
        return self._count(SKIPPED)

    @property
    def failed(self) -> int:
        return self._count(FAILED)

    @property
    def failed_key(self) -> Any:
        for outcome in self.outcomes:
            if outcome.status == FAILED:
                return outcome.key
        return None

    @property
    def ok(self) -> bool:
        return self.error is None

    def raise_for_failure(self) -> None:
        """Re-raise the error that aborted the batch, if any"""
        if self.error is not None:
            raise self.error

    def describe(self) -> str:
        return f"created={self.created} skipped={self.skipped} failed={self.failed}"


class IdempotencyGuard:
    """Query existence first; create only when absent, then verify"""

    def ensure(self, resource: GuardedResource) -> str:
        """
        Make sure a single resource exists.

        Returns:
            CREATED or SKIPPED

        Raises:
            CreationUnverified: creation confirmed but the resource is still absent
        """
        if resource.exists():
            logger.info(f"   ⚠️ SKIPPED: {resource.label} already exists.")
            return SKIPPED

        resource.create()

        if not resource.exists():
            raise CreationUnverified(resource.label)

        logger.info(f"   ✅ CREATED: {resource.label}.")
        return CREATED

    def run_batch(self, resources: Iterable[GuardedResource]) -> GuardSummary:
        """
        Ensure resources sequentially in declared order.

        A failure on one resource stops the batch; the summary records the
        failing resource and keeps the original exception.
        """
        summary = GuardSummary()
        for resource in resources:
            logger.info(f" -> Processing {resource.label}")
            try:
                status = self.ensure(resource)
            except Exception as e:
                logger.error(f"   ❌ FAILED: {resource.label}. Reason: {e}")
                summary.outcomes.append(ResourceOutcome(resource.key, resource.label, FAILED, e))
                summary.error = e
                break
            summary.outcomes.append(ResourceOutcome(resource.key, resource.label, status))

        logger.info(f"Guarded batch finished: {summary.describe()}")
        return summary
