#!/usr/bin/env python3
"""
Price Adjustment Engine
Integer fixed-point repricing of PublicSale tiers
"""

import logging
from dataclasses import dataclass, field
from typing import List, Optional

from web3 import Web3

from .chain import ChainClient, ContractRef, transact
from .errors import ConfigurationError, ConfirmationTimeout
from .pacing import RateLimiter
from .tiers import TierRegistry, TierState

logger = logging.getLogger(__name__)

UPDATED = "updated"
SKIPPED = "skipped"
PLANNED = "planned"
FAILED = "failed"


@dataclass(frozen=True)
class PriceMultiplier:
    """Rational multiplier numerator/denominator, e.g. 150/100 for +50%"""
    numerator: int
    denominator: int

    def __post_init__(self):
        if self.numerator <= 0 or self.denominator <= 0:
            raise ConfigurationError(
                f"Price multiplier must be positive, got {self.numerator}/{self.denominator}"
            )

    @classmethod
    def parse(cls, text: str) -> "PriceMultiplier":
        """Parse 'N/D' (or a bare integer percentage such as '150')"""
        try:
            if "/" in text:
                num, den = text.split("/", 1)
                return cls(int(num.strip()), int(den.strip()))
            return cls(int(text.strip()), 100)
        except ValueError:
            raise ConfigurationError(f"Invalid price multiplier {text!r}; expected N/D") from None

    def apply(self, price: int) -> int:
        """floor(price * numerator / denominator), integers only"""
        return price * self.numerator // self.denominator

    def __str__(self) -> str:
        return f"{self.numerator}/{self.denominator}"


@dataclass
class TierPriceResult:
    tier_id: int
    status: str
    old_price: Optional[int] = None
    new_price: Optional[int] = None
    error: Optional[Exception] = None

    @property
    def applied_price(self) -> Optional[int]:
        """Price in force on-chain after this tier was processed"""
        if self.status == UPDATED:
            return self.new_price
        if isinstance(self.error, ConfirmationTimeout):
            return None
        return self.old_price


@dataclass
class PriceAdjustmentReport:
    multiplier: PriceMultiplier
    results: List[TierPriceResult] = field(default_factory=list)
    dry_run: bool = False

    @property
    def error(self) -> Optional[Exception]:
        for result in self.results:
            if result.status == FAILED:
                return result.error
        return None

    @property
    def failed_tier(self) -> Optional[int]:
        for result in self.results:
            if result.status == FAILED:
                return result.tier_id
        return None

    def tiers_with(self, status: str) -> List[int]:
        return [r.tier_id for r in self.results if r.status == status]

    def raise_for_failure(self) -> None:
        if self.error is not None:
            raise self.error

    def describe(self) -> str:
        lines = []
        for r in self.results:
            applied = "unknown" if r.applied_price is None else f"{Web3.from_wei(r.applied_price, 'ether')} ETH"
            lines.append(f"Tier {r.tier_id}: {r.status} (price now {applied})")
        return "\n".join(lines)


class PriceAdjustmentEngine:
    """
    Reprices every configured tier by a fixed multiplier.

    Tiers are processed strictly one at a time: read, compute, submit, and
    wait for confirmation before touching the next tier.
    """

    def __init__(
        self,
        client: ChainClient,
        sale: ContractRef,
        registry: TierRegistry,
        multiplier: PriceMultiplier,
        limiter: RateLimiter,
        timeout: float,
    ):
        self.client = client
        self.sale = sale
        self.registry = registry
        self.multiplier = multiplier
        self.limiter = limiter
        self.timeout = timeout

    def read_tier(self, tier_id: int) -> TierState:
        return TierState.from_chain(tier_id, self.client.read(self.sale, "tiers", tier_id))

    def run(self, dry_run: bool = False) -> PriceAdjustmentReport:
        report = PriceAdjustmentReport(self.multiplier, dry_run=dry_run)
        logger.info(f"Repricing {len(self.registry)} tiers on {self.sale} by {self.multiplier}"
                    f"{' (dry run)' if dry_run else ''}")

        for tier_id in self.registry.tier_ids():
            logger.info(f"\n   -> Processing Tier ID {tier_id}...")
            old_price = None
            new_price = None
            try:
                state = self.read_tier(tier_id)
                if not state.configured:
                    logger.info(f"      ⚠️ Tier {tier_id} is not configured. Skipping.")
                    report.results.append(TierPriceResult(tier_id, SKIPPED, state.price_wei))
                    continue

                old_price = state.price_wei
                new_price = self.multiplier.apply(old_price)
                logger.info(f"      Old price: {Web3.from_wei(old_price, 'ether')} ETH")
                logger.info(f"      New price: {Web3.from_wei(new_price, 'ether')} ETH ({new_price} Wei)")
                logger.info(f"      Minted so far: {state.minted_count} (not reset)")

                if dry_run:
                    report.results.append(TierPriceResult(tier_id, PLANNED, old_price, new_price))
                    continue

                transact(
                    self.client, self.sale, "updateTierPrice", tier_id, new_price,
                    limiter=self.limiter, timeout=self.timeout,
                )
            except Exception as e:
                logger.error(f"   ❌ Tier {tier_id} failed: {e}")
                report.results.append(TierPriceResult(tier_id, FAILED, old_price, new_price, e))
                break

            logger.info(f"   ✅ Tier {tier_id} updated.")
            report.results.append(TierPriceResult(tier_id, UPDATED, old_price, new_price))

        return report
