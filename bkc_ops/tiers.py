#!/usr/bin/env python3
"""
Booster Tier Registry
Static, ordered tier configuration that must match the on-chain enumerations
1:1 (EcosystemManager discounts, PublicSale tiers, NFTLiquidityPool pools)
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from web3 import Web3


@dataclass(frozen=True)
class TierConfig:
    """Immutable booster tier parameters"""
    name: str
    boost_bips: int
    max_supply: int
    price_wei: int
    metadata_file: str


BOOSTER_TIERS: Tuple[TierConfig, ...] = (
    TierConfig("Diamond", 5000, 100, Web3.to_wei("3.60", "ether"), "diamond_booster.json"),
    TierConfig("Platinum", 4000, 250, Web3.to_wei("1.44", "ether"), "platinum_booster.json"),
    TierConfig("Gold", 3000, 500, Web3.to_wei("0.54", "ether"), "gold_booster.json"),
    TierConfig("Silver", 2000, 1000, Web3.to_wei("0.27", "ether"), "silver_booster.json"),
    TierConfig("Bronze", 1000, 2000, Web3.to_wei("0.144", "ether"), "bronze_booster.json"),
    TierConfig("Iron", 500, 5000, Web3.to_wei("0.07", "ether"), "iron_booster.json"),
    TierConfig("Crystal", 100, 10000, Web3.to_wei("0.01", "ether"), "crystal_booster.json"),
)


class TierRegistry:
    """Ordered tiers with dense ids starting at id_base (0 or 1)"""

    def __init__(self, tiers: Sequence[TierConfig] = BOOSTER_TIERS, id_base: int = 0):
        if id_base not in (0, 1):
            raise ValueError(f"Tier id base must be 0 or 1, got {id_base}")
        if not tiers:
            raise ValueError("Tier registry cannot be empty")

        names = [t.name for t in tiers]
        boosts = [t.boost_bips for t in tiers]
        if len(set(names)) != len(names):
            raise ValueError(f"Duplicate tier names: {names}")
        if len(set(boosts)) != len(boosts):
            raise ValueError(f"Duplicate tier boost values: {boosts}")
        for tier in tiers:
            if tier.boost_bips <= 0 or tier.boost_bips > 10000:
                raise ValueError(f"{tier.name}: boost must be within 1..10000 bips")

        self.tiers: Tuple[TierConfig, ...] = tuple(tiers)
        self.id_base = id_base
        self._by_boost: Dict[int, TierConfig] = {t.boost_bips: t for t in self.tiers}

    def __len__(self) -> int:
        return len(self.tiers)

    def tier_ids(self) -> List[int]:
        return list(range(self.id_base, self.id_base + len(self.tiers)))

    def items(self) -> List[Tuple[int, TierConfig]]:
        return list(zip(self.tier_ids(), self.tiers))

    def by_id(self, tier_id: int) -> TierConfig:
        index = tier_id - self.id_base
        if index < 0 or index >= len(self.tiers):
            raise KeyError(f"Unknown tier id {tier_id}")
        return self.tiers[index]

    def by_boost(self, boost_bips: int) -> Optional[TierConfig]:
        return self._by_boost.get(boost_bips)

    def boost_values(self) -> List[int]:
        return [t.boost_bips for t in self.tiers]


@dataclass(frozen=True)
class TierState:
    """On-chain PublicSale tier as returned by tiers(id)"""
    tier_id: int
    price_wei: int
    max_supply: int
    minted_count: int
    boost_bips: int
    metadata_file: str
    configured: bool

    @classmethod
    def from_chain(cls, tier_id: int, raw: Sequence) -> "TierState":
        price, max_supply, minted, boost, metadata, configured = raw
        return cls(
            tier_id=tier_id,
            price_wei=int(price),
            max_supply=int(max_supply),
            minted_count=int(minted),
            boost_bips=int(boost),
            metadata_file=str(metadata),
            configured=bool(configured),
        )


@dataclass(frozen=True)
class PoolState:
    """On-chain NFTLiquidityPool pool as returned by pools(boostBips)"""
    boost_bips: int
    token_balance: int
    nft_count: int
    k: int
    initialized: bool

    @classmethod
    def from_chain(cls, boost_bips: int, raw: Sequence) -> "PoolState":
        token_balance, nft_count, k, initialized = raw
        return cls(boost_bips, int(token_balance), int(nft_count), int(k), bool(initialized))
