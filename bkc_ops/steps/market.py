#!/usr/bin/env python3
"""
Market steps: NFT liquidity pools, public sale tiers with the treasury
allocation, and FortuneTiger prize pools plus hub fee rules
"""

import json
import logging
import os
from dataclasses import dataclass
from typing import Dict, List

from web3 import Web3

from ..errors import ConfigurationError, DeploymentError, MalformedLedger
from ..guard import GuardedResource, IdempotencyGuard
from ..ledger import AddressLedger, write_text_atomic
from ..tiers import PoolState, TierConfig, TierState
from .base import SEPARATOR, DeploymentStep, StepContext

logger = logging.getLogger(__name__)

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

TREASURY_IDS_FILE = "treasury-nft-ids.json"
TREASURY_SHARE_PERCENT = 5
MINT_CHUNK_SIZE = 150


class CreatePools(DeploymentStep):
    name = "create-pools"
    description = "Create one NFTLiquidityPool AMM pool per booster tier"
    requires = ("nftLiquidityPool",)

    def execute(self, ctx: StepContext, ledger: AddressLedger) -> None:
        pool = ctx.ref(ledger, "nftLiquidityPool")

        def resource(tier: TierConfig) -> GuardedResource:
            def exists() -> bool:
                return PoolState.from_chain(
                    tier.boost_bips, ctx.read(pool, "pools", tier.boost_bips)
                ).initialized

            return GuardedResource(
                key=tier.boost_bips,
                label=f"pool {tier.name} ({tier.boost_bips} bips)",
                exists=exists,
                create=lambda: ctx.transact(pool, "createPool", tier.boost_bips),
            )

        summary = IdempotencyGuard().run_batch(resource(t) for t in ctx.registry.tiers)
        ctx.outputs["pools"] = summary
        logger.info(SEPARATOR)
        logger.info(f"Pools: {summary.describe()}")
        summary.raise_for_failure()


def treasury_share(max_supply: int) -> int:
    """Treasury allocation of a tier, rounded down"""
    return max_supply * TREASURY_SHARE_PERCENT // 100


def mint_chunks(quantity: int, chunk_size: int = MINT_CHUNK_SIZE) -> List[int]:
    """Split a mint quantity into batch sizes of at most chunk_size"""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    chunks = []
    remaining = quantity
    while remaining > 0:
        chunks.append(min(remaining, chunk_size))
        remaining -= chunks[-1]
    return chunks


def treasury_ids_path(ledger_path: str) -> str:
    return os.path.join(os.path.dirname(os.path.abspath(ledger_path)), TREASURY_IDS_FILE)


def load_treasury_ids(path: str) -> Dict[str, List[str]]:
    """Read the treasury ids file; an absent file is empty"""
    if not os.path.exists(path):
        return {}
    try:
        with open(path, "r", encoding="utf-8") as f:
            recorded = json.load(f)
    except json.JSONDecodeError as e:
        raise MalformedLedger(path, f"invalid JSON ({e})") from e
    if not isinstance(recorded, dict):
        raise MalformedLedger(path, "top level must be an object")
    for metadata_file, ids in recorded.items():
        if not isinstance(ids, list) or not all(isinstance(i, str) for i in ids):
            raise MalformedLedger(path, f"{metadata_file!r} must map to a list of token id strings")
    return recorded


def record_treasury_ids(path: str, metadata_file: str, token_ids: List[int]) -> None:
    """Merge one tier's minted token ids into the treasury ids file"""
    recorded = load_treasury_ids(path)
    recorded[metadata_file] = recorded.get(metadata_file, []) + [str(i) for i in token_ids]
    write_text_atomic(path, json.dumps(recorded, indent=2) + "\n")


class SetupSale(DeploymentStep):
    """
    Mint the treasury's 5% of every tier, then open the tier for sale.

    Each tier is guarded by PublicSale.tiers(id).isConfigured. A failure
    after the treasury mint but before setTier leaves the tier unconfigured,
    so a re-run mints that tier's treasury share again; check
    treasury-nft-ids.json before re-running.
    """

    name = "setup-sale"
    description = "Mint the treasury allocation and configure PublicSale tiers"
    requires = ("publicSale", "rewardBoosterNFT", "ecosystemManager")

    def execute(self, ctx: StepContext, ledger: AddressLedger) -> None:
        sale = ctx.ref(ledger, "publicSale")
        booster = ctx.ref(ledger, "rewardBoosterNFT")
        hub = ctx.ref(ledger, "ecosystemManager")

        treasury = ctx.read(hub, "getTreasuryAddress")
        if not treasury or treasury == ZERO_ADDRESS:
            raise ConfigurationError("Treasury address is not set in EcosystemManager. Run 'configure-hub' first.")
        logger.info(f"Treasury wallet (from hub): {treasury}")

        ids_path = treasury_ids_path(ctx.ledger_path)
        # fail before minting rather than after a confirmed mint
        load_treasury_ids(ids_path)

        def mint_treasury(tier: TierConfig) -> None:
            quantity = treasury_share(tier.max_supply)
            if quantity == 0:
                logger.info(f"   ⚠️ 5% of {tier.metadata_file} rounds to 0. Skipping treasury mint.")
                return
            logger.info(f"   -> Minting {quantity} {tier.metadata_file} NFTs to the treasury...")
            token_ids: List[int] = []
            for chunk in mint_chunks(quantity):
                receipt = ctx.transact(
                    booster, "ownerMintBatch", treasury, chunk, tier.boost_bips, tier.metadata_file
                )
                token_ids.extend(int(e["tokenId"]) for e in receipt.events_named("BoosterMinted"))
                logger.info(f"      ... {len(token_ids)} / {quantity} minted.")
            if len(token_ids) != quantity:
                logger.warning(
                    f"   ⚠️ Expected {quantity} BoosterMinted events for {tier.metadata_file}, "
                    f"decoded {len(token_ids)}"
                )
            record_treasury_ids(ids_path, tier.metadata_file, token_ids)

        def resource(tier_id: int, tier: TierConfig) -> GuardedResource:
            def exists() -> bool:
                return TierState.from_chain(tier_id, ctx.read(sale, "tiers", tier_id)).configured

            def create() -> None:
                mint_treasury(tier)
                logger.info(
                    f"   Configuring tier {tier_id}: {Web3.from_wei(tier.price_wei, 'ether')} ETH, "
                    f"supply {tier.max_supply}, boost {tier.boost_bips} bips"
                )
                ctx.transact(
                    sale, "setTier", tier_id, tier.price_wei, tier.max_supply,
                    tier.boost_bips, tier.metadata_file,
                )

            return GuardedResource(
                key=tier_id, label=f"sale tier {tier_id} ({tier.name})", exists=exists, create=create
            )

        summary = IdempotencyGuard().run_batch(resource(i, t) for i, t in ctx.registry.items())
        ctx.outputs["tiers"] = summary
        logger.info(SEPARATOR)
        logger.info(f"Sale tiers: {summary.describe()}")
        logger.info(f"Treasury token ids: {ids_path}")
        summary.raise_for_failure()


@dataclass(frozen=True)
class PrizePoolConfig:
    pool_id: int
    multiplier_bips: int
    chance_denominator: int
    contribution_bips: int
    amount_wei: int


PRIZE_POOLS = (
    PrizePoolConfig(0, 10000, 2, 9000, Web3.to_wei(1_790_000, "ether")),
    PrizePoolConfig(1, 50000, 20, 700, Web3.to_wei(10_000, "ether")),
    PrizePoolConfig(2, 1000000, 1000, 300, Web3.to_wei(200_000, "ether")),
)

# service key -> (fee, pStake minimum)
SERVICE_RULES = {
    "NOTARY_SERVICE": (Web3.to_wei(100, "ether"), 10000),
    "TIGER_GAME_SERVICE": (0, 10000),
    "NFT_POOL_ACCESS": (0, 10000),
}

FEE_RULES = {
    "UNSTAKE_FEE_BIPS": 100,
    "FORCE_UNSTAKE_PENALTY_BIPS": 5000,
    "CLAIM_REWARD_FEE_BIPS": 2000,
    "NFT_POOL_TAX_BIPS": 1000,
    "NFT_POOL_TAX_TREASURY_SHARE_BIPS": 4000,
    "NFT_POOL_TAX_DELEGATOR_SHARE_BIPS": 4000,
    "NFT_POOL_TAX_LIQUIDITY_SHARE_BIPS": 2000,
}


class ConfigureFees(DeploymentStep):
    name = "configure-fees"
    description = "Configure FortuneTiger prize pools and hub fee rules"
    requires = ("ecosystemManager", "fortuneTiger", "bkcToken")

    def execute(self, ctx: StepContext, ledger: AddressLedger) -> None:
        hub = ctx.ref(ledger, "ecosystemManager")
        tiger = ctx.ref(ledger, "fortuneTiger")
        token = ctx.ref(ledger, "bkcToken")

        logger.info("\n--- Part A: FortuneTiger prize pools ---")
        pools = sorted(PRIZE_POOLS, key=lambda p: p.pool_id)
        ctx.transact(
            tiger,
            "setPools",
            [p.multiplier_bips for p in pools],
            [p.chance_denominator for p in pools],
            [p.contribution_bips for p in pools],
        )
        logger.info(f"   ✅ setPools done. Active pools: {len(pools)}")

        def funded(pool: PrizePoolConfig) -> bool:
            # prizePools(id) -> (multiplier, chanceDenominator, balance, contributionShareBips)
            return int(ctx.read(tiger, "prizePools", pool.pool_id)[2]) > 0

        unfunded = [p for p in pools if not funded(p)]
        total = sum(p.amount_wei for p in unfunded)
        if unfunded:
            balance = ctx.read(token, "balanceOf", ctx.signer)
            if balance < total:
                raise DeploymentError(
                    f"Deployer holds {Web3.from_wei(balance, 'ether')} BKC, prize pools need "
                    f"{Web3.from_wei(total, 'ether')} BKC"
                )
            logger.info(f"Approving {Web3.from_wei(total, 'ether')} BKC for FortuneTiger...")
            ctx.transact(token, "approve", tiger.address, total)

        guard = IdempotencyGuard()
        for pool in pools:
            guard.ensure(GuardedResource(
                key=pool.pool_id,
                label=f"prize pool x{pool.multiplier_bips // 10000} (id {pool.pool_id}) liquidity",
                exists=lambda pool=pool: funded(pool),
                create=lambda pool=pool: ctx.transact(
                    tiger, "addInitialLiquidity", pool.pool_id, pool.amount_wei
                ),
            ))

        logger.info("\n--- Part B: Hub fees and pStake minimums ---")
        for key, (fee, pstake) in SERVICE_RULES.items():
            ctx.transact(hub, "setFee", key, fee)
            ctx.transact(hub, "setPStakeMinimum", key, pstake)
            logger.info(f"   -> Service {key}: fee={fee}, pStake={pstake}")
        for key, value in FEE_RULES.items():
            ctx.transact(hub, "setFee", key, value)
            logger.info(f"   -> Fee {key} = {value}")

        logger.info("\n✅ All system rules configured on the hub.")
