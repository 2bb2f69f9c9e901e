#!/usr/bin/env python3
"""
Maintenance operations against a live deployment: tier repricing, the sales
report, post-sale AMM liquidity and hub rule updates. None of them writes
the address ledger.
"""

import logging
from typing import List, Optional, Tuple

from web3 import Web3

from ..errors import ConfigurationError, DeploymentError
from ..guard import GuardedResource, IdempotencyGuard
from ..ledger import AddressLedger
from ..pricing import PriceAdjustmentEngine, PriceMultiplier
from ..rules import load_rules
from ..sales import SalesReporter
from ..tiers import PoolState, TierConfig, TierState
from .base import SEPARATOR, DeploymentStep, StepContext
from .market import MINT_CHUNK_SIZE, TREASURY_SHARE_PERCENT, mint_chunks

logger = logging.getLogger(__name__)

LIQUIDITY_BKC_PER_POOL = Web3.to_wei(2_000_000, "ether")


class UpdatePrices(DeploymentStep):
    """Reprice every configured PublicSale tier; minted counts are kept"""

    name = "update-prices"
    description = "Reprice PublicSale tiers by the configured multiplier"
    requires = ("publicSale",)

    def __init__(self, multiplier: Optional[str] = None, dry_run: bool = False):
        self.multiplier = multiplier
        self.dry_run = dry_run

    def execute(self, ctx: StepContext, ledger: AddressLedger) -> None:
        multiplier = PriceMultiplier.parse(self.multiplier or ctx.settings.price_multiplier)
        engine = PriceAdjustmentEngine(
            ctx.client,
            ctx.ref(ledger, "publicSale"),
            ctx.registry,
            multiplier,
            ctx.limiter,
            ctx.timeout,
        )
        report = engine.run(dry_run=self.dry_run)
        ctx.outputs["prices"] = report
        logger.info(SEPARATOR)
        logger.info(report.describe())
        report.raise_for_failure()


class SalesReportStep(DeploymentStep):
    name = "sales-report"
    description = "Read minted counts for every PublicSale tier"
    requires = ("publicSale",)

    def execute(self, ctx: StepContext, ledger: AddressLedger) -> None:
        reporter = SalesReporter(
            ctx.client, ctx.ref(ledger, "publicSale"), ctx.registry, ctx.network.name
        )
        report = reporter.collect()
        ctx.outputs["sales"] = report
        logger.info(f"✅ Sales report collected: {report.total_minted} minted across {len(report.rows)} tiers")


def unsold_supply(max_supply: int, minted_count: int) -> int:
    """Part of the sale allocation (everything but the treasury share) left unsold"""
    allocation = max_supply * (100 - TREASURY_SHARE_PERCENT) // 100
    return max(allocation - minted_count, 0)


class AddLiquidity(DeploymentStep):
    """
    Seed every NFT AMM pool with its tier's unsold boosters plus
    LIQUIDITY_BKC_PER_POOL. Run once the public sale has ended.

    Pools that already hold NFTs are skipped, as are tiers that sold out.
    Minted boosters are only recorded by the pool itself: a failure between
    a mint and addInitialLiquidity leaves them with the signer, and a re-run
    mints the unsold amount again.
    """

    name = "add-liquidity"
    description = "Mint unsold boosters into the NFT AMM pools with BKC liquidity"
    requires = ("bkcToken", "rewardBoosterNFT", "nftLiquidityPool", "publicSale")

    def __init__(self, renounce_ownership: bool = False):
        self.renounce_ownership = renounce_ownership

    def execute(self, ctx: StepContext, ledger: AddressLedger) -> None:
        token = ctx.ref(ledger, "bkcToken")
        booster = ctx.ref(ledger, "rewardBoosterNFT")
        pool = ctx.ref(ledger, "nftLiquidityPool")
        sale = ctx.ref(ledger, "publicSale")

        def pool_state(tier: TierConfig) -> PoolState:
            return PoolState.from_chain(tier.boost_bips, ctx.read(pool, "getPoolInfo", tier.boost_bips))

        def filled(tier: TierConfig) -> bool:
            state = pool_state(tier)
            return state.initialized and state.nft_count > 0

        planned: List[Tuple[TierConfig, int]] = []
        uninitialized: List[str] = []
        for tier_id, tier in ctx.registry.items():
            state = TierState.from_chain(tier_id, ctx.read(sale, "tiers", tier_id))
            unsold = unsold_supply(state.max_supply, state.minted_count)
            logger.info(f"   {tier.name}: max supply={state.max_supply}, sold={state.minted_count}, unsold={unsold}")
            if unsold == 0:
                logger.info(f"   ⚠️ {tier.name} sold out. No unsold NFTs for its pool.")
                continue
            current = pool_state(tier)
            if not current.initialized:
                uninitialized.append(f"{tier.name} ({tier.boost_bips} bips)")
            planned.append((tier, unsold))

        if uninitialized:
            raise ConfigurationError(
                f"Pools not created for {', '.join(uninitialized)}. Run 'create-pools' first."
            )

        unfilled = [tier for tier, _ in planned if not filled(tier)]
        total = LIQUIDITY_BKC_PER_POOL * len(unfilled)
        if unfilled:
            balance = ctx.read(token, "balanceOf", ctx.signer)
            if balance < total:
                raise DeploymentError(
                    f"Deployer holds {Web3.from_wei(balance, 'ether')} BKC, {len(unfilled)} pools need "
                    f"{Web3.from_wei(total, 'ether')} BKC"
                )
            logger.info(f"Approving {Web3.from_wei(total, 'ether')} BKC for NFTLiquidityPool...")
            ctx.transact(token, "approve", pool.address, total)
            ctx.transact(booster, "setApprovalForAll", pool.address, True)

        def seed(tier: TierConfig, unsold: int) -> None:
            logger.info(f"   -> Minting {unsold} unsold {tier.metadata_file} NFTs for the pool...")
            token_ids: List[int] = []
            for chunk in mint_chunks(unsold):
                receipt = ctx.transact(
                    booster, "ownerMintBatch", ctx.signer, chunk, tier.boost_bips, tier.metadata_file
                )
                token_ids.extend(int(e["tokenId"]) for e in receipt.events_named("BoosterMinted"))
            if len(token_ids) != unsold:
                raise DeploymentError(
                    f"Minted {unsold} {tier.metadata_file} NFTs but decoded {len(token_ids)} token ids"
                )

            batches = [token_ids[i:i + MINT_CHUNK_SIZE] for i in range(0, len(token_ids), MINT_CHUNK_SIZE)]
            logger.info(f"   -> Adding {len(token_ids)} NFTs and {Web3.from_wei(LIQUIDITY_BKC_PER_POOL, 'ether')} BKC...")
            ctx.transact(pool, "addInitialLiquidity", tier.boost_bips, batches[0], LIQUIDITY_BKC_PER_POOL)
            for batch in batches[1:]:
                ctx.transact(pool, "addMoreNFTsToPool", tier.boost_bips, batch)

        summary = IdempotencyGuard().run_batch(
            GuardedResource(
                key=tier.boost_bips,
                label=f"{tier.name} pool liquidity",
                exists=lambda tier=tier: filled(tier),
                create=lambda tier=tier, unsold=unsold: seed(tier, unsold),
            )
            for tier, unsold in planned
        )
        ctx.outputs["liquidity"] = summary

        if unfilled:
            ctx.transact(booster, "setApprovalForAll", pool.address, False)
            logger.info("✅ NFT approval for the pool revoked.")

        logger.info(SEPARATOR)
        logger.info(f"Pool liquidity: {summary.describe()}")
        summary.raise_for_failure()

        if self.renounce_ownership:
            owner = ctx.read(booster, "owner")
            if owner.lower() == ctx.signer.lower():
                ctx.transact(booster, "renounceOwnership")
                logger.info("🔒 RewardBoosterNFT ownership renounced. NFT supply is now final.")
            else:
                logger.warning(f"⚠️ RewardBoosterNFT is owned by {owner}; not renouncing.")


class ManageRules(DeploymentStep):
    """Apply the operator rules document to the hub, one setter at a time"""

    name = "manage-rules"
    description = "Apply hub fees, pStake minimums and booster rules from the rules file"
    requires = ("ecosystemManager",)

    def __init__(self, rules_path: Optional[str] = None):
        self.rules_path = rules_path

    def execute(self, ctx: StepContext, ledger: AddressLedger) -> None:
        hub = ctx.ref(ledger, "ecosystemManager")
        updates = load_rules(self.rules_path or ctx.settings.rules_path)
        if not updates:
            logger.info("⚠️ No rule values set. Nothing to apply.")

        applied = 0
        for update in updates:
            logger.info(f"   -> Updating {update.describe()}...")
            try:
                ctx.transact(hub, update.setter, update.key, update.value)
            except Exception as e:
                logger.error(f"   ❌ Rule {update.category}.{update.key} failed: {e}")
                raise
            applied += 1
            logger.info("   ✅ Applied.")

        ctx.outputs["rules"] = applied
        logger.info(f"🎉 {applied} hub rules applied.")
