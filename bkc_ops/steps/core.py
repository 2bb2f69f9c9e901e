#!/usr/bin/env python3
"""
Core deployment steps: hub and core contracts, faucet funding, hub wiring,
spoke contracts and cross-contract configuration
"""

import logging

from web3 import Web3

from ..errors import DeploymentError
from ..guard import GuardedResource, IdempotencyGuard
from ..ledger import AddressLedger
from .base import SEPARATOR, DeploymentStep, StepContext

logger = logging.getLogger(__name__)

TEST_SUPPLY_AMOUNT_WEI = Web3.to_wei(10_000_000, "ether")

IPFS_BASE_URI_VESTING = "ipfs://bafybeig4g562r4g7yxgtqm2rkkmsblvzwcghjiebcipsrt3ltlgitzkr6i/"
IPFS_BASE_URI_BOOSTERS = "ipfs://bafybeihxs7dd7x5thhpkmwxl3adnajjxlnwx5yqodr7hjrllxaif7ojad4/"


class DeployCore(DeploymentStep):
    name = "deploy-core"
    description = "Deploy hub and core contracts"
    provides = (
        "ecosystemManager",
        "bkcToken",
        "rewardBoosterNFT",
        "delegationManager",
        "rewardManager",
        "decentralizedNotary",
        "publicSale",
        "faucet",
    )
    # An existing faucet is kept, so it is not part of the redeploy check
    redeploys = provides[:-1]
    bootstrap = True

    def execute(self, ctx: StepContext, ledger: AddressLedger) -> None:
        owner = ctx.signer

        hub = ctx.deploy_role("ecosystemManager", owner)
        token = ctx.deploy_role("bkcToken", owner)
        booster = ctx.deploy_role("rewardBoosterNFT", owner)
        ctx.deploy_role("delegationManager", token.address, hub.address, owner)
        # deployer doubles as the initial treasury wallet
        ctx.deploy_role("rewardManager", token.address, owner, hub.address, owner)
        ctx.deploy_role("decentralizedNotary", token.address, hub.address, owner)
        ctx.deploy_role("publicSale", booster.address, hub.address, owner)

        if "faucet" in ledger:
            logger.info(f"⚠️ Existing faucet ({ledger['faucet']}) is kept and not redeployed.")
        else:
            ctx.deploy_role("faucet", token.address)
        logger.info(SEPARATOR)


class FundFaucet(DeploymentStep):
    name = "fund-faucet"
    description = "Fund the test faucet with 10M BKC"
    requires = ("bkcToken", "faucet")
    testnet_only = True

    def execute(self, ctx: StepContext, ledger: AddressLedger) -> None:
        if not ctx.network.is_testnet:
            logger.info(f"⚠️ Faucet funding is disabled on {ctx.network.name}.")
            return

        token = ctx.ref(ledger, "bkcToken")
        faucet = ledger["faucet"]

        def funded() -> bool:
            return ctx.read(token, "balanceOf", faucet) >= TEST_SUPPLY_AMOUNT_WEI

        def fund() -> None:
            signer_balance = ctx.read(token, "balanceOf", ctx.signer)
            if signer_balance < TEST_SUPPLY_AMOUNT_WEI:
                raise DeploymentError(
                    f"Insufficient BKC on the deployer "
                    f"({Web3.from_wei(signer_balance, 'ether')} BKC) for faucet funding"
                )
            ctx.transact(token, "transfer", faucet, TEST_SUPPLY_AMOUNT_WEI)

        IdempotencyGuard().ensure(
            GuardedResource(key=faucet, label=f"faucet funding ({faucet})", exists=funded, create=fund)
        )


class ConfigureHub(DeploymentStep):
    name = "configure-hub"
    description = "Register core addresses in the EcosystemManager hub"
    requires = ("ecosystemManager", "bkcToken", "delegationManager", "rewardBoosterNFT")

    def execute(self, ctx: StepContext, ledger: AddressLedger) -> None:
        hub = ctx.ref(ledger, "ecosystemManager")
        logger.info("1. Setting core addresses on the EcosystemManager...")
        ctx.transact(
            hub,
            "setAddresses",
            ledger["bkcToken"],
            ctx.signer,  # deployer is the initial treasury
            ledger["delegationManager"],
            ledger["rewardBoosterNFT"],
        )
        logger.info(f"✅ Core addresses set. Treasury: {ctx.signer}")


class DeploySpokes(DeploymentStep):
    name = "deploy-spokes"
    description = "Deploy spoke contracts"
    requires = ("ecosystemManager", "bkcToken", "rewardManager")
    provides = ("nftLiquidityPool", "fortuneTiger")
    redeploys = provides

    def execute(self, ctx: StepContext, ledger: AddressLedger) -> None:
        ctx.deploy_role("nftLiquidityPool", ledger["ecosystemManager"], ctx.signer)
        ctx.deploy_role(
            "fortuneTiger",
            ledger["ecosystemManager"],
            ledger["bkcToken"],
            ledger["rewardManager"],
            ctx.signer,
        )


class ConfigureSystem(DeploymentStep):
    name = "configure-system"
    description = "Wire token, managers, sale and NFT metadata; hand token ownership to the RewardManager"
    requires = (
        "bkcToken",
        "delegationManager",
        "rewardManager",
        "rewardBoosterNFT",
        "fortuneTiger",
        "publicSale",
    )

    def execute(self, ctx: StepContext, ledger: AddressLedger) -> None:
        token = ctx.ref(ledger, "bkcToken")
        delegation = ctx.ref(ledger, "delegationManager")
        rewards = ctx.ref(ledger, "rewardManager")
        booster = ctx.ref(ledger, "rewardBoosterNFT")

        logger.info("\n1. Setting reference addresses on the BKCToken...")
        ctx.transact(token, "setTreasuryWallet", ctx.signer)
        ctx.transact(token, "setDelegationManager", delegation.address)
        ctx.transact(token, "setRewardManager", rewards.address)

        logger.info("\n2. Linking managers...")
        ctx.transact(rewards, "setDelegationManager", delegation.address)
        ctx.transact(delegation, "setRewardManager", rewards.address)
        ctx.transact(rewards, "setTigerGameAddress", ledger["fortuneTiger"])

        logger.info("\n3. Authorizing PublicSale to mint booster NFTs...")
        ctx.transact(booster, "setSaleContractAddress", ledger["publicSale"])

        logger.info("\n4. Setting NFT metadata base URIs...")
        ctx.transact(rewards, "setBaseURI", IPFS_BASE_URI_VESTING)
        ctx.transact(booster, "setBaseURI", IPFS_BASE_URI_BOOSTERS)

        logger.info("\n5. Transferring BKCToken ownership to the RewardManager...")
        current_owner = ctx.read(token, "owner")
        if current_owner.lower() == ctx.signer.lower():
            ctx.transact(token, "transferOwnership", rewards.address)
            logger.info(f"✅ BKCToken ownership transferred to: {rewards.address}")
        else:
            logger.info(f"⚠️ BKCToken is already owned by {current_owner}. No action taken.")
