"""
Backchain Contract Interfaces
=============================

Minimal ABI fragments for every contract call the control plane makes:
- Hub: EcosystemManager
- Core: BKCToken, RewardBoosterNFT, DelegationManager, RewardManager,
  DecentralizedNotary, PublicSale, SimpleBKCFaucet
- Spokes: NFTLiquidityPool, FortuneTiger

Full ABIs and bytecode come from the Hardhat artifacts when present; these
fragments let maintenance operations run without them.
"""

from typing import Dict, List, Sequence, Tuple

Param = Tuple[str, str]


def _params(params: Sequence[Param]) -> List[Dict]:
    return [{"name": name, "type": typ} for name, typ in params]


def _view(name: str, inputs: Sequence[Param], outputs: Sequence[Param]) -> Dict:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "view",
        "inputs": _params(inputs),
        "outputs": _params(outputs),
    }


def _write(name: str, inputs: Sequence[Param]) -> Dict:
    return {
        "type": "function",
        "name": name,
        "stateMutability": "nonpayable",
        "inputs": _params(inputs),
        "outputs": [],
    }


def _constructor(inputs: Sequence[Param]) -> Dict:
    return {"type": "constructor", "stateMutability": "nonpayable", "inputs": _params(inputs)}


_OWNABLE = [
    _view("owner", [], [("", "address")]),
    _write("transferOwnership", [("newOwner", "address")]),
]

ABIS: Dict[str, List[Dict]] = {
    "EcosystemManager": [
        _constructor([("_initialOwner", "address")]),
        _write("setAddresses", [
            ("_bkcToken", "address"),
            ("_treasuryWallet", "address"),
            ("_delegationManager", "address"),
            ("_rewardBooster", "address"),
        ]),
        _write("setFee", [("_serviceKey", "string"), ("_fee", "uint256")]),
        _write("setPStakeMinimum", [("_serviceKey", "string"), ("_pStake", "uint256")]),
        _write("setBoosterDiscount", [("_boostBips", "uint256"), ("_discountBips", "uint256")]),
        _write("setMiningDistributionBips", [("_poolKey", "string"), ("_bips", "uint256")]),
        _write("setMiningBonusBips", [("_serviceKey", "string"), ("_bonusBips", "uint256")]),
        _view("getTreasuryAddress", [], [("", "address")]),
        _view("getServiceRequirements", [("_serviceKey", "string")], [
            ("fee", "uint256"), ("pStake", "uint256"),
        ]),
    ] + _OWNABLE,
    "BKCToken": [
        _constructor([("_initialOwner", "address")]),
        _write("setTreasuryWallet", [("_treasury", "address")]),
        _write("setDelegationManager", [("_delegationManager", "address")]),
        _write("setRewardManager", [("_rewardManager", "address")]),
        _write("approve", [("spender", "address"), ("value", "uint256")]),
        _write("transfer", [("to", "address"), ("value", "uint256")]),
        _view("balanceOf", [("account", "address")], [("", "uint256")]),
    ] + _OWNABLE,
    "RewardBoosterNFT": [
        _constructor([("_initialOwner", "address")]),
        _write("setSaleContractAddress", [("_saleContract", "address")]),
        _write("setBaseURI", [("newBaseURI", "string")]),
        _write("setApprovalForAll", [("operator", "address"), ("approved", "bool")]),
        _write("renounceOwnership", []),
        _write("ownerMintBatch", [
            ("_to", "address"),
            ("_quantity", "uint256"),
            ("_boostBips", "uint256"),
            ("_metadataFile", "string"),
        ]),
        {
            "type": "event",
            "name": "BoosterMinted",
            "anonymous": False,
            "inputs": [
                {"name": "tokenId", "type": "uint256", "indexed": True},
                {"name": "owner", "type": "address", "indexed": True},
                {"name": "boostBips", "type": "uint256", "indexed": False},
            ],
        },
    ] + _OWNABLE,
    "DelegationManager": [
        _constructor([
            ("_bkcToken", "address"),
            ("_ecosystemManager", "address"),
            ("_initialOwner", "address"),
        ]),
        _write("setRewardManager", [("_rewardManager", "address")]),
    ] + _OWNABLE,
    "RewardManager": [
        _constructor([
            ("_bkcToken", "address"),
            ("_treasuryWallet", "address"),
            ("_ecosystemManager", "address"),
            ("_initialOwner", "address"),
        ]),
        _write("setDelegationManager", [("_delegationManager", "address")]),
        _write("setTigerGameAddress", [("_tigerGame", "address")]),
        _write("setBaseURI", [("newBaseURI", "string")]),
    ] + _OWNABLE,
    "DecentralizedNotary": [
        _constructor([
            ("_bkcToken", "address"),
            ("_ecosystemManager", "address"),
            ("_initialOwner", "address"),
        ]),
    ] + _OWNABLE,
    "PublicSale": [
        _constructor([
            ("_rewardBoosterNFT", "address"),
            ("_ecosystemManager", "address"),
            ("_initialOwner", "address"),
        ]),
        _view("tiers", [("", "uint256")], [
            ("priceInWei", "uint256"),
            ("maxSupply", "uint256"),
            ("mintedCount", "uint256"),
            ("boostBips", "uint256"),
            ("metadataFile", "string"),
            ("isConfigured", "bool"),
        ]),
        _write("setTier", [
            ("_tierId", "uint256"),
            ("_priceInWei", "uint256"),
            ("_maxSupply", "uint256"),
            ("_boostBips", "uint256"),
            ("_metadataFile", "string"),
        ]),
        _write("updateTierPrice", [("_tierId", "uint256"), ("_newPriceInWei", "uint256")]),
    ] + _OWNABLE,
    "SimpleBKCFaucet": [
        _constructor([("_tokenAddress", "address")]),
    ] + _OWNABLE,
    "NFTLiquidityPool": [
        _constructor([("_ecosystemManager", "address"), ("_initialOwner", "address")]),
        _view("pools", [("boostBips", "uint256")], [
            ("tokenBalance", "uint256"),
            ("nftCount", "uint256"),
            ("k", "uint256"),
            ("isInitialized", "bool"),
        ]),
        _view("getPoolInfo", [("_boostBips", "uint256")], [
            ("tokenBalance", "uint256"),
            ("nftCount", "uint256"),
            ("k", "uint256"),
            ("isInitialized", "bool"),
        ]),
        _write("createPool", [("_boostBips", "uint256")]),
        _write("addInitialLiquidity", [
            ("_boostBips", "uint256"),
            ("_tokenIds", "uint256[]"),
            ("_bkcAmount", "uint256"),
        ]),
        _write("addMoreNFTsToPool", [("_boostBips", "uint256"), ("_tokenIds", "uint256[]")]),
    ] + _OWNABLE,
    "FortuneTiger": [
        _constructor([
            ("_ecosystemManager", "address"),
            ("_bkcTokenAddress", "address"),
            ("_rewardManagerAddress", "address"),
            ("_initialOwner", "address"),
        ]),
        _write("setPools", [
            ("_multipliers", "uint256[]"),
            ("_denominators", "uint256[]"),
            ("_contributionBips", "uint256[]"),
        ]),
        _write("addInitialLiquidity", [("_poolId", "uint256"), ("_amount", "uint256")]),
        _view("prizePools", [("", "uint256")], [
            ("multiplier", "uint256"),
            ("chanceDenominator", "uint256"),
            ("balance", "uint256"),
            ("contributionShareBips", "uint256"),
        ]),
    ] + _OWNABLE,
}

# Ledger role -> contract (artifact) name
ROLES: Dict[str, str] = {
    "ecosystemManager": "EcosystemManager",
    "bkcToken": "BKCToken",
    "rewardBoosterNFT": "RewardBoosterNFT",
    "delegationManager": "DelegationManager",
    "rewardManager": "RewardManager",
    "decentralizedNotary": "DecentralizedNotary",
    "publicSale": "PublicSale",
    "faucet": "SimpleBKCFaucet",
    "nftLiquidityPool": "NFTLiquidityPool",
    "fortuneTiger": "FortuneTiger",
}

__all__ = ["ABIS", "ROLES"]
