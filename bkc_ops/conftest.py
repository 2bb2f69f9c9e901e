"""
Shared test fixtures: an in-memory chain that records every call in order
"""

import itertools
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest

from .chain import ChainClient, ContractRef, Receipt, TxHandle
from .config import Settings
from .pacing import NoDelay
from .steps.base import StepContext
from .tiers import TierRegistry

SIGNER = "0x" + "ab" * 20


def fake_address(n: int) -> str:
    return "0x" + f"{n:040x}"


class FakeChain(ChainClient):
    """
    ChainClient double with just enough contract state for the steps.

    Effects are applied at confirmation time, like a real chain. Failures are
    injected per method with fail_when().
    """

    def __init__(self, signer: str = SIGNER):
        self._signer = signer
        self.calls: List[Tuple] = []
        self.closed = False

        self.tiers: Dict[int, List[Any]] = {}
        self.pools: set = set()
        self.token_balances: Dict[str, int] = {}
        self.owners: Dict[str, str] = {}
        self.treasury: str = signer
        self.prize_balances: Dict[int, int] = {}
        self.pool_nfts: Dict[int, List[int]] = {}
        self.nft_approvals: Dict[str, bool] = {}
        self.hub_rules: Dict[Tuple[str, Any], int] = {}

        self._addresses = itertools.count(0x1000)
        self._hashes = itertools.count(1)
        self._token_ids = itertools.count(1)
        self._block = itertools.count(100)
        self._pending: Dict[str, Tuple[ContractRef, str, Tuple]] = {}
        self._failures: List[Tuple[str, Exception, Callable[[Tuple], bool], str]] = []

    # -- test helpers --

    def fail_when(
        self,
        method: str,
        error: Exception,
        match: Callable[[Tuple], bool] = lambda args: True,
        at: str = "confirm",
    ) -> None:
        """Raise error when method (or contract name, for at='deploy') is hit with matching args"""
        self._failures.append((method, error, match, at))

    def configure_tier(self, tier_id: int, price: int, configured: bool = True, minted: int = 0,
                       max_supply: int = 1000, boost: int = 0, metadata: str = "") -> None:
        self.tiers[tier_id] = [price, max_supply, minted, boost, metadata, configured]

    def methods(self, kind: str) -> List[str]:
        return [c[2] for c in self.calls if c[0] == kind]

    def _maybe_fail(self, method: str, args: Tuple, at: str) -> None:
        for name, error, match, when in self._failures:
            if name == method and when == at and match(args):
                raise error

    # -- ChainClient --

    @property
    def signer_address(self) -> str:
        return self._signer

    def read(self, contract: ContractRef, method: str, *args: Any) -> Any:
        self.calls.append(("read", contract.name, method, args))
        self._maybe_fail(method, args, "read")
        if method == "tiers":
            return tuple(self.tiers.get(args[0], [0, 0, 0, 0, "", False]))
        if method in ("pools", "getPoolInfo"):
            return (0, len(self.pool_nfts.get(args[0], [])), 0, args[0] in self.pools)
        if method == "balanceOf":
            return self.token_balances.get(args[0].lower(), 0)
        if method == "owner":
            return self.owners.get(contract.address, self._signer)
        if method == "getTreasuryAddress":
            return self.treasury
        if method == "prizePools":
            return (0, 0, self.prize_balances.get(args[0], 0), 0)
        raise AssertionError(f"FakeChain cannot read {contract.name}.{method}")

    def submit(self, contract: ContractRef, method: str, *args: Any) -> TxHandle:
        self.calls.append(("submit", contract.name, method, args))
        self._maybe_fail(method, args, "submit")
        tx_hash = f"0x{next(self._hashes):064x}"
        self._pending[tx_hash] = (contract, method, args)
        return TxHandle(tx_hash, method, self._signer, contract, contract.name)

    def await_confirmation(self, handle: TxHandle, timeout: float) -> Receipt:
        contract, method, args = self._pending.pop(handle.tx_hash)
        self.calls.append(("confirm", contract.name, method, args))
        self._maybe_fail(method, args, "confirm")
        events = self._apply(contract, method, args)
        return Receipt(handle.tx_hash, next(self._block), 21000, events=events)

    def deploy(self, contract_name: str, args: List[Any], timeout: float) -> ContractRef:
        self.calls.append(("deploy", contract_name, "constructor", tuple(args)))
        self._maybe_fail(contract_name, tuple(args), "deploy")
        return ContractRef(contract_name, fake_address(next(self._addresses)))

    def balance(self, address: str) -> int:
        return 10 ** 18

    def close(self) -> None:
        self.closed = True

    def _apply(self, contract: ContractRef, method: str, args: Tuple) -> List[Dict[str, Any]]:
        events: List[Dict[str, Any]] = []
        if method == "updateTierPrice":
            self.tiers[args[0]][0] = args[1]
        elif method == "setTier":
            tier_id, price, max_supply, boost, metadata = args
            self.tiers[tier_id] = [price, max_supply, 0, boost, metadata, True]
        elif method == "createPool":
            self.pools.add(args[0])
        elif method == "ownerMintBatch":
            to, quantity, boost, _ = args
            for _ in range(quantity):
                events.append({
                    "event": "BoosterMinted",
                    "args": {"tokenId": next(self._token_ids), "owner": to, "boostBips": boost},
                })
        elif method == "transfer":
            to, amount = args
            self.token_balances[self._signer.lower()] = self.token_balances.get(self._signer.lower(), 0) - amount
            self.token_balances[to.lower()] = self.token_balances.get(to.lower(), 0) + amount
        elif method == "transferOwnership":
            self.owners[contract.address] = args[0]
        elif method == "addInitialLiquidity" and contract.name == "NFTLiquidityPool":
            self.pool_nfts[args[0]] = list(args[1])
        elif method == "addMoreNFTsToPool":
            self.pool_nfts[args[0]] = self.pool_nfts.get(args[0], []) + list(args[1])
        elif method == "addInitialLiquidity":
            self.prize_balances[args[0]] = self.prize_balances.get(args[0], 0) + args[1]
        elif method == "setApprovalForAll":
            self.nft_approvals[args[0]] = args[1]
        elif method == "renounceOwnership":
            self.owners[contract.address] = "0x" + "00" * 20
        elif method in ("setFee", "setPStakeMinimum", "setBoosterDiscount",
                        "setMiningDistributionBips", "setMiningBonusBips"):
            self.hub_rules[(method, args[0])] = args[1]
        return events


@pytest.fixture
def chain() -> FakeChain:
    return FakeChain()


@pytest.fixture
def ledger_path(tmp_path) -> str:
    return str(tmp_path / "deployment-addresses.json")


@pytest.fixture
def settings(ledger_path) -> Settings:
    return Settings(network="localhost", ledger_path=ledger_path, confirmation_timeout=5, tx_delay_ms=0)


def make_context(chain: ChainClient, settings: Settings, force: bool = False,
                 registry: Optional[TierRegistry] = None) -> StepContext:
    return StepContext(
        client=chain,
        settings=settings,
        limiter=NoDelay(),
        registry=registry or TierRegistry(),
        force=force,
    )


@pytest.fixture
def ctx(chain, settings) -> StepContext:
    return make_context(chain, settings)
