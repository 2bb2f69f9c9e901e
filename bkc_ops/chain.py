#!/usr/bin/env python3
"""
Chain Client
Capability view over the remote ledger: read, submit, await confirmation, deploy
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception
from web3.logs import DISCARD
from web3.middleware import ExtraDataToPOAMiddleware

from .config import Settings
from .contracts import ABIS
from .errors import (
    ArtifactNotFound,
    ConfigurationError,
    ConfirmationTimeout,
    TransactionReverted,
)
from .pacing import RateLimiter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ContractRef:
    """A deployed contract: artifact name plus address"""
    name: str
    address: str

    def __str__(self) -> str:
        return f"{self.name}@{self.address}"


@dataclass(frozen=True)
class TxHandle:
    """A submitted, not yet confirmed, transaction"""
    tx_hash: str
    method: str
    signer: str
    contract: Optional[ContractRef] = None
    contract_name: Optional[str] = None


@dataclass
class Receipt:
    """Confirmed transaction outcome"""
    tx_hash: str
    block_number: int
    gas_used: int
    status: int = 1
    contract_address: Optional[str] = None
    events: List[Dict[str, Any]] = field(default_factory=list)

    def events_named(self, name: str) -> List[Dict[str, Any]]:
        """Decoded args of every event with the given name"""
        return [e["args"] for e in self.events if e["event"] == name]


class ChainClient:
    """
    Capability surface every step works against.

    One client wraps one signer; its lifecycle is connect -> use across
    steps -> close, and it is also usable as a context manager.
    """

    @property
    def signer_address(self) -> str:
        raise NotImplementedError

    def read(self, contract: ContractRef, method: str, *args: Any) -> Any:
        """Query contract state; no mutation and no fee"""
        raise NotImplementedError

    def submit(self, contract: ContractRef, method: str, *args: Any) -> TxHandle:
        """Send a state-changing call; does not wait for confirmation"""
        raise NotImplementedError

    def await_confirmation(self, handle: TxHandle, timeout: float) -> Receipt:
        """
        Block until the transaction is final.

        Raises:
            TransactionReverted: the chain rejected it (reason verbatim)
            ConfirmationTimeout: no receipt within timeout; outcome unknown
        """
        raise NotImplementedError

    def deploy(self, contract_name: str, args: List[Any], timeout: float) -> ContractRef:
        """Deploy a contract and return its reference once confirmed"""
        raise NotImplementedError

    def balance(self, address: str) -> int:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self) -> "ChainClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


def transact(
    client: ChainClient,
    contract: ContractRef,
    method: str,
    *args: Any,
    limiter: RateLimiter,
    timeout: float,
) -> Receipt:
    """
    Paced submit followed by confirmation.

    The next transaction from this signer can only be submitted after this
    call returns, so confirmations are observed in submission order.
    """
    limiter.before_submit(client.signer_address)
    handle = client.submit(contract, method, *args)
    logger.info(f"   -> {contract.name}.{method} sent: {handle.tx_hash}")
    receipt = client.await_confirmation(handle, timeout)
    logger.debug(f"   -> confirmed in block {receipt.block_number} (gas {receipt.gas_used:,})")
    return receipt


def deploy_contract(
    client: ChainClient,
    contract_name: str,
    args: List[Any],
    limiter: RateLimiter,
    timeout: float,
) -> ContractRef:
    limiter.before_submit(client.signer_address)
    ref = client.deploy(contract_name, args, timeout)
    logger.info(f"✅ {contract_name} deployed at: {ref.address}")
    return ref


class ArtifactStore:
    """Hardhat artifacts: artifacts/contracts/<Name>.sol/<Name>.json"""

    def __init__(self, artifacts_dir: str):
        self.artifacts_dir = artifacts_dir
        self._cache: Dict[str, Dict[str, Any]] = {}

    def path_for(self, contract_name: str) -> str:
        return os.path.join(
            self.artifacts_dir, "contracts", f"{contract_name}.sol", f"{contract_name}.json"
        )

    def load(self, contract_name: str) -> Dict[str, Any]:
        """Load compiled contract ABI and bytecode"""
        if contract_name in self._cache:
            return self._cache[contract_name]

        path = self.path_for(contract_name)
        if not os.path.exists(path):
            raise ArtifactNotFound(contract_name, path)

        with open(path, "r") as f:
            artifact = json.load(f)

        bytecode = artifact.get("bytecode")
        if isinstance(bytecode, dict):
            bytecode = bytecode.get("object")

        loaded = {"abi": artifact["abi"], "bytecode": bytecode}
        self._cache[contract_name] = loaded
        return loaded

    def abi(self, contract_name: str) -> List[Dict[str, Any]]:
        """Artifact ABI when compiled, otherwise the built-in fragment"""
        try:
            return self.load(contract_name)["abi"]
        except ArtifactNotFound:
            if contract_name in ABIS:
                return ABIS[contract_name]
            raise


def _checksum_args(args) -> List[Any]:
    """web3 only accepts checksummed addresses as contract arguments"""
    normalized = []
    for arg in args:
        if isinstance(arg, str) and Web3.is_address(arg):
            normalized.append(Web3.to_checksum_address(arg))
        elif isinstance(arg, (list, tuple)):
            normalized.append(type(arg)(_checksum_args(arg)))
        else:
            normalized.append(arg)
    return normalized


def _revert_message(error: Exception) -> str:
    message = getattr(error, "message", None)
    return message if message else str(error)


class Web3ChainClient(ChainClient):
    """ChainClient over web3.py with a locally held signing key"""

    def __init__(
        self,
        rpc_url: str,
        private_key: str,
        chain_id: int,
        artifacts: ArtifactStore,
        poll_latency: float = 1.0,
    ):
        self.rpc_url = rpc_url
        self.chain_id = chain_id
        self.artifacts = artifacts
        self.poll_latency = poll_latency

        self.w3 = Web3(Web3.HTTPProvider(rpc_url))
        self.w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        if not self.w3.is_connected():
            raise ConnectionError(f"Could not connect to RPC URL: {rpc_url}")

        remote_chain_id = self.w3.eth.chain_id
        if remote_chain_id != chain_id:
            raise ConfigurationError(
                f"RPC {rpc_url} reports chain id {remote_chain_id}, expected {chain_id}"
            )

        self.account = self.w3.eth.account.from_key(private_key)
        self._contracts: Dict[ContractRef, Any] = {}

        logger.info(f"Connected to blockchain at {rpc_url} (chain id {chain_id})")
        logger.info(f"Using signer account: {self.account.address}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "Web3ChainClient":
        return cls(
            rpc_url=settings.effective_rpc_url,
            private_key=settings.require_private_key(),
            chain_id=settings.network_config.chain_id,
            artifacts=ArtifactStore(settings.artifacts_dir),
        )

    @property
    def signer_address(self) -> str:
        return self.account.address

    def _contract(self, ref: ContractRef):
        if ref not in self._contracts:
            self._contracts[ref] = self.w3.eth.contract(
                address=Web3.to_checksum_address(ref.address),
                abi=self.artifacts.abi(ref.name),
            )
        return self._contracts[ref]

    def _tx_params(self) -> Dict[str, Any]:
        return {
            "from": self.account.address,
            "chainId": self.chain_id,
            "nonce": self.w3.eth.get_transaction_count(self.account.address, "pending"),
        }

    def _send(self, tx: Dict[str, Any]) -> str:
        signed = self.account.sign_transaction(tx)
        tx_hash = self.w3.eth.send_raw_transaction(signed.raw_transaction)
        return Web3.to_hex(tx_hash)

    def read(self, contract: ContractRef, method: str, *args: Any) -> Any:
        func = getattr(self._contract(contract).functions, method)(*_checksum_args(args))
        return func.call()

    def submit(self, contract: ContractRef, method: str, *args: Any) -> TxHandle:
        func = getattr(self._contract(contract).functions, method)(*_checksum_args(args))
        try:
            # build_transaction estimates gas, so a call that would revert fails here
            tx = func.build_transaction(self._tx_params())
        except ContractLogicError as e:
            raise TransactionReverted(_revert_message(e)) from e
        tx_hash = self._send(tx)
        return TxHandle(
            tx_hash=tx_hash,
            method=method,
            signer=self.account.address,
            contract=contract,
            contract_name=contract.name,
        )

    def await_confirmation(self, handle: TxHandle, timeout: float) -> Receipt:
        try:
            raw = self.w3.eth.wait_for_transaction_receipt(
                handle.tx_hash, timeout=timeout, poll_latency=self.poll_latency
            )
        except TimeExhausted as e:
            raise ConfirmationTimeout(handle.tx_hash, timeout) from e

        if raw["status"] != 1:
            raise TransactionReverted(self._replay_revert_reason(handle, raw), handle.tx_hash)

        return Receipt(
            tx_hash=handle.tx_hash,
            block_number=raw["blockNumber"],
            gas_used=raw["gasUsed"],
            status=raw["status"],
            contract_address=raw.get("contractAddress"),
            events=self._decode_events(handle, raw),
        )

    def _replay_revert_reason(self, handle: TxHandle, raw_receipt) -> str:
        """Re-execute the failed transaction at its block to recover the reason"""
        tx = self.w3.eth.get_transaction(handle.tx_hash)
        call = {"from": tx["from"], "to": tx["to"], "data": tx["input"], "value": tx["value"]}
        try:
            self.w3.eth.call(call, block_identifier=raw_receipt["blockNumber"])
        except ContractLogicError as e:
            return _revert_message(e)
        except (Web3Exception, ValueError) as e:
            logger.warning(f"Could not replay {handle.tx_hash} for a revert reason: {e}")
        return "execution reverted (no reason returned)"

    def _decode_events(self, handle: TxHandle, raw_receipt) -> List[Dict[str, Any]]:
        if handle.contract is None:
            return []
        contract = self._contract(handle.contract)
        events: List[Dict[str, Any]] = []
        for entry in contract.abi:
            if entry.get("type") != "event":
                continue
            event = getattr(contract.events, entry["name"])()
            for log in event.process_receipt(raw_receipt, errors=DISCARD):
                events.append({"event": log["event"], "args": dict(log["args"])})
        return events

    def deploy(self, contract_name: str, args: List[Any], timeout: float) -> ContractRef:
        artifact = self.artifacts.load(contract_name)
        factory = self.w3.eth.contract(abi=artifact["abi"], bytecode=artifact["bytecode"])
        logger.info(f"Deploying {contract_name}...")
        try:
            tx = factory.constructor(*_checksum_args(args)).build_transaction(self._tx_params())
        except ContractLogicError as e:
            raise TransactionReverted(_revert_message(e)) from e
        handle = TxHandle(
            tx_hash=self._send(tx),
            method="constructor",
            signer=self.account.address,
            contract_name=contract_name,
        )
        logger.info(f"   -> {contract_name} deployment sent: {handle.tx_hash}")
        receipt = self.await_confirmation(handle, timeout)
        if not receipt.contract_address:
            raise TransactionReverted("receipt carries no contract address", handle.tx_hash)
        return ContractRef(contract_name, receipt.contract_address)

    def balance(self, address: str) -> int:
        return self.w3.eth.get_balance(Web3.to_checksum_address(address))

    def close(self) -> None:
        provider = self.w3.provider
        disconnect = getattr(provider, "disconnect", None)
        if callable(disconnect):
            disconnect()
        logger.debug(f"Disconnected from {self.rpc_url}")
