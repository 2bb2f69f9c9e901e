#!/usr/bin/env python3
"""
Tests for the chain client layer
Submission ordering, artifact loading and web3 error mapping
"""

import json
import os
from unittest.mock import MagicMock

import pytest
from web3.exceptions import ContractLogicError, TimeExhausted

from bkc_ops.chain import ArtifactStore, ContractRef, TxHandle, Web3ChainClient, deploy_contract, transact
from bkc_ops.conftest import SIGNER, FakeChain, fake_address
from bkc_ops.contracts import ABIS, ROLES
from bkc_ops.errors import ArtifactNotFound, ConfirmationTimeout, TransactionReverted
from bkc_ops.pacing import RateLimiter

TOKEN = ContractRef("BKCToken", fake_address(2))


class RecordingLimiter(RateLimiter):
    def __init__(self, chain):
        self.chain = chain

    def before_submit(self, signer_id):
        self.chain.calls.append(("pace", signer_id, "", ()))


class TestTransact:

    def setup_method(self):
        self.chain = FakeChain()
        self.limiter = RecordingLimiter(self.chain)

    def test_b_submitted_only_after_a_confirmed(self):
        transact(self.chain, TOKEN, "setTreasuryWallet", SIGNER, limiter=self.limiter, timeout=5)
        transact(self.chain, TOKEN, "setRewardManager", fake_address(5), limiter=self.limiter, timeout=5)

        sequence = [(c[0], c[2]) for c in self.chain.calls if c[0] != "pace"]
        assert sequence == [
            ("submit", "setTreasuryWallet"),
            ("confirm", "setTreasuryWallet"),
            ("submit", "setRewardManager"),
            ("confirm", "setRewardManager"),
        ]

    def test_limiter_consulted_before_every_submit(self):
        transact(self.chain, TOKEN, "approve", fake_address(5), 1, limiter=self.limiter, timeout=5)
        assert [c[0] for c in self.chain.calls] == ["pace", "submit", "confirm"]
        assert self.chain.calls[0][1] == SIGNER

    def test_failed_confirmation_propagates(self):
        self.chain.fail_when("approve", ConfirmationTimeout("0xabc", 5))
        with pytest.raises(ConfirmationTimeout):
            transact(self.chain, TOKEN, "approve", fake_address(5), 1, limiter=self.limiter, timeout=5)

    def test_deploy_contract_paced(self):
        ref = deploy_contract(self.chain, "BKCToken", [SIGNER], self.limiter, 5)
        assert ref.name == "BKCToken"
        assert [c[0] for c in self.chain.calls] == ["pace", "deploy"]


class TestArtifactStore:

    def write_artifact(self, root, name, bytecode):
        path = os.path.join(root, "contracts", f"{name}.sol")
        os.makedirs(path)
        with open(os.path.join(path, f"{name}.json"), "w") as f:
            json.dump({"contractName": name, "abi": [{"type": "constructor", "inputs": []}], "bytecode": bytecode}, f)

    def test_load_string_bytecode(self, tmp_path):
        self.write_artifact(str(tmp_path), "BKCToken", "0x6080")
        artifact = ArtifactStore(str(tmp_path)).load("BKCToken")
        assert artifact["bytecode"] == "0x6080"

    def test_load_object_bytecode(self, tmp_path):
        self.write_artifact(str(tmp_path), "PublicSale", {"object": "0x6060"})
        assert ArtifactStore(str(tmp_path)).load("PublicSale")["bytecode"] == "0x6060"

    def test_missing_artifact(self, tmp_path):
        with pytest.raises(ArtifactNotFound) as exc:
            ArtifactStore(str(tmp_path)).load("FortuneTiger")
        assert "npx hardhat compile" in str(exc.value)

    def test_abi_falls_back_to_builtin_fragments(self, tmp_path):
        assert ArtifactStore(str(tmp_path)).abi("PublicSale") == ABIS["PublicSale"]

    def test_abi_unknown_contract(self, tmp_path):
        with pytest.raises(ArtifactNotFound):
            ArtifactStore(str(tmp_path)).abi("Unknown")

    def test_every_role_has_builtin_abi(self):
        assert set(ROLES.values()) <= set(ABIS)


class TestWeb3ChainClientErrors:
    """Error mapping with a mocked Web3 instance"""

    def setup_method(self):
        self.client = Web3ChainClient.__new__(Web3ChainClient)
        self.client.w3 = MagicMock()
        self.client.poll_latency = 0.1
        self.client.chain_id = 31337
        self.client.rpc_url = "http://127.0.0.1:8545"
        self.client.account = MagicMock(address=SIGNER)
        self.client.artifacts = ArtifactStore("does-not-exist")
        self.client._contracts = {}
        self.handle = TxHandle("0x" + "00" * 32, "updateTierPrice", SIGNER)

    def test_timeout_maps_to_confirmation_timeout(self):
        self.client.w3.eth.wait_for_transaction_receipt.side_effect = TimeExhausted("no receipt")
        with pytest.raises(ConfirmationTimeout) as exc:
            self.client.await_confirmation(self.handle, 30)
        assert exc.value.tx_hash == self.handle.tx_hash
        assert exc.value.timeout == 30

    def test_reverted_receipt_replays_reason(self):
        self.client.w3.eth.wait_for_transaction_receipt.return_value = {"status": 0, "blockNumber": 12}
        self.client.w3.eth.get_transaction.return_value = {
            "from": SIGNER, "to": fake_address(7), "input": "0x", "value": 0,
        }
        self.client.w3.eth.call.side_effect = ContractLogicError("execution reverted: Tier not configured")

        with pytest.raises(TransactionReverted) as exc:
            self.client.await_confirmation(self.handle, 30)

        assert "Tier not configured" in exc.value.reason
        assert exc.value.tx_hash == self.handle.tx_hash
        assert self.client.w3.eth.call.call_args.kwargs["block_identifier"] == 12

    def test_successful_receipt(self):
        self.client.w3.eth.wait_for_transaction_receipt.return_value = {
            "status": 1, "blockNumber": 12, "gasUsed": 50000,
        }
        receipt = self.client.await_confirmation(self.handle, 30)
        assert (receipt.block_number, receipt.gas_used, receipt.events) == (12, 50000, [])

    def test_estimation_revert_maps_to_transaction_reverted(self):
        contract = self.client.w3.eth.contract.return_value
        contract.functions.updateTierPrice.return_value.build_transaction.side_effect = (
            ContractLogicError("execution reverted: Ownable: caller is not the owner")
        )
        with pytest.raises(TransactionReverted) as exc:
            self.client.submit(ContractRef("PublicSale", fake_address(7)), "updateTierPrice", 0, 150)
        assert "caller is not the owner" in exc.value.reason
        self.client.w3.eth.send_raw_transaction.assert_not_called()
