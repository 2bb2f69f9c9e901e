#!/usr/bin/env python3
"""
Tests for the bkc-ops command line
"""

import json
from unittest.mock import patch

import pandas as pd
import pytest
from web3 import Web3

from bkc_ops import cli
from bkc_ops.conftest import SIGNER, FakeChain, fake_address
from bkc_ops.errors import TransactionReverted
from bkc_ops.ledger import AddressLedger

ENV_VARS = [
    "BKC_NETWORK", "BKC_RPC_URL", "BKC_PRIVATE_KEY", "PRIVATE_KEY", "BKC_LEDGER_PATH",
    "BKC_TX_DELAY_MS", "BKC_PRICE_MULTIPLIER", "BKC_TIER_ID_BASE", "BKC_LOG_FILE", "BKC_RULES_PATH",
    "SLACK_WEBHOOK", "SMTP_USERNAME", "SMTP_PASSWORD", "NOTIFICATION_EMAIL",
]


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    with patch("bkc_ops.cli.setup_logging"):
        yield


class TestCli:

    def setup_method(self):
        self.chain = FakeChain()
        self.chain.token_balances[SIGNER] = Web3.to_wei(100_000_000, "ether")

    def main(self, *argv, ledger_path):
        return cli.main(
            ["--ledger", ledger_path, "--delay-ms", "0", *argv],
            client_factory=lambda settings: self.chain,
        )

    def test_steps_lists_pipeline(self, capsys):
        assert cli.main(["steps"]) == 0
        out = capsys.readouterr().out
        assert "1. deploy-core" in out
        assert "[test networks only]" in out

    def test_unknown_step_is_usage_error(self, ledger_path):
        with pytest.raises(SystemExit) as exc:
            self.main("run", "deploy-everything", ledger_path=ledger_path)
        assert exc.value.code == 2

    def test_missing_ledger_exits_1(self, ledger_path):
        assert self.main("run", "configure-hub", ledger_path=ledger_path) == 1
        assert self.chain.closed

    def test_pipeline_then_ledger(self, ledger_path, capsys):
        assert self.main("pipeline", ledger_path=ledger_path) == 0
        assert len(AddressLedger.load(ledger_path)) == 10

        capsys.readouterr()
        assert self.main("ledger", ledger_path=ledger_path) == 0
        assert '"ecosystemManager"' in capsys.readouterr().out

    def test_run_failure_sends_alert_when_configured(self, ledger_path, monkeypatch):
        monkeypatch.setenv("SLACK_WEBHOOK", "https://hooks.slack.test/T000")
        AddressLedger({"publicSale": fake_address(7)}).persist(ledger_path)
        self.chain.configure_tier(0, 100)
        self.chain.fail_when("updateTierPrice", TransactionReverted("Ownable: caller is not the owner"))

        with patch("bkc_ops.notify.requests.post") as post:
            assert self.main("update-prices", ledger_path=ledger_path) == 1

        payload = post.call_args.kwargs["json"]
        assert "caller is not the owner" in payload["text"]

    def test_update_prices_dry_run(self, ledger_path):
        AddressLedger({"publicSale": fake_address(7)}).persist(ledger_path)
        self.chain.configure_tier(0, 100)

        assert self.main("update-prices", "--dry-run", ledger_path=ledger_path) == 0
        assert self.chain.methods("submit") == []
        assert self.chain.tiers[0][0] == 100

    def test_sales_report_csv(self, ledger_path, tmp_path, capsys):
        AddressLedger({"publicSale": fake_address(7)}).persist(ledger_path)
        self.chain.configure_tier(1, 100, minted=3, metadata="platinum_booster.json")
        csv_path = str(tmp_path / "sales.csv")

        assert self.main("sales-report", "--csv", csv_path, ledger_path=ledger_path) == 0

        assert "[Tier 1 - platinum_booster.json]: 3 SOLD." in capsys.readouterr().out
        frame = pd.read_csv(csv_path)
        assert frame["minted"].tolist() == [0, 3, 0, 0, 0, 0, 0]

    def test_manage_rules_from_default_rules_file(self, ledger_path, tmp_path):
        AddressLedger({"ecosystemManager": fake_address(1)}).persist(ledger_path)
        (tmp_path / "rules-config.json").write_text(json.dumps({
            "COMMENT": "only non-empty values are applied",
            "ammTaxFees": {"NFT_POOL_TAX_BIPS": "800", "NFT_POOL_TAX_TREASURY_SHARE_BIPS": ""},
        }))

        assert self.main("manage-rules", ledger_path=ledger_path) == 0
        assert self.chain.hub_rules == {("setFee", "NFT_POOL_TAX_BIPS"): 800}

    def test_manage_rules_missing_file_exits_1(self, ledger_path):
        AddressLedger({"ecosystemManager": fake_address(1)}).persist(ledger_path)
        assert self.main("manage-rules", "--rules", "nope.json", ledger_path=ledger_path) == 1
        assert self.chain.calls == []

    def test_add_liquidity_sold_out_sale_submits_nothing(self, ledger_path):
        AddressLedger({
            "bkcToken": fake_address(1),
            "rewardBoosterNFT": fake_address(2),
            "publicSale": fake_address(3),
            "nftLiquidityPool": fake_address(4),
        }).persist(ledger_path)
        for tier_id in range(7):
            self.chain.configure_tier(tier_id, 100, minted=95, max_supply=100)

        assert self.main("add-liquidity", ledger_path=ledger_path) == 0
        assert self.chain.methods("submit") == []
