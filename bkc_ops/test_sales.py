#!/usr/bin/env python3
"""
Tests for the Sales Reporter
"""

import pandas as pd
import pytest

from bkc_ops.chain import ContractRef
from bkc_ops.conftest import FakeChain, fake_address
from bkc_ops.errors import SalesReportError
from bkc_ops.sales import SalesReporter
from bkc_ops.tiers import TierRegistry

SALE = ContractRef("PublicSale", fake_address(7))


class TestSalesReporter:

    def setup_method(self):
        self.chain = FakeChain()
        self.reporter = SalesReporter(self.chain, SALE, TierRegistry(), "sepolia")

    def test_collect_all_tiers(self):
        for tier_id in range(7):
            self.chain.configure_tier(tier_id, 100, minted=tier_id * 10, metadata=f"tier{tier_id}.json")

        report = self.reporter.collect()

        assert [r.tier_id for r in report.rows] == list(range(7))
        assert [r.minted for r in report.rows] == [0, 10, 20, 30, 40, 50, 60]
        assert report.total_minted == 210
        assert report.rows[3].label == "tier3.json"
        assert self.chain.methods("submit") == []

    def test_label_falls_back_to_registry(self):
        report = self.reporter.collect()
        assert report.rows[0].label == "diamond_booster.json"
        assert report.total_minted == 0

    def test_any_read_failure_yields_no_report(self):
        self.chain.fail_when("tiers", TimeoutError("rpc timeout"), match=lambda a: a[0] == 4, at="read")

        with pytest.raises(SalesReportError) as exc:
            self.reporter.collect()

        assert exc.value.tier_id == 4
        assert isinstance(exc.value.__cause__, TimeoutError)

    def test_format_and_frame(self):
        self.chain.configure_tier(0, 100, minted=7, metadata="diamond_booster.json")
        report = self.reporter.collect()

        text = report.format()
        assert text.startswith("--- SALES REPORT (sepolia): MINTED COUNT ---")
        assert "[Tier 0 - diamond_booster.json]: 7 SOLD." in text

        frame = report.to_frame()
        assert isinstance(frame, pd.DataFrame)
        assert list(frame.columns) == ["tier_id", "label", "minted"]
        assert frame["minted"].sum() == 7
