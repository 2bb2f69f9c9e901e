#!/usr/bin/env python3
"""
Tests for the Address Ledger
Merge/require algebra, validation on load, atomic persistence and locking
"""

import json
import os
from unittest.mock import patch

import pytest

from bkc_ops.conftest import fake_address
from bkc_ops.errors import LedgerLocked, LedgerNotFound, MalformedLedger, MissingAddress
from bkc_ops.ledger import AddressLedger, lock, write_text_atomic

HUB = fake_address(1)
TOKEN = fake_address(2)
SALE = fake_address(3)


class TestAddressLedgerAlgebra:
    """merge() and require_keys()"""

    def setup_method(self):
        self.ledger = AddressLedger({"ecosystemManager": HUB, "bkcToken": TOKEN})

    @pytest.mark.parametrize("keys,ok", [
        ([], True),
        (["ecosystemManager"], True),
        (["ecosystemManager", "bkcToken", "publicSale"], True),
        (["publicSale"], True),
        (["rewardManager"], False),
        (["publicSale", "rewardManager"], False),
    ])
    def test_require_keys_after_merge(self, keys, ok):
        """require_keys(merge(L, {k: v}), K) succeeds iff K is within keys(L) plus k"""
        merged = self.ledger.merge({"publicSale": SALE})
        if ok:
            merged.require_keys(keys)
        else:
            with pytest.raises(MissingAddress):
                merged.require_keys(keys)

    def test_require_keys_reports_first_missing_in_order(self):
        with pytest.raises(MissingAddress) as exc:
            self.ledger.require_keys(["bkcToken", "publicSale", "rewardManager"])
        assert exc.value.key == "publicSale"
        assert str(exc.value) == "Missing required address: publicSale"

    def test_merge_returns_new_ledger(self):
        merged = self.ledger.merge({"publicSale": SALE})
        assert "publicSale" in merged
        assert "publicSale" not in self.ledger
        assert len(self.ledger) == 2

    def test_merge_overwrites_shared_keys_and_keeps_others(self):
        merged = self.ledger.merge({"bkcToken": SALE, "futureRole": fake_address(9)})
        assert merged["bkcToken"] == SALE
        assert merged["ecosystemManager"] == HUB
        assert merged["futureRole"] == fake_address(9)

    def test_merge_rejects_invalid_address(self):
        with pytest.raises(ValueError):
            self.ledger.merge({"publicSale": "not-an-address"})

    def test_changed_keys(self):
        merged = self.ledger.merge({"bkcToken": TOKEN, "publicSale": SALE})
        assert self.ledger.changed_keys(merged) == ["publicSale"]


class TestAddressLedgerPersistence:
    """load(), persist() and the lock"""

    def test_load_missing_file(self, ledger_path):
        with pytest.raises(LedgerNotFound):
            AddressLedger.load(ledger_path)

    def test_load_or_empty_bootstraps(self, ledger_path):
        assert len(AddressLedger.load_or_empty(ledger_path)) == 0

    def test_round_trip_preserves_order(self, ledger_path):
        ledger = AddressLedger({"publicSale": SALE, "bkcToken": TOKEN, "ecosystemManager": HUB})
        ledger.persist(ledger_path)

        loaded = AddressLedger.load(ledger_path)
        assert list(loaded) == ["publicSale", "bkcToken", "ecosystemManager"]
        assert loaded.to_dict() == ledger.to_dict()

    @pytest.mark.parametrize("content", [
        "{not json",
        "[]",
        json.dumps({"bkcToken": "0x1234"}),
        json.dumps({"bkcToken": 42}),
        json.dumps({"": HUB}),
    ])
    def test_load_rejects_malformed(self, ledger_path, content):
        with open(ledger_path, "w") as f:
            f.write(content)
        with pytest.raises(MalformedLedger):
            AddressLedger.load(ledger_path)

    def test_crash_during_persist_keeps_previous_snapshot(self, ledger_path):
        """A failure before the rename leaves the old file loadable and no temp files behind"""
        original = AddressLedger({"ecosystemManager": HUB})
        original.persist(ledger_path)

        updated = original.merge({"bkcToken": TOKEN})
        with patch("bkc_ops.ledger.os.replace", side_effect=OSError("disk full")):
            with pytest.raises(OSError):
                updated.persist(ledger_path)

        assert AddressLedger.load(ledger_path).to_dict() == {"ecosystemManager": HUB}
        assert os.listdir(os.path.dirname(ledger_path)) == [os.path.basename(ledger_path)]

    def test_crash_during_write_keeps_previous_snapshot(self, ledger_path):
        original = AddressLedger({"ecosystemManager": HUB})
        original.persist(ledger_path)

        with patch("bkc_ops.ledger.os.fsync", side_effect=OSError("I/O error")):
            with pytest.raises(OSError):
                write_text_atomic(ledger_path, '{"truncated": ')

        assert AddressLedger.load(ledger_path)["ecosystemManager"] == HUB

    def test_lock_is_exclusive(self, ledger_path):
        with lock(ledger_path) as lock_path:
            assert os.path.exists(lock_path)
            with pytest.raises(LedgerLocked):
                with lock(ledger_path):
                    pass
        assert not os.path.exists(f"{ledger_path}.lock")

    def test_lock_released_on_error(self, ledger_path):
        with pytest.raises(RuntimeError):
            with lock(ledger_path):
                raise RuntimeError("step failed")
        with lock(ledger_path):
            pass

    def test_lock_closes_descriptor_when_pid_write_fails(self, ledger_path):
        with patch("bkc_ops.ledger.os.write", side_effect=OSError("disk full")), \
                patch("bkc_ops.ledger.os.close", wraps=os.close) as close:
            with pytest.raises(OSError):
                with lock(ledger_path):
                    pass
        assert close.call_count == 1
        assert not os.path.exists(f"{ledger_path}.lock")
