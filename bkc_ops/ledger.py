#!/usr/bin/env python3
"""
Address Ledger
Persisted role -> contract address mapping describing the deployment topology
"""

import json
import logging
import os
import tempfile
from contextlib import contextmanager
from typing import Dict, Iterable, Iterator, List, Mapping, Optional

from web3 import Web3

from .errors import LedgerLocked, LedgerNotFound, MalformedLedger, MissingAddress

logger = logging.getLogger(__name__)


class AddressLedger(Mapping[str, str]):
    """
    Immutable view of the deployment's address ledger.

    Updates go through merge(), which returns a new ledger; persist() writes
    the full document atomically.
    """

    def __init__(self, entries: Optional[Mapping[str, str]] = None):
        self._entries: Dict[str, str] = dict(entries or {})

    @classmethod
    def empty(cls) -> "AddressLedger":
        return cls()

    @classmethod
    def load(cls, path: str) -> "AddressLedger":
        """
        Load and validate the ledger file.

        Args:
            path: Ledger file path

        Returns:
            The loaded ledger, keys in file order

        Raises:
            LedgerNotFound: the file does not exist
            MalformedLedger: the file is not a role -> address JSON object
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                raw = f.read()
        except FileNotFoundError:
            raise LedgerNotFound(path) from None

        try:
            document = json.loads(raw)
        except json.JSONDecodeError as e:
            raise MalformedLedger(path, f"invalid JSON ({e})") from e

        if not isinstance(document, dict):
            raise MalformedLedger(path, "top-level value must be an object")

        for key, value in document.items():
            if not key or not key.strip():
                raise MalformedLedger(path, "empty role name")
            if not isinstance(value, str) or not Web3.is_address(value):
                raise MalformedLedger(path, f"'{key}' is not a valid address: {value!r}")

        logger.debug(f"Loaded {len(document)} ledger entries from {path}")
        return cls(document)

    @classmethod
    def load_or_empty(cls, path: str) -> "AddressLedger":
        """Bootstrap helper: an absent file yields an empty ledger"""
        try:
            return cls.load(path)
        except LedgerNotFound:
            logger.info(f"No ledger at {path}; starting from an empty ledger")
            return cls.empty()

    def require_keys(self, keys: Iterable[str]) -> None:
        """Raise MissingAddress for the first key (in the given order) that is absent"""
        for key in keys:
            if key not in self._entries:
                raise MissingAddress(key)

    def merge(self, entries: Mapping[str, str]) -> "AddressLedger":
        """Return a new ledger with entries applied; shared keys take the new value"""
        merged = dict(self._entries)
        for key, value in entries.items():
            if not Web3.is_address(value):
                raise ValueError(f"Refusing to record invalid address for '{key}': {value!r}")
            merged[key] = value
        return AddressLedger(merged)

    def changed_keys(self, other: "AddressLedger") -> List[str]:
        """Keys that are new or different in other compared to this ledger"""
        return [k for k, v in other.items() if self._entries.get(k) != v]

    def persist(self, path: str) -> None:
        """
        Write the full ledger with write-temp-then-rename semantics.

        A failure at any point before the rename leaves the previous file
        untouched.
        """
        write_text_atomic(path, self.dumps())
        logger.info(f"Ledger persisted to {path} ({len(self._entries)} entries)")

    def dumps(self) -> str:
        return json.dumps(self._entries, indent=2) + "\n"

    def to_dict(self) -> Dict[str, str]:
        return dict(self._entries)

    def __getitem__(self, key: str) -> str:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"AddressLedger({self._entries!r})"


def write_text_atomic(path: str, text: str) -> None:
    """Write to a temp file in the target directory, fsync, then rename over path"""
    directory = os.path.dirname(os.path.abspath(path))
    fd, tmp_path = tempfile.mkstemp(
        prefix=f".{os.path.basename(path)}.", suffix=".tmp", dir=directory
    )
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except BaseException:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise


@contextmanager
def lock(path: str) -> Iterator[str]:
    """
    Hold an exclusive advisory lock on the ledger for the duration of a run.

    The lock is a sibling '<ledger>.lock' file created with O_EXCL.
    """
    lock_path = f"{path}.lock"
    try:
        fd = os.open(lock_path, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
    except FileExistsError:
        raise LedgerLocked(lock_path) from None
    try:
        try:
            os.write(fd, str(os.getpid()).encode())
        finally:
            os.close(fd)
        yield lock_path
    finally:
        try:
            os.unlink(lock_path)
        except FileNotFoundError:
            logger.warning(f"Ledger lock {lock_path} disappeared before release")
