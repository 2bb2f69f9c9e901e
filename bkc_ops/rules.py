#!/usr/bin/env python3
"""
Hub Rules
Operator rules document (rules-config.json) parsed into EcosystemManager
setter calls
"""

import json
import logging
import os
import re
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Tuple, Union

from web3 import Web3

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

COMMENT_KEYS = ("DESCRIPTION", "COMMENT")

_INTEGER = re.compile(r"^\d+$")
_DECIMAL = re.compile(r"^\d+(\.\d+)?$")


def _as_integer(value: str) -> int:
    if not _INTEGER.match(value):
        raise ValueError(f"expected a whole number, got {value!r}")
    return int(value)


def _as_bkc_wei(value: str) -> int:
    if not _DECIMAL.match(value):
        raise ValueError(f"expected a BKC amount, got {value!r}")
    return Web3.to_wei(value, "ether")


@dataclass(frozen=True)
class RuleCategory:
    """One section of the rules document and the hub setter it feeds"""
    name: str
    setter: str
    description: str
    convert: Callable[[str], int]
    integer_keys: bool = False


# Applied in this order
CATEGORIES: Tuple[RuleCategory, ...] = (
    RuleCategory("serviceFees", "setFee", "Service fee (BKC)", _as_bkc_wei),
    RuleCategory("pStakeMinimums", "setPStakeMinimum", "pStake minimum", _as_integer),
    RuleCategory("stakingFees", "setFee", "Staking fee (bips)", _as_integer),
    RuleCategory("ammTaxFees", "setFee", "AMM tax (bips)", _as_integer),
    RuleCategory("boosterDiscounts", "setBoosterDiscount", "Booster discount (bips)", _as_integer,
                 integer_keys=True),
    RuleCategory("miningDistribution", "setMiningDistributionBips", "Mining distribution (bips)", _as_integer),
    RuleCategory("miningBonuses", "setMiningBonusBips", "Mining bonus (bips)", _as_integer),
)


@dataclass(frozen=True)
class RuleUpdate:
    category: str
    setter: str
    description: str
    key: Union[str, int]
    raw_value: str
    value: int

    def describe(self) -> str:
        return f"{self.description} [{self.key}] = {self.raw_value}"


def _is_comment(key: str) -> bool:
    return key.upper() in COMMENT_KEYS


def parse_rules(document: Dict[str, Any], source: str = "rules document") -> List[RuleUpdate]:
    """
    Validate a whole rules document and return the updates it asks for.

    Comment keys and empty values are skipped. Nothing is returned unless
    every value in the document is valid.

    Raises:
        ConfigurationError: unknown category, malformed section or value
    """
    if not isinstance(document, dict):
        raise ConfigurationError(f"{source}: top level must be an object")

    known = {c.name for c in CATEGORIES}
    unknown = [k for k in document if k not in known and not _is_comment(k)]
    if unknown:
        raise ConfigurationError(
            f"{source}: unknown rule categories {unknown}. Known: {', '.join(sorted(known))}"
        )

    updates: List[RuleUpdate] = []
    for category in CATEGORIES:
        section = document.get(category.name)
        if section is None:
            continue
        if not isinstance(section, dict):
            raise ConfigurationError(f"{source}: '{category.name}' must be an object")

        for key, value in section.items():
            if _is_comment(key):
                continue
            if isinstance(value, bool) or not isinstance(value, (str, int)):
                raise ConfigurationError(
                    f"{source}: {category.name}.{key} must be a string or integer, got {value!r}"
                )
            raw = str(value).strip()
            if raw == "":
                continue
            try:
                contract_key = _as_integer(key) if category.integer_keys else key
                converted = category.convert(raw)
            except ValueError as e:
                raise ConfigurationError(f"{source}: {category.name}.{key}: {e}") from None
            updates.append(RuleUpdate(
                category.name, category.setter, category.description, contract_key, raw, converted
            ))
    return updates


def load_rules(path: str) -> List[RuleUpdate]:
    if not os.path.exists(path):
        raise ConfigurationError(f"Rules file not found: {path}")
    try:
        with open(path, "r", encoding="utf-8") as f:
            document = json.load(f)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"Rules file {path} is not valid JSON: {e}") from e
    updates = parse_rules(document, source=path)
    logger.info(f"Loaded {len(updates)} rule updates from {path}")
    return updates
