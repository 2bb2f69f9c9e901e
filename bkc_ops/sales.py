#!/usr/bin/env python3
"""
Sales Reporter
Read-only snapshot of PublicSale minted counts per tier
"""

import logging
from dataclasses import dataclass, field
from typing import List

import pandas as pd

from .chain import ChainClient, ContractRef
from .errors import SalesReportError
from .tiers import TierRegistry, TierState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SalesRow:
    tier_id: int
    label: str
    minted: int


@dataclass
class SalesReport:
    network: str
    rows: List[SalesRow] = field(default_factory=list)

    @property
    def total_minted(self) -> int:
        return sum(row.minted for row in self.rows)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [(r.tier_id, r.label, r.minted) for r in self.rows],
            columns=["tier_id", "label", "minted"],
        )

    def format(self) -> str:
        lines = [f"--- SALES REPORT ({self.network}): MINTED COUNT ---"]
        for row in self.rows:
            lines.append(f"[Tier {row.tier_id} - {row.label}]: {row.minted} SOLD.")
        lines.append(f"Total: {self.total_minted} SOLD.")
        return "\n".join(lines)


class SalesReporter:
    """Scan every tier and produce a fully consistent report or nothing"""

    def __init__(self, client: ChainClient, sale: ContractRef, registry: TierRegistry, network: str):
        self.client = client
        self.sale = sale
        self.registry = registry
        self.network = network

    def collect(self) -> SalesReport:
        """
        Read (mintedCount, metadata) for every tier id.

        Raises:
            SalesReportError: any tier read failed; no partial report is returned
        """
        rows: List[SalesRow] = []
        for tier_id in self.registry.tier_ids():
            try:
                state = TierState.from_chain(tier_id, self.client.read(self.sale, "tiers", tier_id))
            except Exception as e:
                logger.error(f"❌ Failed reading tier {tier_id}: {e}")
                raise SalesReportError(tier_id, e) from e
            label = state.metadata_file or self.registry.by_id(tier_id).metadata_file
            rows.append(SalesRow(tier_id, label, state.minted_count))

        return SalesReport(self.network, rows)
