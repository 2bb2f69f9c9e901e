#!/usr/bin/env python3
"""
Environment-driven configuration for the deployment control plane.

Values are read once when a run starts and never mutated afterwards.
"""

import os
from dataclasses import dataclass, replace
from typing import Dict, Optional

from .errors import ConfigurationError


@dataclass(frozen=True)
class NetworkConfig:
    """Network-specific configuration"""
    name: str
    chain_id: int
    rpc_url: str
    is_testnet: bool = True
    explorer_url: Optional[str] = None


NETWORKS: Dict[str, NetworkConfig] = {
    "localhost": NetworkConfig(
        name="localhost",
        chain_id=31337,
        rpc_url="http://127.0.0.1:8545",
    ),
    "hardhat": NetworkConfig(
        name="hardhat",
        chain_id=31337,
        rpc_url="http://127.0.0.1:8545",
    ),
    "sepolia": NetworkConfig(
        name="sepolia",
        chain_id=11155111,
        rpc_url="https://rpc.sepolia.org",
        explorer_url="https://sepolia.etherscan.io",
    ),
    "arbitrumSepolia": NetworkConfig(
        name="arbitrumSepolia",
        chain_id=421614,
        rpc_url="https://sepolia-rollup.arbitrum.io/rpc",
        explorer_url="https://sepolia.arbiscan.io",
    ),
    "arbitrum": NetworkConfig(
        name="arbitrum",
        chain_id=42161,
        rpc_url="https://arb1.arbitrum.io/rpc",
        is_testnet=False,
        explorer_url="https://arbiscan.io",
    ),
}


def get_network(name: str) -> NetworkConfig:
    try:
        return NETWORKS[name]
    except KeyError:
        known = ", ".join(sorted(NETWORKS))
        raise ConfigurationError(f"Unknown network '{name}'. Known networks: {known}") from None


def _int_env(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return int(raw)
    except ValueError:
        raise ConfigurationError(f"{name} must be an integer, got {raw!r}") from None


@dataclass(frozen=True)
class Settings:
    """Run settings. Build with Settings.from_env() after load_dotenv()."""

    network: str = "localhost"
    rpc_url: Optional[str] = None
    private_key: Optional[str] = None
    ledger_path: str = "deployment-addresses.json"
    artifacts_dir: str = "artifacts"
    confirmation_timeout: int = 120
    tx_delay_ms: int = 2000
    price_multiplier: str = "150/100"
    tier_id_base: int = 0
    rules_path: str = "rules-config.json"
    log_file: Optional[str] = None

    # Operator alerts
    slack_webhook: Optional[str] = None
    smtp_server: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_username: Optional[str] = None
    smtp_password: Optional[str] = None
    notification_email: Optional[str] = None

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            network=os.getenv("BKC_NETWORK", "localhost"),
            rpc_url=os.getenv("BKC_RPC_URL") or None,
            private_key=os.getenv("BKC_PRIVATE_KEY") or os.getenv("PRIVATE_KEY") or None,
            ledger_path=os.getenv("BKC_LEDGER_PATH", "deployment-addresses.json"),
            artifacts_dir=os.getenv("BKC_ARTIFACTS_DIR", "artifacts"),
            confirmation_timeout=_int_env("BKC_CONFIRMATION_TIMEOUT", 120),
            tx_delay_ms=_int_env("BKC_TX_DELAY_MS", 2000),
            price_multiplier=os.getenv("BKC_PRICE_MULTIPLIER", "150/100"),
            tier_id_base=_int_env("BKC_TIER_ID_BASE", 0),
            rules_path=os.getenv("BKC_RULES_PATH", "rules-config.json"),
            log_file=os.getenv("BKC_LOG_FILE") or None,
            slack_webhook=os.getenv("SLACK_WEBHOOK") or None,
            smtp_server=os.getenv("SMTP_SERVER", "smtp.gmail.com"),
            smtp_port=_int_env("SMTP_PORT", 587),
            smtp_username=os.getenv("SMTP_USERNAME") or None,
            smtp_password=os.getenv("SMTP_PASSWORD") or None,
            notification_email=os.getenv("NOTIFICATION_EMAIL") or None,
        )

    def with_overrides(self, **changes) -> "Settings":
        """Return a copy with the non-None values of changes applied"""
        return replace(self, **{k: v for k, v in changes.items() if v is not None})

    @property
    def network_config(self) -> NetworkConfig:
        return get_network(self.network)

    @property
    def effective_rpc_url(self) -> str:
        return self.rpc_url or self.network_config.rpc_url

    def require_private_key(self) -> str:
        if not self.private_key:
            raise ConfigurationError("BKC_PRIVATE_KEY environment variable not set")
        pk = self.private_key
        if not pk.startswith("0x"):
            pk = "0x" + pk
        return pk
