#!/usr/bin/env python3
"""
Error classes for the Backchain deployment control plane
"""

from typing import Iterable, Optional


class DeploymentError(Exception):
    """Base exception for every unrecovered control-plane failure"""
    pass


class ConfigurationError(DeploymentError):
    """Static configuration is missing or invalid"""
    pass


class LedgerNotFound(DeploymentError):
    """The address ledger file does not exist yet"""

    def __init__(self, path: str):
        self.path = path
        super().__init__(
            f"Address ledger not found at {path}. Run the 'deploy-core' step first."
        )


class MalformedLedger(DeploymentError):
    """The address ledger file exists but cannot be trusted"""

    def __init__(self, path: str, detail: str):
        self.path = path
        self.detail = detail
        super().__init__(f"Malformed address ledger {path}: {detail}")


class LedgerLocked(DeploymentError):
    """Another run currently holds the ledger write lock"""

    def __init__(self, lock_path: str):
        self.lock_path = lock_path
        super().__init__(
            f"Ledger is locked by another run ({lock_path}). "
            f"Remove the lock file only if no other run is active."
        )


class MissingAddress(DeploymentError):
    """A step's required ledger key is absent"""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Missing required address: {key}")


class RedeployRefused(DeploymentError):
    """A deploying step would overwrite existing ledger entries without --force"""

    def __init__(self, step: str, keys: Iterable[str]):
        self.step = step
        self.keys = list(keys)
        super().__init__(
            f"Step '{step}' would redeploy {', '.join(self.keys)} which already "
            f"exist in the ledger. Re-run with --force to replace them."
        )


class TransactionReverted(DeploymentError):
    """The chain rejected a transaction; reason is kept verbatim"""

    def __init__(self, reason: str, tx_hash: Optional[str] = None):
        self.reason = reason
        self.tx_hash = tx_hash
        where = f" (tx {tx_hash})" if tx_hash else ""
        super().__init__(f"Transaction reverted{where}: {reason}")


class ConfirmationTimeout(DeploymentError):
    """No receipt within the timeout; on-chain outcome is unknown"""

    def __init__(self, tx_hash: str, timeout: float):
        self.tx_hash = tx_hash
        self.timeout = timeout
        super().__init__(
            f"No confirmation for {tx_hash} after {timeout:g}s. The outcome is "
            f"unknown: reconcile manually before re-running."
        )


class CreationUnverified(DeploymentError):
    """A guarded resource is still absent after its creation was confirmed"""

    def __init__(self, resource: str):
        self.resource = resource
        super().__init__(
            f"Creation of {resource} was confirmed but the resource is not "
            f"visible on-chain"
        )


class ArtifactNotFound(DeploymentError):
    """Compiled contract artifact is missing"""

    def __init__(self, contract_name: str, path: str):
        self.contract_name = contract_name
        self.path = path
        super().__init__(
            f"Contract artifact not found: {path}\n"
            f"Run 'npx hardhat compile' first."
        )


class SalesReportError(DeploymentError):
    """A tier read failed, so no report is produced"""

    def __init__(self, tier_id: int, cause: Exception):
        self.tier_id = tier_id
        super().__init__(f"Could not read tier {tier_id}: {cause}")
