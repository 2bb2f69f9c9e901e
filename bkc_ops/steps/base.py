#!/usr/bin/env python3
"""
Deployment step model, step runner and ordered pipeline
"""

import logging
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..chain import ChainClient, ContractRef, Receipt, deploy_contract, transact
from ..config import NetworkConfig, Settings
from ..contracts import ROLES
from ..errors import RedeployRefused
from ..ledger import AddressLedger, lock
from ..pacing import RateLimiter
from ..tiers import TierRegistry

logger = logging.getLogger(__name__)

SEPARATOR = "-" * 52


@dataclass
class StepContext:
    """Everything a step needs, constructed once per run and shared by all steps"""
    client: ChainClient
    settings: Settings
    limiter: RateLimiter
    registry: TierRegistry
    force: bool = False
    pending: Dict[str, str] = field(default_factory=dict)
    outputs: Dict[str, Any] = field(default_factory=dict)

    @property
    def network(self) -> NetworkConfig:
        return self.settings.network_config

    @property
    def ledger_path(self) -> str:
        return self.settings.ledger_path

    @property
    def timeout(self) -> float:
        return self.settings.confirmation_timeout

    @property
    def signer(self) -> str:
        return self.client.signer_address

    def begin_step(self) -> None:
        self.pending = {}
        self.outputs = {}

    def ref(self, ledger: AddressLedger, role: str) -> ContractRef:
        """ContractRef for a ledger role; the key must have been required already"""
        return ContractRef(ROLES[role], ledger[role])

    def read(self, contract: ContractRef, method: str, *args: Any) -> Any:
        return self.client.read(contract, method, *args)

    def transact(self, contract: ContractRef, method: str, *args: Any) -> Receipt:
        return transact(
            self.client, contract, method, *args, limiter=self.limiter, timeout=self.timeout
        )

    def deploy_role(self, role: str, *args: Any) -> ContractRef:
        """Deploy the contract behind a ledger role and stage its address"""
        ref = deploy_contract(self.client, ROLES[role], list(args), self.limiter, self.timeout)
        self.pending[role] = ref.address
        return ref


class DeploymentStep:
    """
    One independently re-runnable unit of the deployment.

    Attributes:
        name: CLI name
        description: One-line summary for progress output
        requires: Ledger keys that must exist before any chain call, in check order
        provides: Ledger keys this step may write
        redeploys: Keys whose existing value is only replaced with --force
        bootstrap: May start from an absent ledger
        testnet_only: Skipped by the pipeline on production networks
    """

    name: str = ""
    description: str = ""
    requires: Sequence[str] = ()
    provides: Sequence[str] = ()
    redeploys: Sequence[str] = ()
    bootstrap: bool = False
    testnet_only: bool = False

    def execute(self, ctx: StepContext, ledger: AddressLedger) -> None:
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.name}>"


@dataclass
class StepResult:
    step: str
    written: Dict[str, str] = field(default_factory=dict)
    outputs: Dict[str, Any] = field(default_factory=dict)
    skipped: bool = False


def run_step(step: DeploymentStep, ctx: StepContext) -> StepResult:
    """
    Run one step: load ledger, check requirements, execute, merge and persist.

    The ledger file is only rewritten after the whole step succeeded.
    """
    ctx.begin_step()
    logger.info(f"🚀 ({step.name}) {step.description} on network: {ctx.network.name}")
    logger.info(f"Using account: {ctx.signer}")
    logger.info(SEPARATOR)

    guard = lock(ctx.ledger_path) if step.provides else nullcontext()
    with guard:
        if step.bootstrap:
            ledger = AddressLedger.load_or_empty(ctx.ledger_path)
        else:
            ledger = AddressLedger.load(ctx.ledger_path)

        ledger.require_keys(step.requires)

        existing = [key for key in step.redeploys if key in ledger]
        if existing and not ctx.force:
            raise RedeployRefused(step.name, existing)
        if existing:
            logger.warning(f"⚠️ --force: replacing existing entries {existing}")

        try:
            step.execute(ctx, ledger)
        except Exception:
            if ctx.pending:
                logger.error(
                    f"❌ {step.name} failed after deploying contracts that were NOT "
                    f"recorded in the ledger: {ctx.pending}"
                )
            raise

        unexpected = [key for key in ctx.pending if key not in step.provides]
        if unexpected:
            raise RuntimeError(f"Step {step.name} staged undeclared keys: {unexpected}")

        written: Dict[str, str] = {}
        if ctx.pending:
            updated = ledger.merge(ctx.pending)
            written = {key: updated[key] for key in ledger.changed_keys(updated)}
            updated.persist(ctx.ledger_path)

    logger.info(f"🎉 {step.name} completed successfully.")
    return StepResult(step.name, written, dict(ctx.outputs))


class Pipeline:
    """
    Explicit step order. Construction fails if a step requires a key that no
    earlier step provides.
    """

    def __init__(self, steps: Iterable[DeploymentStep]):
        self.steps: List[DeploymentStep] = list(steps)
        available = set()
        seen = set()
        for step in self.steps:
            if step.name in seen:
                raise ValueError(f"Duplicate step name: {step.name}")
            seen.add(step.name)
            missing = [key for key in step.requires if key not in available]
            if missing:
                raise ValueError(
                    f"Step '{step.name}' requires {missing} which no earlier step provides"
                )
            available.update(step.provides)

    def names(self) -> List[str]:
        return [step.name for step in self.steps]

    def get(self, name: str) -> DeploymentStep:
        for step in self.steps:
            if step.name == name:
                return step
        raise KeyError(f"Unknown step '{name}'. Known steps: {', '.join(self.names())}")

    def run(
        self,
        ctx: StepContext,
        only: Optional[Sequence[str]] = None,
        start_at: Optional[str] = None,
    ) -> List[StepResult]:
        """Run steps in pipeline order, stopping at the first failure"""
        selected = self.steps
        if start_at is not None:
            selected = selected[self.steps.index(self.get(start_at)):]
        if only is not None:
            wanted = {self.get(name).name for name in only}
            selected = [step for step in selected if step.name in wanted]

        results: List[StepResult] = []
        for position, step in enumerate(selected, 1):
            if step.testnet_only and not ctx.network.is_testnet:
                logger.info(f"⏭️ Skipping {step.name} ({step.description}): test networks only")
                results.append(StepResult(step.name, skipped=True))
                continue
            logger.info(f"\n--- ⏳ STEP {position}/{len(selected)}: {step.name} ---")
            results.append(run_step(step, ctx))
        return results
