"""
Deployment and Management Steps
===============================

Steps for deploying and maintaining the Backchain contracts.

Structure:
- base: step model, runner and pipeline
- core: hub, core and spoke contracts plus their wiring
- market: liquidity pools, public sale tiers, prize pools and fees
- maintenance: price updates, sales reporting, post-sale pool liquidity
  and hub rule updates
"""

from .base import DeploymentStep, Pipeline, StepContext, StepResult, run_step
from .core import ConfigureHub, ConfigureSystem, DeployCore, DeploySpokes, FundFaucet
from .maintenance import AddLiquidity, ManageRules, SalesReportStep, UpdatePrices
from .market import ConfigureFees, CreatePools, SetupSale


def build_pipeline() -> Pipeline:
    """The initial deployment in execution order"""
    return Pipeline([
        DeployCore(),
        FundFaucet(),
        ConfigureHub(),
        DeploySpokes(),
        ConfigureSystem(),
        CreatePools(),
        SetupSale(),
        ConfigureFees(),
    ])


PIPELINE = build_pipeline()

__all__ = [
    "PIPELINE",
    "AddLiquidity",
    "DeploymentStep",
    "ManageRules",
    "Pipeline",
    "SalesReportStep",
    "StepContext",
    "StepResult",
    "UpdatePrices",
    "build_pipeline",
    "run_step",
]
