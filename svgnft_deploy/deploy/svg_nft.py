"""Deploy SVGNFT and mint one token from an SVG file."""

from __future__ import annotations

from ..orchestrator import ProvisioningOrchestrator, WorkflowPlan, WorkflowResult
from .env import DeployEnv

TAGS = ("all", "svg")


def run(env: DeployEnv) -> WorkflowResult:
    profile = env.network
    plan = WorkflowPlan.svg_nft(env.read_svg())
    orchestrator = ProvisioningOrchestrator(
        plan,
        profile,
        deployments=env.deployments,
        contracts=env.contracts,
        from_=env.deployer_address,
        confirmations=env.settings.confirmations,
        timeout_s=env.settings.tx_timeout,
    )
    return orchestrator.run()
