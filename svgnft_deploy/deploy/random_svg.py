"""
Deploy RandomSVG, fund it with LINK and request a mint.

On the local chain the LINK token and coordinator are the mocks deployed by
the `mocks` script and the VRF callback is simulated so the mint completes.
On a live network the run ends once the randomness request is on chain.
"""

from __future__ import annotations

from ..orchestrator import ProvisioningOrchestrator, WorkflowPlan, WorkflowResult
from .env import DeployEnv

TAGS = ("all", "rsvg")


def run(env: DeployEnv) -> WorkflowResult:
    base = env.network
    profile = env.table.resolve(env.chain_id, env.deployments if base.local else None)
    plan = WorkflowPlan.random_svg(profile, env.gas)
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
