"""
Runtime environment shared by the deploy scripts: the node connection, the
network table, the Deployment Service and the Contract Call Service.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

from ..config import Settings
from ..contracts.abi import ArtifactStore
from ..contracts.client import RpcContracts
from ..deployments import Deployer, DeploymentStore
from ..errors import ConfigurationMissing
from ..networks import NetworkProfile, NetworkTable, load_network_table
from ..orchestrator import ContractService, DeploymentService, GasPolicy
from ..rpc.http import RpcClient
from ..wallet.signer import signer_from_settings

log = logging.getLogger(__name__)

DEFAULT_SVG = Path(__file__).resolve().parent.parent / "data" / "triangle.svg"


@dataclass
class DeployEnv:
    chain_id: int
    table: NetworkTable
    deployments: DeploymentService
    contracts: ContractService
    settings: Settings = field(default_factory=Settings)
    deployer_address: Optional[str] = None
    svg_path: Optional[Path] = None
    rpc: Any = field(default=None, repr=False)

    @property
    def network(self) -> NetworkProfile:
        """Profile of the connected chain without local mock addresses filled in."""
        return self.table.resolve(self.chain_id)

    @property
    def gas(self) -> GasPolicy:
        return GasPolicy(self.settings.mint_gas_limit, self.settings.finish_gas_limit)

    def read_svg(self) -> str:
        path = Path(self.svg_path) if self.svg_path else DEFAULT_SVG
        return path.read_text(encoding="utf-8")

    @classmethod
    def from_settings(cls, settings: Settings, *, rpc: Optional[RpcClient] = None, svg_path: Optional[Path] = None) -> "DeployEnv":
        """
        Connect to the node in `settings` and wire up the services.

        The chain is checked against the network table before anything else,
        so an unknown chain fails without touching the node's state.
        """
        rpc = rpc or RpcClient(settings.rpc_url, timeout=settings.http_timeout, max_retries=settings.max_retries)
        chain_id = rpc.chain_id()
        table = load_network_table(settings.networks_file)
        if settings.network:
            named = table.by_name(settings.network)
            if named.chain_id != chain_id:
                raise ConfigurationMissing(
                    f"network {settings.network!r} is chain {named.chain_id} but the node reports {chain_id}",
                    chain_id=chain_id,
                )
        profile = table.resolve(chain_id)
        log.info("connected to %s (chainId=%d) at %s", profile.name, chain_id, settings.rpc_url)

        signer = signer_from_settings(rpc, private_key=settings.private_key, deployer_index=settings.deployer_index)
        store = DeploymentStore(profile.name, settings.deployments_dir if settings.save_deployments else None)
        artifacts = ArtifactStore(Path(settings.artifacts_dir))
        deployer = Deployer(
            rpc=rpc,
            artifacts=artifacts,
            store=store,
            signer=signer,
            confirmations=settings.confirmations,
            timeout_s=settings.tx_timeout,
            poll_interval_s=settings.poll_interval,
        )
        contracts = RpcContracts(
            rpc=rpc,
            artifacts=artifacts,
            signer=signer,
            timeout_s=settings.tx_timeout,
            poll_interval_s=settings.poll_interval,
        )
        return cls(
            chain_id=chain_id,
            table=table,
            deployments=deployer,
            contracts=contracts,
            settings=settings,
            deployer_address=signer.address,
            svg_path=svg_path,
            rpc=rpc,
        )


__all__ = ["DeployEnv", "DEFAULT_SVG"]
