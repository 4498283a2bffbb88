"""Local chain only: deploy LinkToken and VRFCoordinatorMock(linkToken)."""

from __future__ import annotations

import logging
from typing import Any, List

from ..networks import LINK_TOKEN, VRF_COORDINATOR_MOCK
from .env import DeployEnv

log = logging.getLogger(__name__)

TAGS = ("all", "mocks")


def run(env: DeployEnv) -> List[Any]:
    network = env.network
    if not network.local:
        log.info("mocks: %s is a live network, nothing to deploy", network.name)
        return []
    log.info("local network detected, deploying mocks")
    link = env.deployments.deploy(LINK_TOKEN, from_=env.deployer_address)
    coordinator = env.deployments.deploy(VRF_COORDINATOR_MOCK, args=(link.address,), from_=env.deployer_address)
    log.info("mocks deployed: LinkToken=%s VRFCoordinatorMock=%s", link.address, coordinator.address)
    return [link, coordinator]
