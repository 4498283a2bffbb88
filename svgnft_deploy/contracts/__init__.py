"""
svgnft_deploy.contracts
=======================

Contract Call Service and the ABI machinery behind it.

Submodules
----------
- abi        : Hardhat artifacts, selectors/topics, call encoding (eth-abi).
- client     : ContractClient (eth_call / transact) and RpcContracts (name+address → client).
- events     : Receipt log decoding; lookup of events by name.
- interfaces : Versioned contract interfaces (named event fields, ABI fragments).

Typical usage
-------------
    from svgnft_deploy.contracts import RpcContracts, RANDOM_SVG_V1

    nft = contracts.at("RandomSVG", address)
    receipt = nft.transact("create", gas_limit=300_000).wait(1)
    token_id = RANDOM_SVG_V1.extract(receipt, RANDOM_SVG_V1.token_id, address=nft.address)
"""

from __future__ import annotations

from .abi import ArtifactStore, ContractArtifact, encode_call, event_topic, load_artifact
from .client import ContractClient, RpcContracts
from .events import DecodedEvent, decode_logs, find_event
from .interfaces import (
    INTERFACES,
    LINK_TOKEN_V1,
    RANDOM_SVG_V1,
    SVG_NFT_V1,
    VRF_COORDINATOR_MOCK_V1,
    ContractInterface,
    EventField,
    interface_for,
)

__all__ = [
    "ArtifactStore",
    "ContractArtifact",
    "ContractClient",
    "ContractInterface",
    "DecodedEvent",
    "EventField",
    "INTERFACES",
    "LINK_TOKEN_V1",
    "RANDOM_SVG_V1",
    "RpcContracts",
    "SVG_NFT_V1",
    "VRF_COORDINATOR_MOCK_V1",
    "decode_logs",
    "encode_call",
    "event_topic",
    "find_event",
    "interface_for",
    "load_artifact",
]
