"""
Network profiles: dependency addresses and VRF parameters per chain id.

The table is an immutable mapping loaded once per run (bundled
`data/networks.yaml` unless a file is given) and passed explicitly to
resolution and to the deploy scripts.

File format (YAML or JSON):

    networks:
      31337:
        name: localhost
        local: true
        key_hash: "0x6c36..."
        fee: 100000000000000000
      4:
        name: rinkeby
        link_token: "0x01BE..."
        vrf_coordinator: "0xb3dC..."
        key_hash: "0x2ed0..."
        fee: 100000000000000000
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Protocol

from eth_utils import is_address, to_checksum_address
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .config import load_file
from .errors import ConfigurationMissing, DeploymentNotFound

log = logging.getLogger(__name__)

LOCAL_CHAIN_ID = 31337
DEFAULT_NETWORKS_FILE = Path(__file__).parent / "data" / "networks.yaml"

# Used when the table has no entry for the local chain.
LOCAL_KEY_HASH = "0x6c3699283bda56ad74f6b855546325b68d482e983852a7a82979cc4807b641f4"
LOCAL_FEE = 100_000_000_000_000_000

LINK_TOKEN = "LinkToken"
VRF_COORDINATOR_MOCK = "VRFCoordinatorMock"


class NetworkProfile(BaseModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    chain_id: int = Field(ge=1)
    name: str = Field(min_length=1)
    rpc_url: Optional[str] = None
    link_token: Optional[str] = None
    vrf_coordinator: Optional[str] = None
    key_hash: str = Field(pattern=r"^0x[0-9a-fA-F]{64}$")
    fee: int = Field(ge=0)
    local: bool = False

    @field_validator("link_token", "vrf_coordinator")
    @classmethod
    def _checksum(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        if not is_address(v):
            raise ValueError(f"not an address: {v!r}")
        return to_checksum_address(v)

    @field_validator("fee", mode="before")
    @classmethod
    def _quantity(cls, v: Any) -> Any:
        if isinstance(v, str):
            s = v.strip().replace("_", "")
            return int(s, 16) if s.lower().startswith("0x") else int(s)
        return v

    def require_oracle(self) -> "NetworkProfile":
        """Fail unless both the LINK token and the VRF coordinator are known."""
        missing = [k for k in ("link_token", "vrf_coordinator") if getattr(self, k) is None]
        if missing:
            raise ConfigurationMissing(f"network {self.name!r} has no {', '.join(missing)}", chain_id=self.chain_id)
        return self


class _Deployments(Protocol):
    def get(self, name: str) -> Any: ...


def _lookup(deployments: _Deployments, name: str, chain_id: int) -> str:
    try:
        rec = deployments.get(name)
    except DeploymentNotFound:
        rec = None
    if rec is None:
        raise ConfigurationMissing(f"{name} is not deployed on the local chain (run the 'mocks' deploy script)", chain_id=chain_id)
    return rec.address


class NetworkTable(Mapping[int, NetworkProfile]):
    """Immutable chain id → NetworkProfile mapping."""

    def __init__(self, profiles: Mapping[int, NetworkProfile]) -> None:
        self._profiles: Mapping[int, NetworkProfile] = MappingProxyType(dict(profiles))

    def __getitem__(self, chain_id: int) -> NetworkProfile:
        return self._profiles[chain_id]

    def __iter__(self) -> Iterator[int]:
        return iter(sorted(self._profiles))

    def __len__(self) -> int:
        return len(self._profiles)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "NetworkTable":
        raw = data.get("networks", data)
        if not isinstance(raw, Mapping):
            raise ValueError("network table: expected a mapping of chain id → profile")
        profiles: Dict[int, NetworkProfile] = {}
        for key, body in raw.items():
            chain_id = int(key)
            try:
                profiles[chain_id] = NetworkProfile.model_validate({"chain_id": chain_id, **dict(body)})
            except ValidationError as e:
                raise ValueError(f"network table entry {chain_id} is invalid:\n{e}") from e
        return cls(profiles)

    def by_name(self, name: str) -> NetworkProfile:
        for p in self._profiles.values():
            if p.name == name:
                return p
        raise ConfigurationMissing(f"no network named {name!r} in the network table")

    def local_profile(self) -> NetworkProfile:
        p = self._profiles.get(LOCAL_CHAIN_ID)
        if p is not None:
            return p
        return NetworkProfile(chain_id=LOCAL_CHAIN_ID, name="localhost", key_hash=LOCAL_KEY_HASH, fee=LOCAL_FEE, local=True)

    def resolve(self, chain_id: int, deployments: Optional[_Deployments] = None) -> NetworkProfile:
        """
        Profile for `chain_id`.

        On the local chain the LINK token and coordinator addresses come from
        the `LinkToken` / `VRFCoordinatorMock` deployments when `deployments`
        is given. Any other chain must have a table entry.
        """
        chain_id = int(chain_id)
        if chain_id == LOCAL_CHAIN_ID:
            profile = self.local_profile()
            if deployments is None:
                return profile
            return profile.model_copy(
                update={
                    "link_token": to_checksum_address(_lookup(deployments, LINK_TOKEN, chain_id)),
                    "vrf_coordinator": to_checksum_address(_lookup(deployments, VRF_COORDINATOR_MOCK, chain_id)),
                }
            )
        profile = self._profiles.get(chain_id)
        if profile is None:
            raise ConfigurationMissing("chain id has no entry in the network table", chain_id=chain_id)
        return profile

    def to_dict(self) -> Dict[int, Dict[str, Any]]:
        return {cid: self._profiles[cid].model_dump() for cid in self}


def load_network_table(path: Optional[os.PathLike[str] | str] = None) -> NetworkTable:
    """Load the table from `path`, or the bundled one."""
    p = Path(path) if path else DEFAULT_NETWORKS_FILE
    table = NetworkTable.from_mapping(load_file(p))
    log.debug("networks: %d profile(s) from %s", len(table), p)
    return table


__all__ = [
    "LOCAL_CHAIN_ID",
    "NetworkProfile",
    "NetworkTable",
    "load_network_table",
]
