"""
svgnft_deploy.deployments
=========================

Deployment Service: deploy a compiled artifact once per network and remember
where it went.

- DeploymentRecord: address + identity (code hash) of a deployment.
- DeploymentStore: records keyed by contract name; in memory, optionally
  mirrored to `<root>/<network>/<Name>.json` (the hardhat-deploy layout, so
  records survive between runs).
- Deployer: `deploy(name, args=..., from_=...)` is idempotent. A stored record
  whose code hash (creation bytecode + encoded constructor args) matches and
  whose address still holds code is returned with `newly_deployed=False`;
  anything else deploys afresh.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any, Dict, Iterator, Optional, Protocol, Sequence, Tuple

from .contracts.abi import ArtifactStore
from .errors import DeploymentNotFound, TxError
from .tx.send import DEFAULT_POLL_INTERVAL_S, DEFAULT_TIMEOUT_S, PendingTransaction
from .wallet.signer import NodeAccountSigner, Signer

log = logging.getLogger(__name__)


class _RpcClient(Protocol):
    def call(self, method: str, params: Optional[dict | list] = None) -> Any: ...


@dataclass(frozen=True)
class DeploymentRecord:
    name: str
    address: str
    newly_deployed: bool = False
    tx_hash: Optional[str] = None
    args: Tuple[Any, ...] = ()
    abi: Tuple[Dict[str, Any], ...] = field(default=(), repr=False)
    code_hash: Optional[str] = None
    block_number: Optional[int] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "transactionHash": self.tx_hash,
            "args": list(self.args),
            "abi": list(self.abi),
            "codeHash": self.code_hash,
            "blockNumber": self.block_number,
        }

    @classmethod
    def from_json(cls, name: str, data: Dict[str, Any]) -> "DeploymentRecord":
        return cls(
            name=name,
            address=str(data["address"]),
            newly_deployed=False,
            tx_hash=data.get("transactionHash"),
            args=tuple(data.get("args") or ()),
            abi=tuple(data.get("abi") or ()),
            code_hash=data.get("codeHash"),
            block_number=data.get("blockNumber"),
        )


class DeploymentStore:
    """Deployment records of one network."""

    def __init__(self, network: str, root: Optional[Path | str] = None) -> None:
        self.network = network
        self.dir = Path(root) / network if root is not None else None
        self._records: Dict[str, DeploymentRecord] = {}
        if self.dir is not None and self.dir.is_dir():
            for p in sorted(self.dir.glob("*.json")):
                try:
                    data = json.loads(p.read_text(encoding="utf-8"))
                except json.JSONDecodeError as e:
                    raise ValueError(f"invalid deployment record at {p}: {e}") from e
                self._records[p.stem] = DeploymentRecord.from_json(p.stem, data)
            log.debug("deployments: loaded %d record(s) from %s", len(self._records), self.dir)

    def get(self, name: str) -> Optional[DeploymentRecord]:
        return self._records.get(name)

    def put(self, record: DeploymentRecord) -> None:
        self._records[record.name] = record
        if self.dir is not None:
            self.dir.mkdir(parents=True, exist_ok=True)
            path = self.dir / f"{record.name}.json"
            path.write_text(json.dumps(record.to_json(), indent=2, default=str) + "\n", encoding="utf-8")

    def __contains__(self, name: object) -> bool:
        return name in self._records

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._records))

    def __len__(self) -> int:
        return len(self._records)


@dataclass
class Deployer:
    """
    Deploys Hardhat artifacts through a Signer and records them in a DeploymentStore.
    """

    rpc: _RpcClient
    artifacts: ArtifactStore
    store: DeploymentStore
    signer: Signer
    confirmations: int = 1
    timeout_s: float = DEFAULT_TIMEOUT_S
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    gas_limit: Optional[int] = None

    def get(self, name: str) -> DeploymentRecord:
        rec = self.store.get(name)
        if rec is None:
            raise DeploymentNotFound(name=name, network=self.store.network)
        return rec

    def _has_code(self, address: str) -> bool:
        code = self.rpc.call("eth_getCode", [address, "latest"])
        return isinstance(code, str) and code not in ("", "0x", "0x0")

    def _sender(self, from_: Optional[str]) -> Signer:
        if from_ and from_.lower() != self.signer.address.lower():
            return NodeAccountSigner(from_)
        return self.signer

    def deploy(self, name: str, *, args: Sequence[Any] = (), from_: Optional[str] = None) -> DeploymentRecord:
        """
        Deploy `name` with constructor `args`, or reuse the matching recorded deployment.
        """
        artifact = self.artifacts.load(name)
        data = artifact.deploy_data(args)
        code_hash = artifact.code_hash(args)

        existing = self.store.get(name)
        if existing is not None and existing.code_hash == code_hash:
            if self._has_code(existing.address):
                log.info("reusing %s at %s", name, existing.address)
                return replace(existing, newly_deployed=False)
            log.info("%s recorded at %s but no code there anymore; redeploying", name, existing.address)
        elif existing is not None:
            log.info("%s changed since last deployment; redeploying", name)

        sender = self._sender(from_)
        tx: Dict[str, Any] = {"data": "0x" + data.hex()}
        if self.gas_limit is not None:
            tx["gas"] = self.gas_limit
        tx_hash = sender.send(self.rpc, tx)
        log.info("deploying %s (tx: %s)", name, tx_hash)
        pending = PendingTransaction(self.rpc, tx_hash, timeout_s=self.timeout_s, poll_interval_s=self.poll_interval_s)
        receipt = pending.wait(self.confirmations)
        if not receipt.contract_address:
            raise TxError("deployment receipt carries no contractAddress", tx_hash=tx_hash, receipt=receipt.raw)

        record = DeploymentRecord(
            name=name,
            address=receipt.contract_address,
            newly_deployed=True,
            tx_hash=tx_hash,
            args=tuple(args),
            abi=artifact.abi,
            code_hash=code_hash,
            block_number=receipt.block_number,
        )
        self.store.put(record)
        log.info("deployed %s at %s with %s gas", name, record.address, receipt.gas_used)
        return record


__all__ = ["DeploymentRecord", "DeploymentStore", "Deployer"]
