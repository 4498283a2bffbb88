"""
svgnft_deploy.contracts.client
==============================

A small ABI-driven contract client that:
- Encodes function calls from an ABI (eth-abi)
- Runs read-only calls through `eth_call`
- Sends state-changing calls through a Signer and hands back a
  PendingTransaction whose `.wait(confirmations)` yields the receipt

Example
-------
    from svgnft_deploy.rpc import RpcClient
    from svgnft_deploy.wallet import NodeAccountSigner
    from svgnft_deploy.contracts.client import RpcContracts

    rpc = RpcClient("http://127.0.0.1:8545")
    contracts = RpcContracts(rpc=rpc, artifacts=ArtifactStore("artifacts"),
                             signer=NodeAccountSigner.from_node(rpc))
    nft = contracts.at("RandomSVG", "0x5FbDB2315678afecb367f032d93F642f64180aa3")
    receipt = nft.transact("create", gas_limit=300_000).wait(1)
    uri = nft.call("tokenURI", 0)
"""

from __future__ import annotations

import logging
from typing import Any, Optional, Protocol, Sequence

from eth_utils import to_checksum_address

from ..errors import AbiError, JsonRpcCode, RpcError
from ..tx.send import DEFAULT_POLL_INTERVAL_S, DEFAULT_TIMEOUT_S, PendingTransaction
from ..wallet.signer import Signer
from .abi import Abi, ArtifactStore, decode_return, encode_call
from .interfaces import INTERFACES

log = logging.getLogger(__name__)


class _RpcClient(Protocol):
    def call(self, method: str, params: Optional[dict | list] = None) -> Any: ...


class ContractClient:
    """
    ABI-driven client bound to a deployed contract address.

    Parameters
    ----------
    rpc : RPC client with a `.call(method, params)` function.
    address : 0x address of the deployed contract.
    abi : list of ABI entries (artifact ABI or an interface fragment).
    signer : sender used for state-changing calls and as `from` of eth_call.
    """

    def __init__(
        self,
        *,
        rpc: _RpcClient,
        address: str,
        abi: Abi,
        signer: Signer,
        name: Optional[str] = None,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
    ) -> None:
        try:
            self._address = to_checksum_address(address)
        except ValueError as e:
            raise ValueError(f"Invalid contract address: {address!r}") from e
        self._rpc = rpc
        self._abi = tuple(abi)
        self._signer = signer
        self._name = name or "contract"
        self._timeout_s = float(timeout_s)
        self._poll_interval_s = float(poll_interval_s)

    # ------------------------------------------------------------------ Accessors

    @property
    def address(self) -> str:
        return self._address

    @property
    def abi(self) -> Abi:
        return self._abi

    @property
    def name(self) -> str:
        return self._name

    # ------------------------------------------------------------------ Encoding

    def encode(self, fn: str, *args: Any) -> str:
        """0x-hex calldata for `fn(*args)`."""
        return "0x" + encode_call(self._abi, fn, args).hex()

    # ------------------------------------------------------------------ Read-only call

    def call(self, fn: str, *args: Any) -> Any:
        """
        Execute `fn(*args)` with `eth_call` against the latest block and decode
        the return value.
        """
        data = self.encode(fn, *args)
        req = {"from": self._signer.address, "to": self._address, "data": data}
        raw = self._rpc.call("eth_call", [req, "latest"])
        if not isinstance(raw, str):
            raise RpcError(code=JsonRpcCode.INTERNAL_ERROR, message=f"unexpected eth_call result: {raw!r}", method="eth_call")
        body = raw[2:] if raw.startswith(("0x", "0X")) else raw
        try:
            return decode_return(self._abi, fn, bytes.fromhex(body), len(args))
        except AbiError:
            raise
        except ValueError as e:
            raise AbiError(f"malformed return data: {e}", function=fn) from e

    # ------------------------------------------------------------------ State-changing send

    def transact(self, fn: str, *args: Any, gas_limit: Optional[int] = None, value: int = 0) -> PendingTransaction:
        """
        Sign and submit `fn(*args)`; returns the pending handle without waiting.
        """
        tx = {"to": self._address, "data": self.encode(fn, *args), "value": int(value)}
        if gas_limit is not None:
            tx["gas"] = int(gas_limit)
        tx_hash = self._signer.send(self._rpc, tx)
        log.debug("%s.%s submitted tx=%s gas=%s", self._name, fn, tx_hash, gas_limit)
        return PendingTransaction(
            self._rpc,
            tx_hash,
            timeout_s=self._timeout_s,
            poll_interval_s=self._poll_interval_s,
        )

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"ContractClient({self._name}@{self._address})"


class RpcContracts:
    """
    Contract Call Service: binds a contract name and address to a ContractClient.

    The ABI comes from the compiled artifact when one exists, otherwise from
    the bundled interface fragment (e.g. the LINK token on a live network,
    which is not compiled locally).
    """

    def __init__(
        self,
        *,
        rpc: _RpcClient,
        artifacts: Optional[ArtifactStore],
        signer: Signer,
        timeout_s: float = DEFAULT_TIMEOUT_S,
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
    ) -> None:
        self.rpc = rpc
        self.artifacts = artifacts
        self.signer = signer
        self.timeout_s = float(timeout_s)
        self.poll_interval_s = float(poll_interval_s)

    def abi_for(self, name: str) -> Sequence[Any]:
        if self.artifacts is not None and self.artifacts.has(name):
            return self.artifacts.load(name).abi
        if name in INTERFACES:
            return INTERFACES[name].abi
        raise AbiError(f"no artifact or interface description for {name!r}")

    def at(self, name: str, address: str) -> ContractClient:
        return ContractClient(
            rpc=self.rpc,
            address=address,
            abi=self.abi_for(name),
            signer=self.signer,
            name=name,
            timeout_s=self.timeout_s,
            poll_interval_s=self.poll_interval_s,
        )


__all__ = ["ContractClient", "RpcContracts"]
