"""
Transaction senders.

Two ways to get a transaction onto the chain:

- NodeAccountSigner: the node holds the key (Hardhat / Anvil / Ganache
  unlocked accounts). Transactions go through `eth_sendTransaction`; the node
  fills nonce, gas price and, when omitted, the gas limit.

- LocalKeySigner: a private key held by this process (eth-account). We fill
  nonce, gas price, chain id and gas limit ourselves, sign locally and submit
  with `eth_sendRawTransaction`.

Both expose `.address` and `.send(rpc, tx) -> tx_hash` where `tx` is a dict
with optional keys: to, data, value, gas.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional, Protocol

from eth_account import Account
from eth_utils import to_checksum_address

from ..rpc.http import hex_to_int
from ..tx.send import submit

log = logging.getLogger(__name__)


class _RpcClient(Protocol):
    def call(self, method: str, params: Optional[dict | list] = None) -> Any: ...


class Signer(Protocol):
    @property
    def address(self) -> str: ...

    def send(self, rpc: _RpcClient, tx: Mapping[str, Any]) -> str: ...


def _hex_qty(v: int) -> str:
    return hex(int(v))


class NodeAccountSigner:
    """Sender backed by an account the node manages (`eth_sendTransaction`)."""

    def __init__(self, address: str) -> None:
        self._address = to_checksum_address(address)

    @property
    def address(self) -> str:
        return self._address

    @classmethod
    def from_node(cls, rpc: _RpcClient, index: int = 0) -> "NodeAccountSigner":
        """Pick `eth_accounts[index]`, the way named accounts default to account 0."""
        accounts = rpc.call("eth_accounts", [])
        if not isinstance(accounts, list) or len(accounts) <= index:
            raise ValueError(f"node exposes no account at index {index} (got {accounts!r})")
        return cls(str(accounts[index]))

    def send(self, rpc: _RpcClient, tx: Mapping[str, Any]) -> str:
        body: Dict[str, Any] = {"from": self._address}
        if tx.get("to"):
            body["to"] = to_checksum_address(tx["to"])
        if tx.get("data"):
            body["data"] = tx["data"]
        if tx.get("value"):
            body["value"] = _hex_qty(tx["value"])
        if tx.get("gas"):
            body["gas"] = _hex_qty(tx["gas"])
        return submit(rpc, "eth_sendTransaction", [body])

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"NodeAccountSigner({self._address})"


class LocalKeySigner:
    """Sender holding a private key; signs locally with eth-account."""

    def __init__(self, private_key: str, *, gas_multiplier: float = 1.2) -> None:
        self._account = Account.from_key(private_key)
        self._gas_multiplier = float(gas_multiplier)

    @property
    def address(self) -> str:
        return self._account.address

    def _fill(self, rpc: _RpcClient, tx: Mapping[str, Any]) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "from": self.address,
            "value": int(tx.get("value") or 0),
            "data": tx.get("data") or "0x",
            "nonce": hex_to_int(rpc.call("eth_getTransactionCount", [self.address, "pending"])),
            "gasPrice": hex_to_int(rpc.call("eth_gasPrice", [])),
            "chainId": hex_to_int(rpc.call("eth_chainId", [])),
        }
        if tx.get("to"):
            out["to"] = to_checksum_address(tx["to"])
        if tx.get("gas"):
            out["gas"] = int(tx["gas"])
        else:
            estimate_tx = {k: v for k, v in out.items() if k in ("from", "to", "data")}
            if out["value"]:
                estimate_tx["value"] = _hex_qty(out["value"])
            estimate = hex_to_int(rpc.call("eth_estimateGas", [estimate_tx]))
            out["gas"] = int(estimate * self._gas_multiplier)
        return out

    def send(self, rpc: _RpcClient, tx: Mapping[str, Any]) -> str:
        filled = self._fill(rpc, tx)
        filled.pop("from")
        signed = self._account.sign_transaction(filled)
        log.debug("signer: sending raw tx nonce=%d gas=%d", filled["nonce"], filled["gas"])
        return submit(rpc, "eth_sendRawTransaction", ["0x" + bytes(signed.raw_transaction).hex()])

    def __repr__(self) -> str:  # pragma: no cover - trivial
        return f"LocalKeySigner({self.address})"


def signer_from_settings(rpc: _RpcClient, *, private_key: Optional[str], deployer_index: int = 0) -> Signer:
    """Local key when one is configured, otherwise the node's account at `deployer_index`."""
    if private_key:
        return LocalKeySigner(private_key)
    return NodeAccountSigner.from_node(rpc, deployer_index)


__all__ = ["Signer", "NodeAccountSigner", "LocalKeySigner", "signer_from_settings"]
