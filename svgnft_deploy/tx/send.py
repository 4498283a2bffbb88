"""
svgnft_deploy.tx.send
=====================

Submitted-transaction handles and confirmation waits.

Primary entry points
--------------------
- get_transaction_receipt(rpc, tx_hash) -> TransactionReceipt | None
    One `eth_getTransactionReceipt` lookup; None while the tx is pending.

- wait_for_receipt(rpc, tx_hash, *, confirmations=1, timeout_s=120, poll_interval_s=0.5)
    Polls until the receipt exists *and* `head - receipt.block + 1 >= confirmations`.
    Raises ConfirmationTimeout on expiry and TxError if the tx reverted.

- PendingTransaction(rpc, tx_hash).wait(confirmations)
    The handle returned by every state-mutating call in this package.

The timeout is explicit: callers never block forever, even when the node
silently drops a transaction.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Protocol, Tuple

from ..errors import ConfirmationTimeout, JsonRpcCode, RpcError, TxError, reason_of
from ..rpc.http import hex_to_int

log = logging.getLogger(__name__)

DEFAULT_TIMEOUT_S = 120.0
DEFAULT_POLL_INTERVAL_S = 0.5


class _RpcClient(Protocol):
    """
    Minimal interface expected from svgnft_deploy.rpc.http.RpcClient.
    """
    def call(self, method: str, params: Optional[dict | list] = None) -> Any: ...


# -----------------------------------------------------------------------------
# Receipt model
# -----------------------------------------------------------------------------

@dataclass(frozen=True)
class Log:
    address: str
    topics: Tuple[str, ...]
    data: str = "0x"
    log_index: Optional[int] = None

    @classmethod
    def from_rpc(cls, raw: Mapping[str, Any]) -> "Log":
        idx = raw.get("logIndex")
        return cls(
            address=str(raw.get("address") or ""),
            topics=tuple(str(t).lower() for t in (raw.get("topics") or ())),
            data=str(raw.get("data") or "0x"),
            log_index=hex_to_int(idx) if idx is not None else None,
        )


@dataclass(frozen=True)
class TransactionReceipt:
    tx_hash: str
    block_number: int
    status: int = 1
    contract_address: Optional[str] = None
    gas_used: Optional[int] = None
    logs: Tuple[Log, ...] = ()
    raw: Dict[str, Any] = field(default_factory=dict, compare=False, repr=False)

    @property
    def succeeded(self) -> bool:
        return self.status == 1

    @classmethod
    def from_rpc(cls, raw: Mapping[str, Any]) -> "TransactionReceipt":
        status = raw.get("status")
        gas_used = raw.get("gasUsed")
        return cls(
            tx_hash=str(raw.get("transactionHash") or ""),
            block_number=hex_to_int(raw.get("blockNumber") or 0),
            # pre-Byzantium receipts have no status; treat as success
            status=hex_to_int(status) if status is not None else 1,
            contract_address=raw.get("contractAddress") or None,
            gas_used=hex_to_int(gas_used) if gas_used is not None else None,
            logs=tuple(Log.from_rpc(lg) for lg in (raw.get("logs") or ()) if isinstance(lg, Mapping)),
            raw=dict(raw),
        )


# -----------------------------------------------------------------------------
# Core RPC calls
# -----------------------------------------------------------------------------

def get_transaction_receipt(rpc: _RpcClient, tx_hash: str) -> Optional[TransactionReceipt]:
    """
    Query the node for a transaction receipt.

    Returns the receipt if mined, or None if the tx is pending/not found yet.
    """
    res = rpc.call("eth_getTransactionReceipt", [tx_hash])
    if res in (None, False, ""):
        return None
    if not isinstance(res, Mapping):
        raise TxError(f"unexpected receipt payload: {type(res)!r}", tx_hash=tx_hash)
    if res.get("blockNumber") is None:
        return None
    return TransactionReceipt.from_rpc(res)


def _confirmations_of(rpc: _RpcClient, receipt: TransactionReceipt) -> int:
    head = hex_to_int(rpc.call("eth_blockNumber", []))
    return head - receipt.block_number + 1


# -----------------------------------------------------------------------------
# Polling waiter
# -----------------------------------------------------------------------------

def wait_for_receipt(
    rpc: _RpcClient,
    tx_hash: str,
    *,
    confirmations: int = 1,
    timeout_s: float = DEFAULT_TIMEOUT_S,
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
    max_interval_s: float = 2.5,
    backoff: float = 1.25,
) -> TransactionReceipt:
    """
    Poll until the tx has `confirmations` confirming blocks or timeout is reached.

    Raises:
        ConfirmationTimeout on timeout
        TxError if the receipt reports a revert (status 0)
        RpcError on transport errors
    """
    if confirmations < 1:
        raise ValueError("confirmations must be >= 1")
    deadline = time.monotonic() + float(timeout_s)
    interval = float(poll_interval_s)

    while True:
        rec = get_transaction_receipt(rpc, tx_hash)
        if rec is not None:
            if not rec.succeeded:
                raise TxError("transaction reverted", tx_hash=tx_hash, reason=_revert_reason(rec), receipt=rec.raw)
            seen = _confirmations_of(rpc, rec)
            if seen >= confirmations:
                log.debug("tx %s confirmed (%d/%d) in block %d", tx_hash, seen, confirmations, rec.block_number)
                return rec

        if time.monotonic() >= deadline:
            raise ConfirmationTimeout(tx_hash=tx_hash, timeout_s=float(timeout_s), confirmations=confirmations)

        time.sleep(interval)
        interval = min(interval * float(backoff), float(max_interval_s))


def _revert_reason(rec: TransactionReceipt) -> Optional[str]:
    # Hardhat and some clients attach the decoded reason to the receipt
    for key in ("revertReason", "revert_reason"):
        v = rec.raw.get(key)
        if isinstance(v, str) and v:
            return v
    return None


# -----------------------------------------------------------------------------
# Pending transaction handle
# -----------------------------------------------------------------------------

@dataclass
class PendingTransaction:
    """
    A submitted transaction. `wait()` blocks for the requested confirmations.
    """

    rpc: _RpcClient
    tx_hash: str
    timeout_s: float = DEFAULT_TIMEOUT_S
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    _receipts: Dict[int, TransactionReceipt] = field(default_factory=dict, repr=False)

    def wait(self, confirmations: int = 1, *, timeout_s: Optional[float] = None) -> TransactionReceipt:
        if confirmations in self._receipts:
            return self._receipts[confirmations]
        rec = wait_for_receipt(
            self.rpc,
            self.tx_hash,
            confirmations=confirmations,
            timeout_s=self.timeout_s if timeout_s is None else timeout_s,
            poll_interval_s=self.poll_interval_s,
        )
        self._receipts[confirmations] = rec
        return rec


def submit(rpc: _RpcClient, method: str, params: List[Any]) -> str:
    """
    Submit through `eth_sendTransaction` / `eth_sendRawTransaction`; returns the tx hash.

    Node rejections (reverts caught during gas estimation, nonce errors, ...)
    surface as TxError carrying the node's message as the reason. A transport
    failure is never resent: the node may have accepted the transaction.
    """
    try:
        result = rpc.call(method, params)
    except RpcError as e:
        if e.code == JsonRpcCode.TRANSPORT_ERROR:
            raise TxError(
                f"{method} outcome unknown: no response from the node; check the sender's nonce before resubmitting",
                reason=reason_of(e),
            ) from e
        raise TxError(f"{method} rejected", reason=reason_of(e)) from e
    if not isinstance(result, str) or not result:
        raise TxError(f"unexpected {method} result: {result!r}")
    return result if result.startswith("0x") else "0x" + result


__all__ = [
    "Log",
    "TransactionReceipt",
    "PendingTransaction",
    "get_transaction_receipt",
    "wait_for_receipt",
    "submit",
]
