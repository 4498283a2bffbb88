"""
Typed error classes for svgnft-deploy.

Transport and encoding errors (RpcError, TxError, AbiError, ...) are raised by
the rpc/tx/contracts layers. The orchestrator converts them into one step
error per workflow transition (DeploymentFailed, FundingFailed, ...) so a
caller can tell which step failed while still catching the base
`DeployError`. The underlying message is kept verbatim in `reason`.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Any, ClassVar, Dict, Optional

__all__ = [
    "DeployError",
    "JsonRpcCode",
    "RpcError",
    "TxError",
    "AbiError",
    "ArtifactNotFound",
    "DeploymentNotFound",
    "ConfigurationMissing",
    "WorkflowStateError",
    "ConfirmationTimeout",
    "StepError",
    "DeploymentFailed",
    "FundingFailed",
    "MintFailed",
    "CallbackSimulationFailed",
    "FinalizationFailed",
    "reason_of",
]


class DeployError(Exception):
    """Base class for all svgnft-deploy errors."""


class JsonRpcCode(IntEnum):
    # JSON-RPC 2.0 spec
    PARSE_ERROR = -32700
    INVALID_REQUEST = -32600
    METHOD_NOT_FOUND = -32601
    INVALID_PARAMS = -32602
    INTERNAL_ERROR = -32603

    # Server errors (implementation-defined range: -32099 to -32000)
    SERVER_ERROR = -32000

    # Client-side transport failure (never sent by a node)
    TRANSPORT_ERROR = -32098


@dataclass(slots=True)
class RpcError(DeployError):
    """Raised when a JSON-RPC call returns an error object or the transport fails."""

    code: int
    message: str
    data: Optional[Any] = None
    method: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        parts = [f"RPC[{self.method or '-'}] code={self.code} msg={self.message!r}"]
        if self.data is not None:
            parts.append(f"data={self.data!r}")
        return " ".join(parts)

    @property
    def code_enum(self) -> Optional[JsonRpcCode]:
        try:
            return JsonRpcCode(self.code)
        except ValueError:
            return None


@dataclass(slots=True)
class TxError(DeployError):
    """
    Raised when a submitted transaction fails (node rejection or on-chain revert).

    Fields:
      - tx_hash: hex hash if known (None if rejected before broadcast)
      - reason: revert reason or node message when available
      - receipt: raw receipt body with more context
    """

    message: str
    tx_hash: Optional[str] = None
    reason: Optional[str] = None
    receipt: Optional[Dict[str, Any]] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        suffix = f" tx={self.tx_hash}" if self.tx_hash else ""
        why = f" reason={self.reason!r}" if self.reason else ""
        return f"TxError{suffix}: {self.message}{why}"


@dataclass(slots=True)
class AbiError(DeployError):
    """
    Raised when ABI encoding/decoding or lookup fails.

    Typical causes: unknown function, wrong argument count, bad bytes hex.
    """

    message: str
    function: Optional[str] = None
    parameter: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        where = []
        if self.function:
            where.append(f"fn={self.function}")
        if self.parameter:
            where.append(f"param={self.parameter}")
        where_s = (" [" + ", ".join(where) + "]") if where else ""
        return f"AbiError{where_s}: {self.message}"


@dataclass(slots=True)
class ArtifactNotFound(DeployError):
    """No compiled artifact with this contract name under the artifacts root."""

    name: str
    root: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        where = f" under {self.root}" if self.root else ""
        return f"artifact for {self.name!r} not found{where} (compile the contracts first)"


@dataclass(slots=True)
class DeploymentNotFound(DeployError):
    """A named deployment was requested but none is recorded for this network."""

    name: str
    network: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        where = f" on {self.network}" if self.network else ""
        return f"no deployment named {self.name!r}{where}"


@dataclass(slots=True)
class ConfigurationMissing(DeployError):
    """No usable network profile for the chain (or a required address is unset)."""

    message: str
    chain_id: Optional[int] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        cid = f" (chainId={self.chain_id})" if self.chain_id is not None else ""
        return f"configuration missing{cid}: {self.message}"


@dataclass(slots=True)
class WorkflowStateError(DeployError):
    """A workflow operation was invoked from a state that does not allow it."""

    message: str
    state: Optional[str] = None
    operation: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.operation or 'operation'} not allowed in state {self.state}: {self.message}"


@dataclass
class ConfirmationTimeout(DeployError):
    """The confirmation threshold for a transaction was not reached in time."""

    tx_hash: str
    timeout_s: float
    confirmations: int = 1
    step: Optional[str] = None

    def __str__(self) -> str:  # pragma: no cover - trivial
        where = f"step {self.step!r}: " if self.step else ""
        return (
            f"{where}timeout after {self.timeout_s:g}s waiting for "
            f"{self.confirmations} confirmation(s) of tx {self.tx_hash}"
        )


@dataclass
class StepError(DeployError):
    """Base class of the per-step workflow failures."""

    message: str
    reason: Optional[str] = None
    tx_hash: Optional[str] = None

    step: ClassVar[str] = "workflow"

    def __str__(self) -> str:  # pragma: no cover - trivial
        bits = [f"step {self.step!r} failed: {self.message}"]
        if self.tx_hash:
            bits.append(f"tx={self.tx_hash}")
        if self.reason and self.reason not in self.message:
            bits.append(f"reason={self.reason}")
        return " ".join(bits)


class DeploymentFailed(StepError):
    step = "deploy"


class FundingFailed(StepError):
    step = "fund"


class MintFailed(StepError):
    step = "mint"


class CallbackSimulationFailed(StepError):
    step = "callback"


class FinalizationFailed(StepError):
    step = "finalize"


def reason_of(exc: BaseException) -> str:
    """Best human-readable explanation carried by `exc` (revert reason, RPC message, ...)."""
    if isinstance(exc, TxError):
        return exc.reason or exc.message
    if isinstance(exc, RpcError):
        if isinstance(exc.data, str) and exc.data:
            return f"{exc.message}: {exc.data}"
        return exc.message
    return str(exc) or type(exc).__name__
