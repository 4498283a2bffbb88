"""
Versioned descriptions of the contract interfaces the deploy workflows use.

A ContractInterface names, for one contract version, the functions the
workflow calls and the *event fields* that carry the identifiers it needs
from a receipt. The workflow never indexes into a receipt's log list:

    RandomSVG v1: create() emits, in order,
      0  LinkToken.Transfer(from, to, value)                  (fee to coordinator)
      1  LinkToken.Transfer(from, to, value, data)            (ERC677 transferAndCall)
      2  VRFCoordinator.RandomnessRequest(sender, keyHash, seed)
      3  RandomSVG.requestedRandomSVG(requestId, tokenId)
    and the identifiers are read as requestedRandomSVG.requestId /
    requestedRandomSVG.tokenId from logs emitted by the RandomSVG address.

    SVGNFT v1: create(svg) emits CreatedSVGNFT(tokenId, tokenURI).

The ABI fragments below cover exactly what the workflows touch. They are used
when a compiled artifact is not available locally (e.g. the live LINK token)
and for decoding events.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from ..errors import AbiError
from ..tx.send import TransactionReceipt
from .abi import Abi
from .events import event_names, decode_logs, find_event


def _param(name: str, type_: str, indexed: Optional[bool] = None) -> Dict[str, Any]:
    p: Dict[str, Any] = {"name": name, "type": type_, "internalType": type_}
    if indexed is not None:
        p["indexed"] = indexed
    return p


def _fn(name: str, inputs: Tuple[Dict[str, Any], ...] = (), outputs: Tuple[Dict[str, Any], ...] = (), mutability: str = "nonpayable") -> Dict[str, Any]:
    return {"type": "function", "name": name, "inputs": list(inputs), "outputs": list(outputs), "stateMutability": mutability}


def _event(name: str, *inputs: Dict[str, Any]) -> Dict[str, Any]:
    return {"type": "event", "name": name, "anonymous": False, "inputs": list(inputs)}


LINK_TOKEN_ABI: Abi = (
    _fn("transfer", (_param("_to", "address"), _param("_value", "uint256")), (_param("success", "bool"),)),
    _fn("balanceOf", (_param("_owner", "address"),), (_param("balance", "uint256"),), "view"),
    _event("Transfer", _param("from", "address", True), _param("to", "address", True), _param("value", "uint256", False)),
    _event(
        "Transfer",
        _param("from", "address", True),
        _param("to", "address", True),
        _param("value", "uint256", False),
        _param("data", "bytes", False),
    ),
)

VRF_COORDINATOR_MOCK_ABI: Abi = (
    {"type": "constructor", "inputs": [_param("linkAddress", "address")], "stateMutability": "nonpayable"},
    _fn(
        "callBackWithRandomness",
        (_param("requestId", "bytes32"), _param("randomness", "uint256"), _param("consumerContract", "address")),
    ),
    _event(
        "RandomnessRequest",
        _param("sender", "address", True),
        _param("keyHash", "bytes32", True),
        _param("seed", "uint256", True),
    ),
)

RANDOM_SVG_ABI: Abi = (
    {
        "type": "constructor",
        "inputs": [
            _param("_VRFCoordinator", "address"),
            _param("_LinkToken", "address"),
            _param("_keyhash", "bytes32"),
            _param("_fee", "uint256"),
        ],
        "stateMutability": "nonpayable",
    },
    _fn("create", (), (_param("requestId", "bytes32"),)),
    _fn("finishMint", (_param("_tokenId", "uint256"),)),
    _fn("tokenURI", (_param("tokenId", "uint256"),), (_param("", "string"),), "view"),
    _event("requestedRandomSVG", _param("requestId", "bytes32", True), _param("tokenId", "uint256", True)),
    _event("CreatedUnfinishedRandomSVG", _param("tokenId", "uint256", True), _param("randomNumber", "uint256", False)),
    _event("CreatedRandomSVG", _param("tokenId", "uint256", True), _param("tokenURI", "string", False)),
)

SVG_NFT_ABI: Abi = (
    _fn("create", (_param("_svg", "string"),)),
    _fn("tokenURI", (_param("tokenId", "uint256"),), (_param("", "string"),), "view"),
    _event("CreatedSVGNFT", _param("tokenId", "uint256", True), _param("tokenURI", "string", False)),
)


@dataclass(frozen=True)
class EventField:
    """A named argument of a named event, e.g. requestedRandomSVG.requestId."""

    event: str
    field: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.event}.{self.field}"


@dataclass(frozen=True)
class ContractInterface:
    contract: str
    version: str
    abi: Abi
    mint_function: Optional[str] = None
    token_id: Optional[EventField] = None
    request_id: Optional[EventField] = None
    finish_function: Optional[str] = None
    uri_function: Optional[str] = None

    @property
    def key(self) -> str:
        return f"{self.contract}@{self.version}"

    def extract(self, receipt: TransactionReceipt, ref: EventField, *, address: Optional[str] = None) -> Any:
        """
        Value of `ref` from the first matching event in `receipt` emitted by `address`.

        Raises AbiError naming the events that *were* found when it is absent.
        """
        ev = find_event(self.abi, receipt, ref.event, address=address)
        if ev is None:
            seen = event_names(decode_logs(self.abi, receipt, address=address))
            raise AbiError(f"{self.key}: receipt {receipt.tx_hash} has no {ref.event} event (decoded: {seen or 'none'})")
        if ref.field not in ev.args:
            raise AbiError(f"{self.key}: event {ref.event} has no field {ref.field!r}")
        return ev.args[ref.field]


LINK_TOKEN_V1 = ContractInterface(contract="LinkToken", version="1", abi=LINK_TOKEN_ABI)

VRF_COORDINATOR_MOCK_V1 = ContractInterface(contract="VRFCoordinatorMock", version="1", abi=VRF_COORDINATOR_MOCK_ABI)

RANDOM_SVG_V1 = ContractInterface(
    contract="RandomSVG",
    version="1",
    abi=RANDOM_SVG_ABI,
    mint_function="create",
    token_id=EventField("requestedRandomSVG", "tokenId"),
    request_id=EventField("requestedRandomSVG", "requestId"),
    finish_function="finishMint",
    uri_function="tokenURI",
)

SVG_NFT_V1 = ContractInterface(
    contract="SVGNFT",
    version="1",
    abi=SVG_NFT_ABI,
    mint_function="create",
    token_id=EventField("CreatedSVGNFT", "tokenId"),
    uri_function="tokenURI",
)

INTERFACES: Mapping[str, ContractInterface] = {
    i.contract: i for i in (LINK_TOKEN_V1, VRF_COORDINATOR_MOCK_V1, RANDOM_SVG_V1, SVG_NFT_V1)
}


def interface_for(contract: str) -> ContractInterface:
    try:
        return INTERFACES[contract]
    except KeyError:
        raise AbiError(f"no interface description for contract {contract!r}") from None


__all__ = [
    "ContractInterface",
    "EventField",
    "INTERFACES",
    "LINK_TOKEN_V1",
    "RANDOM_SVG_V1",
    "SVG_NFT_V1",
    "VRF_COORDINATOR_MOCK_V1",
    "interface_for",
]
