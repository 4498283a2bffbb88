"""
svgnft_deploy.contracts.events
==============================

Helpers to work with contract events:
- Build a topic0 → event index from an ABI
- Decode receipt logs (indexed args from topics, the rest from data)
- Locate an event by *name* instead of by its position in the receipt

Public API
----------
- build_event_index(abi) -> Dict[str, AbiEntry]
- decode_log(abi_or_index, log) -> Optional[DecodedEvent]
- decode_logs(abi, logs, address=None) -> List[DecodedEvent]
- find_event(abi, receipt_or_logs, name, address=None) -> Optional[DecodedEvent]

Logs that do not match any (non-anonymous) event of the ABI are skipped; a
receipt routinely carries logs of other contracts (token transfers, oracle
requests) next to the one we are after.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from eth_abi import decode as abi_decode

from ..errors import AbiError
from ..tx.send import Log, TransactionReceipt
from .abi import Abi, AbiEntry, canonical_type, event_topic

# Dynamic types are hashed when indexed; the topic holds keccak(value), not the value.
_HASHED_WHEN_INDEXED = ("string", "bytes")


@dataclass(frozen=True)
class DecodedEvent:
    name: str
    args: Dict[str, Any] = field(hash=False)
    address: str
    log_index: Optional[int] = None
    position: int = 0  # index of the log inside the receipt


def _from_hex(s: str) -> bytes:
    s = s[2:] if s.startswith(("0x", "0X")) else s
    return bytes.fromhex(s)


def _is_hashed(param: AbiEntry) -> bool:
    t = canonical_type(param)
    return t in _HASHED_WHEN_INDEXED or t.endswith("]") or t.startswith("(")


def build_event_index(abi: Abi) -> Dict[str, AbiEntry]:
    """
    topic0 (lowercase 0x-hex) → event entry, for non-anonymous events.
    """
    index: Dict[str, AbiEntry] = {}
    for entry in abi:
        if not isinstance(entry, Mapping) or entry.get("type") != "event":
            continue
        if entry.get("anonymous"):
            continue
        index[event_topic(entry)] = entry
    return index


def _decode_args(entry: AbiEntry, log: Log) -> Dict[str, Any]:
    inputs = list(entry.get("inputs", ()))
    indexed = [p for p in inputs if p.get("indexed")]
    plain = [p for p in inputs if not p.get("indexed")]
    topics = list(log.topics[1:])
    if len(topics) != len(indexed):
        raise AbiError(f"event {entry.get('name')}: expected {len(indexed)} indexed topic(s), got {len(topics)}")

    args: Dict[str, Any] = {}
    for param, topic in zip(indexed, topics):
        if _is_hashed(param):
            args[param.get("name", "")] = topic
        else:
            (args[param.get("name", "")],) = abi_decode([canonical_type(param)], _from_hex(topic))
    if plain:
        values = abi_decode([canonical_type(p) for p in plain], _from_hex(log.data))
        for param, value in zip(plain, values):
            args[param.get("name", "")] = value
    return args


def decode_log(abi_or_index: Union[Abi, Mapping[str, AbiEntry]], log: Log, *, position: int = 0) -> Optional[DecodedEvent]:
    """
    Decode one log, or return None if its topic0 is not an event of the ABI.
    """
    index = abi_or_index if isinstance(abi_or_index, Mapping) else build_event_index(abi_or_index)
    if not log.topics:
        return None
    entry = index.get(log.topics[0].lower())
    if entry is None:
        return None
    try:
        args = _decode_args(entry, log)
    except AbiError:
        raise
    except Exception as e:
        raise AbiError(f"event {entry.get('name')}: cannot decode log: {e}") from e
    return DecodedEvent(
        name=str(entry.get("name")),
        args=args,
        address=log.address,
        log_index=log.log_index,
        position=position,
    )


def _logs_of(receipt_or_logs: Union[TransactionReceipt, Sequence[Log]]) -> Sequence[Log]:
    if isinstance(receipt_or_logs, TransactionReceipt):
        return receipt_or_logs.logs
    return receipt_or_logs


def _same_address(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and str(a).lower() == str(b).lower()


def decode_logs(
    abi: Abi,
    receipt_or_logs: Union[TransactionReceipt, Sequence[Log]],
    *,
    address: Optional[str] = None,
) -> List[DecodedEvent]:
    """
    Decode every log that matches the ABI, optionally only those emitted by `address`.
    """
    index = build_event_index(abi)
    out: List[DecodedEvent] = []
    for pos, lg in enumerate(_logs_of(receipt_or_logs)):
        if address is not None and not _same_address(lg.address, address):
            continue
        ev = decode_log(index, lg, position=pos)
        if ev is not None:
            out.append(ev)
    return out


def find_event(
    abi: Abi,
    receipt_or_logs: Union[TransactionReceipt, Sequence[Log]],
    name: str,
    *,
    address: Optional[str] = None,
) -> Optional[DecodedEvent]:
    """
    First occurrence of event `name` in a receipt (or raw log list), or None.
    """
    for ev in decode_logs(abi, receipt_or_logs, address=address):
        if ev.name == name:
            return ev
    return None


def event_names(events: Iterable[DecodedEvent]) -> List[str]:
    return [e.name for e in events]


__all__ = [
    "DecodedEvent",
    "build_event_index",
    "decode_log",
    "decode_logs",
    "find_event",
    "event_names",
]
