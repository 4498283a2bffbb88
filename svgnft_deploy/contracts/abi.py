"""
ABI helpers and compiled-artifact loading.

This module defines:
- ContractArtifact / ArtifactStore: Hardhat artifacts (`artifacts/**/<Name>.json`)
- Canonical type strings, function/event signatures, selectors and topics
- Call/constructor encoding and return decoding (eth-abi)

Argument coercion is deliberately forgiving on the inputs humans and config
files produce: decimal strings for integers and 0x-hex strings for bytesN.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from eth_abi import decode as abi_decode
from eth_abi import encode as abi_encode
from eth_utils import keccak, to_checksum_address

from ..errors import AbiError, ArtifactNotFound

log = logging.getLogger(__name__)

AbiEntry = Mapping[str, Any]
Abi = Sequence[AbiEntry]


# --- Type strings -------------------------------------------------------------

def canonical_type(param: AbiEntry) -> str:
    """
    Canonical type string of an ABI parameter; tuples are expanded from their
    components, e.g. `(uint256,address)[]`.
    """
    t = str(param.get("type", ""))
    if t.startswith("tuple"):
        inner = ",".join(canonical_type(c) for c in param.get("components", ()))
        return f"({inner}){t[len('tuple'):]}"
    return t


def signature(entry: AbiEntry) -> str:
    """`name(type1,type2,...)` for a function or event entry."""
    name = str(entry.get("name", ""))
    return f"{name}(" + ",".join(canonical_type(p) for p in entry.get("inputs", ())) + ")"


def function_selector(entry: AbiEntry) -> bytes:
    return keccak(text=signature(entry))[:4]


def event_topic(entry: AbiEntry) -> str:
    """topic0 of a non-anonymous event as 0x-hex."""
    return "0x" + keccak(text=signature(entry)).hex()


# --- Lookup -------------------------------------------------------------------

def _entries(abi: Abi, kind: str) -> List[AbiEntry]:
    return [e for e in abi if isinstance(e, Mapping) and e.get("type", "function") == kind]


def find_function(abi: Abi, name: str, nargs: Optional[int] = None) -> AbiEntry:
    """
    Find a function by name; overloads are disambiguated by argument count.
    """
    cands = [e for e in _entries(abi, "function") if e.get("name") == name]
    if nargs is not None and len(cands) > 1:
        cands = [e for e in cands if len(e.get("inputs", ())) == nargs]
    if not cands:
        raise AbiError(f"function not found in ABI (args={nargs})", function=name)
    if len(cands) > 1:
        raise AbiError("ambiguous overloaded function", function=name)
    return cands[0]


def find_event(abi: Abi, name: str) -> AbiEntry:
    for e in _entries(abi, "event"):
        if e.get("name") == name:
            return e
    raise AbiError(f"event {name!r} not found in ABI")


def find_constructor(abi: Abi) -> Optional[AbiEntry]:
    ctors = _entries(abi, "constructor")
    return ctors[0] if ctors else None


# --- Value coercion -----------------------------------------------------------

def _from_hex(s: str) -> bytes:
    s = s[2:] if s.startswith(("0x", "0X")) else s
    return bytes.fromhex(s)


def coerce_value(param: AbiEntry, value: Any) -> Any:
    """Coerce a Python/config value into what eth-abi expects for `param`."""
    t = str(param.get("type", ""))
    if t.endswith("]"):
        base = dict(param)
        base["type"] = t[: t.rindex("[")]
        return [coerce_value(base, v) for v in value]
    if t == "tuple":
        comps = list(param.get("components", ()))
        if isinstance(value, Mapping):
            value = [value[c.get("name")] for c in comps]
        return tuple(coerce_value(c, v) for c, v in zip(comps, value))
    if t.startswith(("uint", "int")):
        if isinstance(value, str):
            return int(value, 16) if value.startswith(("0x", "0X")) else int(value.replace("_", ""))
        return int(value)
    if t.startswith("bytes"):
        return _from_hex(value) if isinstance(value, str) else bytes(value)
    if t == "address":
        return to_checksum_address(value)
    if t == "bool":
        return bool(value)
    return value


def _encode_params(params: Sequence[AbiEntry], args: Sequence[Any], *, where: str) -> bytes:
    if len(params) != len(args):
        raise AbiError(f"expected {len(params)} argument(s), got {len(args)}", function=where)
    types = [canonical_type(p) for p in params]
    try:
        values = [coerce_value(p, a) for p, a in zip(params, args)]
        return abi_encode(types, values)
    except AbiError:
        raise
    except Exception as e:
        raise AbiError(f"encoding failed: {e}", function=where) from e


def encode_call(abi: Abi, fn: str, args: Sequence[Any]) -> bytes:
    """Selector + encoded arguments for `fn(args)`."""
    entry = find_function(abi, fn, len(args))
    return function_selector(entry) + _encode_params(entry.get("inputs", ()), args, where=fn)


def encode_constructor(abi: Abi, args: Sequence[Any]) -> bytes:
    ctor = find_constructor(abi)
    if ctor is None:
        if args:
            raise AbiError("contract has no constructor but arguments were given", function="constructor")
        return b""
    return _encode_params(ctor.get("inputs", ()), args, where="constructor")


def decode_return(abi: Abi, fn: str, data: bytes, nargs: Optional[int] = None) -> Any:
    """
    Decode the return data of `fn`; a single output is unwrapped, none gives None.
    """
    entry = find_function(abi, fn, nargs)
    outputs = list(entry.get("outputs", ()))
    if not outputs:
        return None
    try:
        values = abi_decode([canonical_type(o) for o in outputs], bytes(data))
    except Exception as e:
        raise AbiError(f"decoding return data failed: {e}", function=fn) from e
    return values[0] if len(values) == 1 else tuple(values)


# --- Artifacts ----------------------------------------------------------------

@dataclass(frozen=True)
class ContractArtifact:
    name: str
    abi: Tuple[Dict[str, Any], ...]
    bytecode: str
    source: Optional[str] = None

    def deploy_data(self, args: Sequence[Any] = ()) -> bytes:
        """Creation bytecode followed by the encoded constructor arguments."""
        if not self.bytecode or self.bytecode in ("0x", ""):
            raise AbiError(f"{self.name} has no creation bytecode (abstract contract or interface?)")
        return _from_hex(self.bytecode) + encode_constructor(self.abi, args)

    def code_hash(self, args: Sequence[Any] = ()) -> str:
        """Identity of a deployment: keccak of the deploy data."""
        return "0x" + keccak(self.deploy_data(args)).hex()


def load_artifact(path: Path) -> ContractArtifact:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise AbiError(f"invalid artifact JSON at {path}: {e}") from e
    abi = data.get("abi")
    if not isinstance(abi, list):
        raise AbiError(f"artifact {path} has no ABI list")
    return ContractArtifact(
        name=str(data.get("contractName") or path.stem),
        abi=tuple(abi),
        bytecode=str(data.get("bytecode") or "0x"),
        source=data.get("sourceName"),
    )


@dataclass
class ArtifactStore:
    """
    Finds Hardhat artifacts by contract name under `root`
    (`artifacts/contracts/X.sol/X.json`, `artifacts/@chainlink/.../X.json`, ...).
    """

    root: Path
    _cache: Dict[str, ContractArtifact] = field(default_factory=dict, repr=False)

    def __post_init__(self) -> None:
        self.root = Path(self.root)

    def path_for(self, name: str) -> Path:
        hits = sorted(
            p for p in self.root.rglob(f"{name}.json")
            if not p.name.endswith(".dbg.json") and "build-info" not in p.parts
        )
        if not hits:
            raise ArtifactNotFound(name=name, root=str(self.root))
        if len(hits) > 1:
            log.debug("artifacts: %d candidates for %s, using %s", len(hits), name, hits[0])
        return hits[0]

    def load(self, name: str) -> ContractArtifact:
        if name not in self._cache:
            self._cache[name] = load_artifact(self.path_for(name))
        return self._cache[name]

    def has(self, name: str) -> bool:
        try:
            self.path_for(name)
        except ArtifactNotFound:
            return False
        return True


__all__ = [
    "Abi",
    "AbiEntry",
    "ArtifactStore",
    "ContractArtifact",
    "canonical_type",
    "coerce_value",
    "decode_return",
    "encode_call",
    "encode_constructor",
    "event_topic",
    "find_constructor",
    "find_event",
    "find_function",
    "function_selector",
    "load_artifact",
    "signature",
]
