from __future__ import annotations

import base64
import json
from dataclasses import replace
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Set, Tuple

import pytest
from eth_abi import encode as abi_encode
from eth_utils import keccak, to_checksum_address

from svgnft_deploy.contracts.abi import AbiEntry, canonical_type, event_topic
from svgnft_deploy.contracts.interfaces import LINK_TOKEN_ABI, RANDOM_SVG_ABI, SVG_NFT_ABI, VRF_COORDINATOR_MOCK_ABI
from svgnft_deploy.deployments import DeploymentRecord
from svgnft_deploy.errors import DeploymentNotFound, TxError
from svgnft_deploy.networks import LOCAL_CHAIN_ID, NetworkProfile, NetworkTable
from svgnft_deploy.tx.send import Log, TransactionReceipt

# Hardhat's default account 0
DEPLOYER = "0xf39Fd6e51aad88F6F4ce6aB8827279cffFb92266"
DEPLOYER_KEY = "0xac0974bec39a17e36ba4a6b4d238ff944bacb478cbed5efcae784d7bf4f2ff80"

LOCAL_KEY_HASH = "0x6c3699283bda56ad74f6b855546325b68d482e983852a7a82979cc4807b641f4"
RINKEBY_KEY_HASH = "0x2ed0feb3e7fd2022120aa84fab1945545a9f2ffc9076fd6156fa96eaff4c1311"
RINKEBY_LINK = "0x01BE23585060835E02B77ef475b0Cc51aA1e0709"
RINKEBY_VRF = "0xb3dCcb4Cf7a26f6cf6B120Cf5A73875B7BBc655B"


# --- log helpers --------------------------------------------------------------

def event_entry(abi: Sequence[AbiEntry], name: str, n_inputs: Optional[int] = None) -> AbiEntry:
    for e in abi:
        if e.get("type") == "event" and e.get("name") == name:
            if n_inputs is None or len(e["inputs"]) == n_inputs:
                return e
    raise KeyError(name)


def make_log(address: str, entry: AbiEntry, *values: Any, log_index: Optional[int] = None) -> Log:
    """ABI-encode `values` (in declaration order) into topics and data, like a node would."""
    topics = [event_topic(entry)]
    data_types: List[str] = []
    data_values: List[Any] = []
    for param, value in zip(entry["inputs"], values):
        t = canonical_type(param)
        if param.get("indexed"):
            topics.append("0x" + abi_encode([t], [value]).hex())
        else:
            data_types.append(t)
            data_values.append(value)
    data = "0x" + abi_encode(data_types, data_values).hex() if data_types else "0x"
    return Log(address=address, topics=tuple(topics), data=data, log_index=log_index)


def make_receipt(tx_hash: str, logs: Sequence[Log], *, block_number: int = 1, status: int = 1) -> TransactionReceipt:
    return TransactionReceipt(tx_hash=tx_hash, block_number=block_number, status=status, logs=tuple(logs))


def _data_uri(mime: str, payload: str) -> str:
    return f"data:{mime};base64," + base64.b64encode(payload.encode("utf-8")).decode("ascii")


def token_uri_for(svg: str) -> str:
    meta = {"name": "SVG NFT", "description": "An NFT based on SVG!", "image": _data_uri("image/svg+xml", svg)}
    return _data_uri("application/json", json.dumps(meta, sort_keys=True))


# --- in-memory ledger ---------------------------------------------------------

class FakePending:
    def __init__(self, ledger: "FakeLedger", tx_hash: str, receipt: TransactionReceipt, error: Optional[Exception]) -> None:
        self.ledger = ledger
        self.tx_hash = tx_hash
        self.receipt = receipt
        self.error = error

    def wait(self, confirmations: int = 1, *, timeout_s: Optional[float] = None) -> TransactionReceipt:
        self.ledger.waits.append((self.tx_hash, confirmations, timeout_s))
        if self.error is not None:
            raise self.error
        return self.receipt


class FakeContract:
    def __init__(self, ledger: "FakeLedger", name: str, address: str) -> None:
        self.ledger = ledger
        self.name = name
        self.address = to_checksum_address(address)

    def transact(self, fn: str, *args: Any, gas_limit: Optional[int] = None, value: int = 0) -> FakePending:
        return self.ledger._transact(self, fn, args, gas_limit)

    def call(self, fn: str, *args: Any) -> Any:
        return self.ledger._call(self, fn, args)


class FakeLedger:
    """
    Deployment Service + Contract Call Service over an in-memory chain that
    behaves like LinkToken / VRFCoordinatorMock / RandomSVG / SVGNFT.

    Failure injection:
      - failures["deploy:Name"] or failures["Name.fn"]: raised when submitting
      - wait_failures["Name.fn"]: raised by the pending handle's wait()
      - drop_events: event names left out of receipts
      - reverse_logs: emit receipt logs in reverse order
    """

    def __init__(self, *, link_balance: int = 10**21) -> None:
        self.calls: List[Tuple[Any, ...]] = []
        self.waits: List[Tuple[str, int, Optional[float]]] = []
        self.records: Dict[str, DeploymentRecord] = {}
        self.failures: Dict[str, Exception] = {}
        self.wait_failures: Dict[str, Exception] = {}
        self.drop_events: Set[str] = set()
        self.reverse_logs = False
        self.empty_uri = False

        self.link_balances: Dict[str, int] = {DEPLOYER.lower(): link_balance}
        self.next_token: Dict[str, int] = {}
        self.requests: Dict[bytes, Tuple[str, int]] = {}
        self.randomness: Dict[Tuple[str, int], int] = {}
        self.uris: Dict[Tuple[str, int], str] = {}
        self._n = 0
        self.block = 0

    # ------------------------------------------------------------------ deployment service

    def _next_hash(self) -> str:
        self._n += 1
        return "0x" + keccak(text=f"tx:{self._n}").hex()

    def deploy(self, name: str, *, args: Sequence[Any] = (), from_: Optional[str] = None) -> DeploymentRecord:
        self.calls.append(("deploy", name, tuple(args)))
        failure = self.failures.get(f"deploy:{name}")
        if failure is not None:
            raise failure
        existing = self.records.get(name)
        if existing is not None and existing.args == tuple(args):
            return replace(existing, newly_deployed=False)
        self._n += 1
        address = to_checksum_address("0x" + keccak(text=f"{name}:{self._n}")[-20:].hex())
        record = DeploymentRecord(name=name, address=address, newly_deployed=True, tx_hash=self._next_hash(), args=tuple(args))
        self.records[name] = record
        return record

    def get(self, name: str) -> DeploymentRecord:
        if name not in self.records:
            raise DeploymentNotFound(name=name, network="localhost")
        return self.records[name]

    # ------------------------------------------------------------------ contract service

    def at(self, name: str, address: str) -> FakeContract:
        return FakeContract(self, name, address)

    def transacts(self, name: Optional[str] = None) -> List[Tuple[Any, ...]]:
        return [c for c in self.calls if c[0] == "transact" and (name is None or c[1] == name)]

    def _record_at(self, address: str) -> Optional[DeploymentRecord]:
        for r in self.records.values():
            if r.address.lower() == address.lower():
                return r
        return None

    def _transact(self, c: FakeContract, fn: str, args: Tuple[Any, ...], gas_limit: Optional[int]) -> FakePending:
        key = f"{c.name}.{fn}"
        self.calls.append(("transact", c.name, fn, args, gas_limit))
        if key in self.failures:
            raise self.failures[key]
        handler: Callable[..., List[Tuple[str, Log]]] = getattr(self, f"_{c.name}_{fn}")
        events = handler(c.address, *args)
        logs = [lg for (name, lg) in events if name not in self.drop_events]
        if self.reverse_logs:
            logs.reverse()
        self.block += 1
        tx_hash = self._next_hash()
        receipt = make_receipt(tx_hash, logs, block_number=self.block)
        return FakePending(self, tx_hash, receipt, self.wait_failures.get(key))

    def _call(self, c: FakeContract, fn: str, args: Tuple[Any, ...]) -> Any:
        self.calls.append(("call", c.name, fn, args))
        if fn == "tokenURI":
            if self.empty_uri:
                return ""
            return self.uris.get((c.address.lower(), int(args[0])), "")
        raise AssertionError(f"unexpected view call {c.name}.{fn}")

    # ------------------------------------------------------------------ contract behaviour

    @staticmethod
    def _revert(reason: str) -> TxError:
        return TxError("transaction reverted", reason=reason)

    def _LinkToken_transfer(self, link: str, to: str, amount: int) -> List[Tuple[str, Log]]:
        sender = DEPLOYER.lower()
        if self.link_balances.get(sender, 0) < amount:
            raise self._revert("ERC20: transfer amount exceeds balance")
        self.link_balances[sender] -= amount
        self.link_balances[to.lower()] = self.link_balances.get(to.lower(), 0) + amount
        entry = event_entry(LINK_TOKEN_ABI, "Transfer", 3)
        return [("Transfer", make_log(link, entry, DEPLOYER, to, amount))]

    def _RandomSVG_create(self, consumer: str) -> List[Tuple[str, Log]]:
        rec = self._record_at(consumer)
        if rec is None:
            raise self._revert("no contract at address")
        coordinator, link, key_hash, fee = rec.args
        if self.link_balances.get(consumer.lower(), 0) < int(fee):
            raise self._revert("Not enough LINK - fill contract with faucet")
        self.link_balances[consumer.lower()] -= int(fee)
        token_id = self.next_token.get(consumer.lower(), 0)
        self.next_token[consumer.lower()] = token_id + 1
        seed = int.from_bytes(keccak(text=f"seed:{consumer}:{token_id}"), "big")
        request_id = keccak(bytes.fromhex(key_hash[2:]) + seed.to_bytes(32, "big"))
        self.requests[request_id] = (consumer.lower(), token_id)
        kh = bytes.fromhex(key_hash[2:])
        return [
            ("Transfer", make_log(link, event_entry(LINK_TOKEN_ABI, "Transfer", 3), consumer, coordinator, int(fee))),
            ("Transfer", make_log(link, event_entry(LINK_TOKEN_ABI, "Transfer", 4), consumer, coordinator, int(fee), b"")),
            ("RandomnessRequest", make_log(coordinator, event_entry(VRF_COORDINATOR_MOCK_ABI, "RandomnessRequest"), consumer, kh, seed)),
            ("requestedRandomSVG", make_log(consumer, event_entry(RANDOM_SVG_ABI, "requestedRandomSVG"), request_id, token_id)),
        ]

    def _VRFCoordinatorMock_callBackWithRandomness(self, coordinator: str, request_id: bytes, randomness: int, consumer: str) -> List[Tuple[str, Log]]:
        pending = self.requests.pop(bytes(request_id), None)
        if pending is None or pending[0] != consumer.lower():
            raise self._revert("unknown request")
        self.randomness[pending] = int(randomness)
        entry = event_entry(RANDOM_SVG_ABI, "CreatedUnfinishedRandomSVG")
        return [("CreatedUnfinishedRandomSVG", make_log(consumer, entry, pending[1], int(randomness)))]

    def _RandomSVG_finishMint(self, consumer: str, token_id: int) -> List[Tuple[str, Log]]:
        key = (consumer.lower(), int(token_id))
        if key not in self.randomness:
            raise self._revert("The randomness hasn't been returned")
        if key in self.uris:
            raise self._revert("tokenURI is already all set!")
        r = self.randomness[key]
        paths = "".join(f"<path d='M{(r >> i) % 500} {(r >> (i + 3)) % 500}' />" for i in range(0, 24, 4))
        svg = f"<svg xmlns='http://www.w3.org/2000/svg' height='500' width='500'>{paths}</svg>"
        uri = token_uri_for(svg)
        self.uris[key] = uri
        entry = event_entry(RANDOM_SVG_ABI, "CreatedRandomSVG")
        return [("CreatedRandomSVG", make_log(consumer, entry, int(token_id), uri))]

    def _SVGNFT_create(self, nft: str, svg: str) -> List[Tuple[str, Log]]:
        token_id = self.next_token.get(nft.lower(), 0)
        self.next_token[nft.lower()] = token_id + 1
        uri = token_uri_for(svg)
        self.uris[(nft.lower(), token_id)] = uri
        entry = event_entry(SVG_NFT_ABI, "CreatedSVGNFT")
        return [("CreatedSVGNFT", make_log(nft, entry, token_id, uri))]


# --- JSON-RPC stub ------------------------------------------------------------

class FakeRpc:
    """
    Minimal JSON-RPC stub: answers from a method → value (or callable) mapping
    and records every call.
    """

    def __init__(self, responses: Optional[Mapping[str, Any]] = None) -> None:
        self.responses: Dict[str, Any] = dict(responses or {})
        self.calls: List[Tuple[str, Any]] = []

    def call(self, method: str, params: Any = None) -> Any:
        self.calls.append((method, params))
        if method not in self.responses:
            raise AssertionError(f"unexpected RPC method {method}")
        v = self.responses[method]
        return v(params) if callable(v) else v

    def methods(self) -> List[str]:
        return [m for (m, _p) in self.calls]


# --- fixtures -----------------------------------------------------------------

@pytest.fixture
def ledger() -> FakeLedger:
    return FakeLedger()


def local_table(fee: int = 100) -> NetworkTable:
    return NetworkTable(
        {
            LOCAL_CHAIN_ID: NetworkProfile(chain_id=LOCAL_CHAIN_ID, name="localhost", local=True, key_hash=LOCAL_KEY_HASH, fee=fee),
            4: NetworkProfile(
                chain_id=4,
                name="rinkeby",
                link_token=RINKEBY_LINK,
                vrf_coordinator=RINKEBY_VRF,
                key_hash=RINKEBY_KEY_HASH,
                fee=10**17,
            ),
        }
    )


def deploy_mocks(ledger: FakeLedger) -> Tuple[DeploymentRecord, DeploymentRecord]:
    link = ledger.deploy("LinkToken", from_=DEPLOYER)
    coordinator = ledger.deploy("VRFCoordinatorMock", args=(link.address,), from_=DEPLOYER)
    return link, coordinator


@pytest.fixture
def local_profile(ledger: FakeLedger) -> NetworkProfile:
    """Local profile (fee=100) with the mock addresses filled in; ledger call log cleared."""
    deploy_mocks(ledger)
    profile = local_table(fee=100).resolve(LOCAL_CHAIN_ID, ledger)
    ledger.calls.clear()
    return profile


@pytest.fixture
def live_profile() -> NetworkProfile:
    return local_table()[4]
