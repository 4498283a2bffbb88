"""
Provisioning orchestrator: the deploy → fund → mint → callback → finalize
workflow as an explicit finite-state machine.

States move strictly forward:

    NotDeployed      --deploy()-------->  Deployed
    Deployed         --fund()---------->  Funded            (plans that need LINK)
    Funded/Deployed  --request_mint()-->  MintRequested
    MintRequested    --await_callback()>  AwaitingCallback  (plans with a VRF callback)
    AwaitingCallback --finalize()------>  Finalized
    MintRequested    --finalize()------>  Finalized         (plans without a callback)

Every state-mutating step submits one transaction and blocks until it has the
configured number of confirming blocks (default 1). Each step is wrapped so
that any failure surfaces as that step's error (DeploymentFailed,
FundingFailed, ...) carrying the node's revert/RPC message as `reason`.
ConfirmationTimeout is not wrapped; it is re-raised tagged with the step.

On a live network the randomness callback is delivered by the oracle network
at some later point: the run stops in AwaitingCallback and reports the pending
request id. On the local chain the orchestrator drives the mock coordinator
itself with a fixed random value, which makes the outcome reproducible.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Protocol, Sequence, Tuple, Type

from .contracts.interfaces import RANDOM_SVG_V1, SVG_NFT_V1, ContractInterface
from .errors import (
    CallbackSimulationFailed,
    ConfirmationTimeout,
    ConfigurationMissing,
    DeploymentFailed,
    FinalizationFailed,
    FundingFailed,
    MintFailed,
    StepError,
    WorkflowStateError,
    reason_of,
)
from .networks import LINK_TOKEN, VRF_COORDINATOR_MOCK, NetworkProfile
from .tx.send import TransactionReceipt

log = logging.getLogger(__name__)

# Random value handed to the mock coordinator on the local chain.
SIMULATED_RANDOMNESS = 6969

# create() only records the request; finishMint() renders the SVG on-chain.
DEFAULT_MINT_GAS_LIMIT = 300_000
DEFAULT_FINISH_GAS_LIMIT = 2_000_000


class WorkflowState(str, Enum):
    NOT_DEPLOYED = "NotDeployed"
    DEPLOYED = "Deployed"
    FUNDED = "Funded"
    MINT_REQUESTED = "MintRequested"
    AWAITING_CALLBACK = "AwaitingCallback"
    FINALIZED = "Finalized"


_TRANSITIONS: Dict[WorkflowState, Tuple[WorkflowState, ...]] = {
    WorkflowState.NOT_DEPLOYED: (WorkflowState.DEPLOYED,),
    WorkflowState.DEPLOYED: (WorkflowState.FUNDED, WorkflowState.MINT_REQUESTED),
    WorkflowState.FUNDED: (WorkflowState.MINT_REQUESTED,),
    WorkflowState.MINT_REQUESTED: (WorkflowState.AWAITING_CALLBACK, WorkflowState.FINALIZED),
    WorkflowState.AWAITING_CALLBACK: (WorkflowState.FINALIZED,),
    WorkflowState.FINALIZED: (),
}


# --- Collaborators ------------------------------------------------------------

class _Pending(Protocol):
    tx_hash: str

    def wait(self, confirmations: int = 1, *, timeout_s: Optional[float] = None) -> TransactionReceipt: ...


class _Contract(Protocol):
    @property
    def address(self) -> str: ...

    def transact(self, fn: str, *args: Any, gas_limit: Optional[int] = None, value: int = 0) -> _Pending: ...

    def call(self, fn: str, *args: Any) -> Any: ...


class ContractService(Protocol):
    def at(self, name: str, address: str) -> _Contract: ...


class DeploymentService(Protocol):
    def deploy(self, name: str, *, args: Sequence[Any] = (), from_: Optional[str] = None) -> Any: ...

    def get(self, name: str) -> Any: ...


# --- Plan & result ------------------------------------------------------------

@dataclass(frozen=True)
class GasPolicy:
    """Explicit gas limits; None lets the sender estimate."""

    mint_gas_limit: Optional[int] = None
    finish_gas_limit: Optional[int] = None


@dataclass(frozen=True)
class WorkflowPlan:
    contract: str
    interface: ContractInterface
    constructor_args: Tuple[Any, ...] = ()
    mint_args: Tuple[Any, ...] = ()
    requires_funding: bool = False
    requires_callback: bool = False
    gas: GasPolicy = field(default_factory=GasPolicy)

    @classmethod
    def random_svg(cls, profile: NetworkProfile, gas: Optional[GasPolicy] = None) -> "WorkflowPlan":
        """RandomSVG(vrfCoordinator, linkToken, keyHash, fee), funded with `fee` LINK."""
        profile.require_oracle()
        return cls(
            contract="RandomSVG",
            interface=RANDOM_SVG_V1,
            constructor_args=(profile.vrf_coordinator, profile.link_token, profile.key_hash, profile.fee),
            requires_funding=True,
            requires_callback=True,
            gas=gas or GasPolicy(DEFAULT_MINT_GAS_LIMIT, DEFAULT_FINISH_GAS_LIMIT),
        )

    @classmethod
    def svg_nft(cls, svg: str) -> "WorkflowPlan":
        return cls(contract="SVGNFT", interface=SVG_NFT_V1, mint_args=(svg,))


@dataclass
class WorkflowResult:
    contract: str
    network: str
    state: WorkflowState
    address: Optional[str] = None
    newly_deployed: Optional[bool] = None
    funded_amount: Optional[int] = None
    request_id: Optional[str] = None
    token_id: Optional[int] = None
    token_uri: Optional[str] = None
    verify_command: Optional[str] = None

    @property
    def pending(self) -> bool:
        """True when the run stopped waiting for an external oracle callback."""
        return self.state is WorkflowState.AWAITING_CALLBACK

    def to_dict(self) -> Dict[str, Any]:
        return {
            "contract": self.contract,
            "network": self.network,
            "state": self.state.value,
            "address": self.address,
            "newlyDeployed": self.newly_deployed,
            "fundedAmount": self.funded_amount,
            "requestId": self.request_id,
            "tokenId": self.token_id,
            "tokenURI": self.token_uri,
            "verify": self.verify_command,
        }


def _hex(v: Any) -> str:
    if isinstance(v, (bytes, bytearray)):
        return "0x" + bytes(v).hex()
    return str(v)


def verify_command(network: str, address: str, args: Sequence[Any] = ()) -> str:
    """Source-verification hint for block explorers."""
    return " ".join(["npx hardhat verify --network", network, address, *(_hex(a) for a in args)])


# --- Orchestrator -------------------------------------------------------------

class ProvisioningOrchestrator:
    """
    Runs one WorkflowPlan against a network.

    Each transition is a method so it can be driven (and tested) on its own;
    `run()` chains them in order.
    """

    def __init__(
        self,
        plan: WorkflowPlan,
        profile: NetworkProfile,
        *,
        deployments: DeploymentService,
        contracts: ContractService,
        from_: Optional[str] = None,
        confirmations: int = 1,
        timeout_s: Optional[float] = None,
        randomness: int = SIMULATED_RANDOMNESS,
    ) -> None:
        if confirmations < 1:
            raise ValueError("confirmations must be >= 1")
        self.plan = plan
        self.profile = profile
        self.deployments = deployments
        self.contracts = contracts
        self.from_ = from_
        self.confirmations = int(confirmations)
        self.timeout_s = timeout_s
        self.randomness = int(randomness)

        self.state = WorkflowState.NOT_DEPLOYED
        self.history: List[WorkflowState] = [self.state]
        self.record: Any = None
        self.funded_amount: Optional[int] = None
        self.request_id: Any = None
        self.token_id: Optional[int] = None
        self.token_uri: Optional[str] = None
        self.callback_delivered = False
        self._tx_hash: Optional[str] = None

    # ------------------------------------------------------------------ helpers

    @property
    def address(self) -> Optional[str]:
        return self.record.address if self.record is not None else None

    def _require(self, operation: str, *allowed: WorkflowState) -> None:
        if self.state not in allowed:
            want = " or ".join(s.value for s in allowed)
            raise WorkflowStateError(f"expected {want}", state=self.state.value, operation=operation)

    def _require_address(self, operation: str) -> str:
        if self.address is None:
            raise WorkflowStateError("no deployed address", state=self.state.value, operation=operation)
        return self.address

    def _transition(self, new: WorkflowState) -> None:
        if new not in _TRANSITIONS[self.state]:
            raise WorkflowStateError(f"cannot move to {new.value}", state=self.state.value, operation="transition")
        log.debug("%s: %s -> %s", self.plan.contract, self.state.value, new.value)
        self.state = new
        self.history.append(new)

    def _wait(self, pending: _Pending) -> TransactionReceipt:
        self._tx_hash = pending.tx_hash
        log.debug("waiting for %d confirmation(s) of %s", self.confirmations, pending.tx_hash)
        return pending.wait(self.confirmations, timeout_s=self.timeout_s)

    @contextmanager
    def _step(self, name: str, error_cls: Type[StepError], what: str) -> Iterator[None]:
        self._tx_hash = None
        log.info("%s: %s", name, what)
        try:
            yield
        except ConfirmationTimeout as e:
            e.step = name
            raise
        except (StepError, WorkflowStateError, ConfigurationMissing):
            raise
        except Exception as e:
            raise error_cls(
                f"{what} failed",
                reason=reason_of(e),
                tx_hash=getattr(e, "tx_hash", None) or self._tx_hash,
            ) from e

    def verify_hint(self) -> str:
        return verify_command(self.profile.name, self._require_address("verify"), self.plan.constructor_args)

    # ------------------------------------------------------------------ transitions

    def deploy(self) -> Any:
        """NotDeployed → Deployed."""
        self._require("deploy", WorkflowState.NOT_DEPLOYED)
        with self._step("deploy", DeploymentFailed, f"deploying {self.plan.contract}"):
            record = self.deployments.deploy(self.plan.contract, args=self.plan.constructor_args, from_=self.from_)
            if not getattr(record, "address", None):
                raise DeploymentFailed(f"deployment of {self.plan.contract} returned no address")
        self.record = record
        self._transition(WorkflowState.DEPLOYED)
        verb = "deployed" if record.newly_deployed else "reusing"
        log.info("%s %s at %s", verb, self.plan.contract, record.address)
        log.info("verify with:\n %s", self.verify_hint())
        return record

    def fund(self) -> TransactionReceipt:
        """Deployed → Funded: transfer `fee` LINK to the contract."""
        self._require("fund", WorkflowState.DEPLOYED)
        address = self._require_address("fund")
        if not self.plan.requires_funding:
            raise WorkflowStateError(f"{self.plan.contract} does not need funding", state=self.state.value, operation="fund")
        self.profile.require_oracle()
        fee = self.profile.fee
        with self._step("fund", FundingFailed, f"funding {self.plan.contract} with {fee} LINK"):
            link = self.contracts.at(LINK_TOKEN, str(self.profile.link_token))
            receipt = self._wait(link.transact("transfer", address, fee))
        self.funded_amount = fee
        self._transition(WorkflowState.FUNDED)
        log.info("funded %s with %d LINK (tx: %s)", address, fee, receipt.tx_hash)
        return receipt

    def request_mint(self) -> TransactionReceipt:
        """Funded (or Deployed when no funding is needed) → MintRequested."""
        ready = WorkflowState.FUNDED if self.plan.requires_funding else WorkflowState.DEPLOYED
        self._require("mint", ready)
        address = self._require_address("mint")
        iface = self.plan.interface
        if iface.mint_function is None or iface.token_id is None:
            raise WorkflowStateError(f"{iface.key} has no mint function", state=self.state.value, operation="mint")
        with self._step("mint", MintFailed, f"minting on {self.plan.contract}"):
            nft = self.contracts.at(self.plan.contract, address)
            pending = nft.transact(iface.mint_function, *self.plan.mint_args, gas_limit=self.plan.gas.mint_gas_limit)
            receipt = self._wait(pending)
            token_id = int(iface.extract(receipt, iface.token_id, address=address))
            request_id = None
            if self.plan.requires_callback:
                if iface.request_id is None:
                    raise MintFailed(f"{iface.key} does not describe a request id", tx_hash=receipt.tx_hash)
                request_id = iface.extract(receipt, iface.request_id, address=address)
        self.token_id = token_id
        self.request_id = request_id
        self._transition(WorkflowState.MINT_REQUESTED)
        if request_id is not None:
            log.info("mint requested: token %d, request %s", token_id, _hex(request_id))
        else:
            log.info("minted token %d", token_id)
        return receipt

    def await_callback(self) -> bool:
        """
        MintRequested → AwaitingCallback.

        Returns True when the randomness was delivered (local chain, mock
        coordinator) and False when the run has to stop and wait for the oracle.
        """
        self._require("callback", WorkflowState.MINT_REQUESTED)
        address = self._require_address("callback")
        if not self.plan.requires_callback:
            raise WorkflowStateError(f"{self.plan.contract} does not use a callback", state=self.state.value, operation="callback")
        self._transition(WorkflowState.AWAITING_CALLBACK)
        if not self.profile.local:
            log.info("waiting for the oracle to fulfil request %s; finish the mint once it has", _hex(self.request_id))
            return False

        self.profile.require_oracle()
        with self._step("callback", CallbackSimulationFailed, f"mock VRF callback with randomness {self.randomness}"):
            coordinator = self.contracts.at(VRF_COORDINATOR_MOCK, str(self.profile.vrf_coordinator))
            self._wait(coordinator.transact("callBackWithRandomness", self.request_id, self.randomness, address))
        self.callback_delivered = True
        log.info("mock callback done, finishing the mint")
        return True

    def finalize(self) -> str:
        """AwaitingCallback (callback delivered) or MintRequested → Finalized; returns the token URI."""
        if self.plan.requires_callback:
            self._require("finalize", WorkflowState.AWAITING_CALLBACK)
            if not self.callback_delivered:
                raise WorkflowStateError("randomness not delivered yet", state=self.state.value, operation="finalize")
        else:
            self._require("finalize", WorkflowState.MINT_REQUESTED)
        address = self._require_address("finalize")
        iface = self.plan.interface
        if iface.uri_function is None or self.token_id is None:
            raise WorkflowStateError("nothing to finalize", state=self.state.value, operation="finalize")
        with self._step("finalize", FinalizationFailed, f"finalizing token {self.token_id}"):
            nft = self.contracts.at(self.plan.contract, address)
            if iface.finish_function:
                self._wait(nft.transact(iface.finish_function, self.token_id, gas_limit=self.plan.gas.finish_gas_limit))
            uri = nft.call(iface.uri_function, self.token_id)
            if not isinstance(uri, str) or not uri:
                raise FinalizationFailed(f"{iface.uri_function}({self.token_id}) returned an empty URI", tx_hash=self._tx_hash)
        self.token_uri = uri
        self._transition(WorkflowState.FINALIZED)
        log.info("NFT minted, tokenURI: %s", uri)
        return uri

    # ------------------------------------------------------------------ driver

    def run(self) -> WorkflowResult:
        """Run every transition the plan needs, in order."""
        self.deploy()
        if self.plan.requires_funding:
            self.fund()
        self.request_mint()
        if self.plan.requires_callback and not self.await_callback():
            return self.result()
        self.finalize()
        return self.result()

    def result(self) -> WorkflowResult:
        return WorkflowResult(
            contract=self.plan.contract,
            network=self.profile.name,
            state=self.state,
            address=self.address,
            newly_deployed=self.record.newly_deployed if self.record is not None else None,
            funded_amount=self.funded_amount,
            request_id=_hex(self.request_id) if self.request_id is not None else None,
            token_id=self.token_id,
            token_uri=self.token_uri,
            verify_command=self.verify_hint() if self.record is not None else None,
        )


__all__ = [
    "ContractService",
    "DeploymentService",
    "GasPolicy",
    "ProvisioningOrchestrator",
    "SIMULATED_RANDOMNESS",
    "WorkflowPlan",
    "WorkflowResult",
    "WorkflowState",
    "verify_command",
]
