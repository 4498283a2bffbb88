from __future__ import annotations

import pytest

from conftest import DEPLOYER, LOCAL_KEY_HASH, FakeLedger, deploy_mocks, local_table
from svgnft_deploy.errors import (
    CallbackSimulationFailed,
    ConfigurationMissing,
    ConfirmationTimeout,
    DeployError,
    DeploymentFailed,
    FinalizationFailed,
    FundingFailed,
    MintFailed,
    StepError,
    TxError,
    WorkflowStateError,
)
from svgnft_deploy.networks import LOCAL_CHAIN_ID, NetworkProfile
from svgnft_deploy.orchestrator import (
    SIMULATED_RANDOMNESS,
    GasPolicy,
    ProvisioningOrchestrator,
    WorkflowPlan,
    WorkflowState,
    verify_command,
)

S = WorkflowState


def _orchestrator(ledger, profile, plan=None, **kw) -> ProvisioningOrchestrator:
    plan = plan or WorkflowPlan.random_svg(profile)
    return ProvisioningOrchestrator(plan, profile, deployments=ledger, contracts=ledger, from_=DEPLOYER, **kw)


def test_local_random_svg_trace(ledger, local_profile):
    """chainId=local, fee=100: deploy → fund 100 → mint → mock callback → finish → URI."""
    orch = _orchestrator(ledger, local_profile, timeout_s=5.0)
    result = orch.run()

    assert result.state is S.FINALIZED
    assert orch.history == [S.NOT_DEPLOYED, S.DEPLOYED, S.FUNDED, S.MINT_REQUESTED, S.AWAITING_CALLBACK, S.FINALIZED]
    assert result.token_uri and result.token_uri.startswith("data:application/json;base64,")
    assert result.funded_amount == 100
    assert result.token_id == 0
    assert result.newly_deployed is True

    deploy_call = ledger.calls[0]
    assert deploy_call == (
        "deploy",
        "RandomSVG",
        (local_profile.vrf_coordinator, local_profile.link_token, LOCAL_KEY_HASH, 100),
    )

    tx = ledger.transacts()
    assert [(c[1], c[2]) for c in tx] == [
        ("LinkToken", "transfer"),
        ("RandomSVG", "create"),
        ("VRFCoordinatorMock", "callBackWithRandomness"),
        ("RandomSVG", "finishMint"),
    ]
    # funding moves exactly `fee` to the deployed contract
    assert tx[0][3] == (result.address, 100)
    # mint and finish carry the named gas limits
    assert tx[1][4] == 300_000
    assert tx[3][3] == (0,) and tx[3][4] == 2_000_000
    # callback receives the request id from the mint receipt and the literal randomness
    request_id, randomness, consumer = tx[2][3]
    assert "0x" + request_id.hex() == result.request_id
    assert randomness == SIMULATED_RANDOMNESS == 6969
    assert consumer == result.address

    # every transaction waited for one confirming block with the explicit timeout
    assert [w[1:] for w in ledger.waits] == [(1, 5.0)] * 4


def test_request_id_is_found_by_event_name_not_position(ledger, local_profile):
    ledger.reverse_logs = True
    result = _orchestrator(ledger, local_profile).run()
    assert result.state is S.FINALIZED
    assert result.token_id == 0


def test_simulated_path_is_deterministic():
    def run_once() -> str:
        ledger = FakeLedger()
        deploy_mocks(ledger)
        profile = local_table(fee=100).resolve(LOCAL_CHAIN_ID, ledger)
        return _orchestrator(ledger, profile).run().token_uri

    assert run_once() == run_once()


def test_other_randomness_gives_other_uri(ledger, local_profile):
    first = _orchestrator(ledger, local_profile).run().token_uri
    second = _orchestrator(ledger, local_profile, randomness=42).run().token_uri
    assert first != second


def test_redeploy_reuses_record(ledger, local_profile):
    first = _orchestrator(ledger, local_profile).run()
    second = _orchestrator(ledger, local_profile).run()
    assert second.address == first.address
    assert first.newly_deployed is True
    assert second.newly_deployed is False
    assert second.token_id == 1


def test_funding_never_precedes_deployment(ledger, local_profile):
    orch = _orchestrator(ledger, local_profile)
    with pytest.raises(WorkflowStateError) as ei:
        orch.fund()
    assert ei.value.operation == "fund"
    assert ledger.calls == []


def test_mint_requires_funding_first(ledger, local_profile):
    orch = _orchestrator(ledger, local_profile)
    orch.deploy()
    with pytest.raises(WorkflowStateError):
        orch.request_mint()
    assert ledger.transacts() == []


def test_finalize_requires_delivered_callback(ledger, local_profile):
    orch = _orchestrator(ledger, local_profile)
    orch.deploy()
    orch.fund()
    orch.request_mint()
    with pytest.raises(WorkflowStateError):
        orch.finalize()


def test_rejected_funding_stops_before_mint(ledger, local_profile):
    ledger.link_balances[DEPLOYER.lower()] = 0
    orch = _orchestrator(ledger, local_profile)
    with pytest.raises(FundingFailed) as ei:
        orch.run()
    assert "exceeds balance" in ei.value.reason
    assert orch.state is S.DEPLOYED
    assert ledger.transacts("RandomSVG") == []


@pytest.mark.parametrize(
    "where, error_cls, step",
    [
        ("deploy:RandomSVG", DeploymentFailed, "deploy"),
        ("LinkToken.transfer", FundingFailed, "fund"),
        ("RandomSVG.create", MintFailed, "mint"),
        ("VRFCoordinatorMock.callBackWithRandomness", CallbackSimulationFailed, "callback"),
        ("RandomSVG.finishMint", FinalizationFailed, "finalize"),
    ],
)
def test_each_step_has_its_own_error(ledger, local_profile, where, error_cls, step):
    ledger.failures[where] = TxError("transaction reverted", tx_hash="0xabc", reason="boom")
    with pytest.raises(error_cls) as ei:
        _orchestrator(ledger, local_profile).run()
    err = ei.value
    assert isinstance(err, StepError) and isinstance(err, DeployError)
    assert err.step == step
    assert err.reason == "boom"
    assert err.tx_hash == "0xabc"
    assert step in str(err)


def test_confirmation_timeout_is_reported_with_its_step(ledger, local_profile):
    ledger.wait_failures["RandomSVG.create"] = ConfirmationTimeout(tx_hash="0x01", timeout_s=2.0)
    orch = _orchestrator(ledger, local_profile)
    with pytest.raises(ConfirmationTimeout) as ei:
        orch.run()
    assert ei.value.step == "mint"
    assert orch.state is S.FUNDED


def test_missing_mint_event_is_a_mint_failure(ledger, local_profile):
    ledger.drop_events.add("requestedRandomSVG")
    with pytest.raises(MintFailed) as ei:
        _orchestrator(ledger, local_profile).run()
    assert "requestedRandomSVG" in ei.value.reason
    assert ledger.transacts("VRFCoordinatorMock") == []


def test_empty_uri_is_a_finalization_failure(ledger, local_profile):
    ledger.empty_uri = True
    with pytest.raises(FinalizationFailed):
        _orchestrator(ledger, local_profile).run()


def test_live_network_stops_awaiting_callback(ledger, live_profile):
    orch = _orchestrator(ledger, live_profile)
    result = orch.run()

    assert result.state is S.AWAITING_CALLBACK
    assert result.pending
    assert result.token_uri is None
    assert result.request_id and result.request_id.startswith("0x")
    assert ledger.transacts("VRFCoordinatorMock") == []
    assert ledger.transacts()[0][3] == (result.address, 10**17)
    with pytest.raises(WorkflowStateError):
        orch.finalize()


def test_live_plan_without_oracle_addresses_is_rejected():
    profile = NetworkProfile(chain_id=5, name="goerli", key_hash=LOCAL_KEY_HASH, fee=1)
    with pytest.raises(ConfigurationMissing):
        WorkflowPlan.random_svg(profile)


def test_svg_nft_plan(ledger, local_profile):
    svg = "<svg xmlns='http://www.w3.org/2000/svg'><circle r='5'/></svg>"
    orch = _orchestrator(ledger, local_profile, plan=WorkflowPlan.svg_nft(svg))
    result = orch.run()

    assert result.state is S.FINALIZED
    assert orch.history == [S.NOT_DEPLOYED, S.DEPLOYED, S.MINT_REQUESTED, S.FINALIZED]
    assert result.funded_amount is None and result.request_id is None
    assert [(c[1], c[2], c[3]) for c in ledger.transacts()] == [("SVGNFT", "create", (svg,))]
    assert result.token_uri and result.token_uri.startswith("data:application/json;base64,")
    assert result.verify_command == f"npx hardhat verify --network localhost {result.address}"


def test_custom_gas_policy_is_used(ledger, local_profile):
    plan = WorkflowPlan.random_svg(local_profile, GasPolicy(mint_gas_limit=400_000, finish_gas_limit=3_000_000))
    _orchestrator(ledger, local_profile, plan=plan).run()
    gas = {c[2]: c[4] for c in ledger.transacts("RandomSVG")}
    assert gas == {"create": 400_000, "finishMint": 3_000_000}


def test_verify_command_lists_constructor_args():
    cmd = verify_command("rinkeby", "0xAbC", ("0x1", "0x2", bytes.fromhex("ff" * 2), 100))
    assert cmd == "npx hardhat verify --network rinkeby 0xAbC 0x1 0x2 0xffff 100"


def test_confirmations_must_be_positive(ledger, local_profile):
    with pytest.raises(ValueError):
        _orchestrator(ledger, local_profile, confirmations=0)
