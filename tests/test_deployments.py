from __future__ import annotations

import json

import pytest

from conftest import DEPLOYER, FakeRpc
from svgnft_deploy.contracts.abi import ArtifactStore
from svgnft_deploy.deployments import Deployer, DeploymentRecord, DeploymentStore
from svgnft_deploy.errors import ArtifactNotFound, DeploymentNotFound, TxError
from svgnft_deploy.wallet.signer import NodeAccountSigner

COORDINATOR_ABI = [{"type": "constructor", "inputs": [{"name": "linkAddress", "type": "address"}], "stateMutability": "nonpayable"}]
LINK = "0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512"
OTHER_LINK = "0x9fE46736679d2D9a65F0992F2272dE9f3c7fa6e0"


class Chain:
    """eth_* answers for a node that mines every transaction immediately."""

    def __init__(self, *, with_contract_address: bool = True) -> None:
        self.deployed = {}
        self.sent = []
        self.with_contract_address = with_contract_address

    def rpc(self) -> FakeRpc:
        return FakeRpc(
            {
                "eth_sendTransaction": self.send,
                "eth_getTransactionReceipt": self.receipt,
                "eth_blockNumber": "0x10",
                "eth_getCode": lambda p: self.deployed.get(p[0].lower(), "0x"),
            }
        )

    def send(self, params):
        self.sent.append(params[0])
        n = len(self.sent)
        address = "0x" + f"{n:040x}"
        self.deployed[address] = "0x6080"
        return "0x" + f"{n:064x}"

    def receipt(self, params):
        n = int(params[0], 16)
        return {
            "transactionHash": params[0],
            "blockNumber": "0x10",
            "status": "0x1",
            "gasUsed": "0x100",
            "contractAddress": "0x" + f"{n:040x}" if self.with_contract_address else None,
            "logs": [],
        }


@pytest.fixture
def artifacts(tmp_path):
    path = tmp_path / "artifacts" / "contracts" / "VRFCoordinatorMock.sol" / "VRFCoordinatorMock.json"
    path.parent.mkdir(parents=True)
    path.write_text(json.dumps({"contractName": "VRFCoordinatorMock", "abi": COORDINATOR_ABI, "bytecode": "0x6080"}))
    return ArtifactStore(tmp_path / "artifacts")


def _deployer(chain, artifacts, store):
    return Deployer(rpc=chain.rpc(), artifacts=artifacts, store=store, signer=NodeAccountSigner(DEPLOYER), timeout_s=5)


def test_first_deploy_records_and_persists(tmp_path, artifacts):
    chain = Chain()
    store = DeploymentStore("localhost", tmp_path / "deployments")
    rec = _deployer(chain, artifacts, store).deploy("VRFCoordinatorMock", args=(LINK,), from_=DEPLOYER)

    assert rec.newly_deployed
    assert rec.address == "0x" + f"{1:040x}"
    assert rec.args == (LINK,)
    assert rec.block_number == 16
    assert chain.sent[0]["from"] == DEPLOYER
    assert chain.sent[0]["data"].startswith("0x6080")

    saved = json.loads((tmp_path / "deployments" / "localhost" / "VRFCoordinatorMock.json").read_text())
    assert saved["address"] == rec.address
    assert saved["args"] == [LINK]
    assert saved["codeHash"] == rec.code_hash


def test_redeploy_with_same_args_is_reused(tmp_path, artifacts):
    chain = Chain()
    store = DeploymentStore("localhost", tmp_path)
    deployer = _deployer(chain, artifacts, store)
    first = deployer.deploy("VRFCoordinatorMock", args=(LINK,))
    second = deployer.deploy("VRFCoordinatorMock", args=(LINK,))

    assert second.address == first.address
    assert not second.newly_deployed
    assert len(chain.sent) == 1


def test_records_survive_a_restart(tmp_path, artifacts):
    chain = Chain()
    first = _deployer(chain, artifacts, DeploymentStore("localhost", tmp_path)).deploy("VRFCoordinatorMock", args=(LINK,))

    reloaded = DeploymentStore("localhost", tmp_path)
    assert "VRFCoordinatorMock" in reloaded and len(reloaded) == 1
    again = _deployer(chain, artifacts, reloaded).deploy("VRFCoordinatorMock", args=(LINK,))
    assert again.address == first.address
    assert not again.newly_deployed


def test_changed_args_deploy_afresh(tmp_path, artifacts):
    chain = Chain()
    deployer = _deployer(chain, artifacts, DeploymentStore("localhost", tmp_path))
    first = deployer.deploy("VRFCoordinatorMock", args=(LINK,))
    second = deployer.deploy("VRFCoordinatorMock", args=(OTHER_LINK,))
    assert second.newly_deployed
    assert second.address != first.address
    assert deployer.get("VRFCoordinatorMock") == second


def test_missing_code_deploys_afresh(tmp_path, artifacts):
    chain = Chain()
    deployer = _deployer(chain, artifacts, DeploymentStore("localhost", tmp_path))
    first = deployer.deploy("VRFCoordinatorMock", args=(LINK,))
    chain.deployed.clear()  # node was restarted
    second = deployer.deploy("VRFCoordinatorMock", args=(LINK,))
    assert second.newly_deployed
    assert second.address != first.address


def test_receipt_without_contract_address(tmp_path, artifacts):
    chain = Chain(with_contract_address=False)
    store = DeploymentStore("localhost", tmp_path)
    with pytest.raises(TxError):
        _deployer(chain, artifacts, store).deploy("VRFCoordinatorMock", args=(LINK,))
    assert store.get("VRFCoordinatorMock") is None


def test_unknown_artifact(tmp_path, artifacts):
    with pytest.raises(ArtifactNotFound):
        _deployer(Chain(), artifacts, DeploymentStore("localhost", tmp_path)).deploy("RandomSVG")


def test_get_unknown_deployment(tmp_path, artifacts):
    deployer = _deployer(Chain(), artifacts, DeploymentStore("rinkeby"))
    with pytest.raises(DeploymentNotFound) as ei:
        deployer.get("RandomSVG")
    assert ei.value.network == "rinkeby"


def test_in_memory_store_writes_nothing(tmp_path):
    store = DeploymentStore("localhost")
    store.put(DeploymentRecord(name="LinkToken", address=LINK))
    assert list(store) == ["LinkToken"]
    assert list(tmp_path.iterdir()) == []


def test_corrupt_record_file(tmp_path):
    (tmp_path / "localhost").mkdir()
    (tmp_path / "localhost" / "LinkToken.json").write_text("{not json")
    with pytest.raises(ValueError):
        DeploymentStore("localhost", tmp_path)
