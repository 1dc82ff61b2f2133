#!/usr/bin/env python3
"""
Tests for the MACI deployment topology and its verifying keys
"""

from collections import Counter

import pytest
from web3 import Web3

from .contracts import EContracts, EMode
from .errors import LedgerRejection, UnresolvedPlaceholder
from .maci import (
    ACC_QUEUE_NAME,
    MaciDeployArgs,
    MaciService,
    build_plan,
    gatekeeper_step,
    vk_registry_step,
)
from .orchestrator import Orchestrator
from .storage import ContractStorage
from .vk import TreeConfig, VerifyingKey, VerifyingKeyBundle

EAS = Web3.to_checksum_address("0x" + "ea" * 20)
ATTESTER = Web3.to_checksum_address("0x" + "a7" * 20)
SCHEMA = "0x" + "5c" * 32

VK_OBJ = {
    "vk_alpha_1": ["1", "2", "1"],
    "vk_beta_2": [["3", "4"], ["5", "6"], ["1", "0"]],
    "vk_gamma_2": [["7", "8"], ["9", "10"], ["1", "0"]],
    "vk_delta_2": [["11", "12"], ["13", "14"], ["1", "0"]],
    "IC": [["15", "16", "1"], ["17", "18", "1"]],
}

CONFIG = TreeConfig(
    state_tree_depth=10,
    int_state_tree_depth=1,
    message_tree_depth=2,
    message_batch_depth=1,
    vote_option_tree_depth=2,
)


def make_bundle(config=CONFIG, modes=(EMode.QV, EMode.NON_QV)):
    bundle = VerifyingKeyBundle(config)
    for mode in modes:
        bundle.add(mode, VerifyingKey.from_obj(VK_OBJ), VerifyingKey.from_obj(VK_OBJ))
    return bundle


def make_args(**overrides):
    values = dict(
        state_tree_depth=10,
        initial_voice_credits=99,
        vk_bundles=[make_bundle()],
        eas_address=EAS,
        eas_attester=ATTESTER,
        eas_schema=SCHEMA,
    )
    values.update(overrides)
    return MaciDeployArgs(**values)


@pytest.fixture
def storage():
    return ContractStorage()


@pytest.fixture
def service(ledger, storage, artifacts):
    return MaciService(Orchestrator(ledger, storage, artifacts))


class TestVerifyingKeys:

    def test_from_obj_swaps_g2_coordinates(self):
        vk = VerifyingKey.from_obj(VK_OBJ)
        assert vk.alpha1 == (1, 2)
        assert vk.beta2 == ((4, 3), (6, 5))
        assert vk.ic == [(15, 16), (17, 18)]

    def test_contract_param(self):
        param = VerifyingKey.from_obj(VK_OBJ).as_contract_param()
        assert param[0] == (1, 2)
        assert param[4] == [(15, 16), (17, 18)]

    def test_batch_args(self):
        args = make_bundle().batch_args()
        assert args[:5] == [10, 1, 2, 2, 5]
        assert args[5] == [0, 1]
        assert len(args[6]) == len(args[7]) == 2

    def test_misaligned_bundle(self):
        bundle = make_bundle()
        bundle.tally_keys.pop()
        with pytest.raises(ValueError, match="misaligned"):
            bundle.batch_args()

    def test_repeated_mode(self):
        bundle = make_bundle(modes=(EMode.QV,))
        with pytest.raises(ValueError):
            bundle.add(EMode.QV, VerifyingKey.from_obj(VK_OBJ), VerifyingKey.from_obj(VK_OBJ))

    def test_empty_bundle(self):
        with pytest.raises(ValueError, match="no modes"):
            VerifyingKeyBundle(CONFIG).validate()

    def test_one_call_per_config(self):
        other = TreeConfig(6, 2, 3, 2, 3)
        step = vk_registry_step([make_bundle(), make_bundle(config=other)])
        assert [call.method for call in step.calls] == ["setVerifyingKeysBatch"] * 2
        assert step.calls[1].args[4] == 25

    def test_repeated_config(self):
        with pytest.raises(ValueError, match="share one tree configuration"):
            vk_registry_step([make_bundle(), make_bundle(modes=(EMode.QV,))])


class TestPlan:

    def test_order(self):
        order = [step.id for step in build_plan(make_args()).order()]
        assert order == [
            "PoseidonT3", "PoseidonT4", "PoseidonT5", "PoseidonT6",
            "ConstantInitialVoiceCreditProxy", "EASGatekeeper", "Verifier", "TopupCredit",
            "PollFactory", "MessageProcessorFactory", "TallyFactory", "MACI", "VkRegistry",
        ]

    def test_gatekeeper_wiring_edge(self):
        assert build_plan(make_args()).wiring_edges() == [("EASGatekeeper", "MACI")]

    def test_eas_gatekeeper_needs_arguments(self):
        with pytest.raises(ValueError, match="EASGatekeeper"):
            gatekeeper_step(EContracts.EASGatekeeper)

    def test_free_for_all_gatekeeper(self):
        plan = build_plan(make_args(gatekeeper=EContracts.FreeForAllGatekeeper, eas_address=None))
        assert plan.get(EContracts.FreeForAllGatekeeper).args == []
        assert plan.get(EContracts.EASGatekeeper) is None
        assert plan.wiring_edges() == [("FreeForAllGatekeeper", "MACI")]

    def test_no_vk_registry_without_keys(self):
        assert build_plan(make_args(vk_bundles=[])).get(EContracts.VkRegistry) is None


class TestDeployAll:

    def test_full_deployment(self, service, ledger, storage):
        addresses = service.deploy_all(make_args())

        assert len(ledger.created) == 13
        maci = ledger.created[11]
        assert maci["name"] == "MACI"
        assert maci["args"] == [
            addresses["PollFactory"],
            addresses["MessageProcessorFactory"],
            addresses["TallyFactory"],
            addresses["EASGatekeeper"],
            addresses["ConstantInitialVoiceCreditProxy"],
            addresses["TopupCredit"],
            10,
        ]
        gatekeeper = ledger.created[5]
        assert gatekeeper["args"] == [EAS, ATTESTER, SCHEMA]

    def test_gatekeeper_learns_maci(self, service, ledger):
        addresses = service.deploy_all(make_args())
        assert ledger.state[addresses["EASGatekeeper"]]["setMaciInstance"] == [addresses["MACI"]]

    def test_state_queue_recorded(self, service, ledger, storage):
        addresses = service.deploy_all(make_args())

        record = storage.get_record(EContracts.AccQueueQuinaryBlankSl, "localhost", ACC_QUEUE_NAME)
        assert record.address == ledger.state[addresses["MACI"]]["stateAq"]
        assert record.args == [2]

    def test_verifying_keys_set_in_one_call(self, service, ledger):
        addresses = service.deploy_all(make_args())

        batch_calls = [call for call in ledger.calls if call["method"] == "setVerifyingKeysBatch"]
        assert len(batch_calls) == 1
        assert batch_calls[0]["address"] == addresses["VkRegistry"]
        assert batch_calls[0]["args"][5] == [int(EMode.QV), int(EMode.NON_QV)]

    def test_records_registered_once(self, service, storage):
        service.deploy_all(make_args())
        ids = [record.id for record in storage.records("localhost")]
        assert len(ids) == len(set(ids)) == 14

    def test_rerun_creates_nothing(self, service, ledger):
        service.deploy_all(make_args())
        service.deploy_all(make_args())

        assert len(ledger.created) == 13
        assert len(ledger.calls) == 2

    def test_resume_after_failed_wiring(self, service, ledger, storage):
        ledger.fail_on.add("setMaciInstance")
        with pytest.raises(LedgerRejection):
            service.deploy_all(make_args())
        assert storage.try_get_address(EContracts.MACI, "localhost") is None
        assert storage.try_get_address(EContracts.VkRegistry, "localhost") is None

        ledger.fail_on.clear()
        addresses = service.deploy_all(make_args())

        counts = Counter(ledger.created_names())
        assert counts["MACI"] == 2
        assert all(count == 1 for name, count in counts.items() if name != "MACI")
        assert ledger.state[addresses["EASGatekeeper"]]["setMaciInstance"] == [addresses["MACI"]]


class TestServiceMethods:

    def test_poll_factory_needs_poseidon(self, service, ledger):
        with pytest.raises(UnresolvedPlaceholder):
            service.deploy_poll_factory()
        assert ledger.created == []

    def test_step_by_step(self, service, ledger, storage):
        t3, t4, t5, t6 = service.deploy_poseidon()
        poll_factory = service.deploy_poll_factory()
        service.deploy_message_processor_factory()
        service.deploy_tally_factory()
        service.deploy_initial_voice_credit_proxy(99)
        service.deploy_gatekeeper(EContracts.FreeForAllGatekeeper)
        service.deploy_topup_credit()
        service.deploy_verifier()
        maci = service.deploy_maci(10, EContracts.FreeForAllGatekeeper)
        service.deploy_vk_registry([make_bundle()])

        assert storage.must_get_address(EContracts.PollFactory, "localhost") == poll_factory
        linked = ledger.created[4]["bytecode"]
        for library in (t3, t4, t5, t6):
            assert library[2:].lower() in linked
        gatekeeper = storage.must_get_address(EContracts.FreeForAllGatekeeper, "localhost")
        assert ledger.state[gatekeeper]["setMaciInstance"] == [maci]

    def test_deploy_method_is_idempotent(self, service, ledger):
        first = service.deploy_verifier()
        assert service.deploy_verifier() == first
        assert ledger.created_names() == ["Verifier"]
