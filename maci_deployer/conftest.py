"""
Shared fixtures: an in-memory ledger standing in for Deployment
"""

import pytest
from web3 import Web3

from .contracts import ArtifactStore, ContractArtifact, EContracts, POSEIDON_LIBRARIES
from .errors import LedgerRejection
from .executor import DeployedContract
from .linker import find_placeholders, placeholder


def library_source(name: str) -> str:
    return f"contracts/crypto/{name}.sol"


def make_artifact(name: str, libraries=(), source_name=None) -> ContractArtifact:
    """Artifact whose bytecode carries one hashed marker per library"""
    code = "6080604052"
    link_references = {}
    for library in libraries:
        source = library_source(library)
        link_references[source] = {library: [{"start": len(code) // 2, "length": 20}]}
        code += placeholder(f"{source}:{library}") + "5050"
    return ContractArtifact(
        name=name,
        abi=[],
        bytecode="0x" + code,
        source_name=source_name or f"contracts/{name}.sol",
        link_references=link_references,
    )


class FakeLedger:
    """
    Records creations and calls the way a chain would

    ``fail_on`` names contracts whose creation is rejected and methods whose
    calls revert.
    """

    def __init__(self, network="localhost"):
        self.network = network
        self.created = []
        self.calls = []
        self.state = {}
        self.fail_on = set()
        self.dead = set()
        self._nonce = 0

    def _next_address(self):
        self._nonce += 1
        return Web3.to_checksum_address(f"0x{self._nonce:040x}")

    def get_network(self):
        return self.network

    def deploy_contract(self, artifact, *args, bytecode=None):
        if artifact.name in self.fail_on:
            raise LedgerRejection(f"Deploy {artifact.name}", "execution reverted")
        bytecode = bytecode or artifact.bytecode
        assert not find_placeholders(bytecode), "unlinked bytecode submitted"
        address = self._next_address()
        self.created.append({"name": artifact.name, "args": list(args), "bytecode": bytecode, "address": address})
        return DeployedContract(address=address, tx_hash="0x" + f"{self._nonce:064x}")

    def transact(self, address, abi, method, *args):
        if method in self.fail_on:
            raise LedgerRejection(f"Call {method} on {address}", "execution reverted")
        self.calls.append({"address": address, "method": method, "args": list(args)})
        self.state.setdefault(address, {})[method] = list(args)
        return {"status": 1}

    def call(self, address, abi, method, *args):
        views = self.state.setdefault(address, {})
        if method not in views:
            views[method] = self._next_address()
        return views[method]

    def has_code(self, address):
        return address not in self.dead

    def created_names(self):
        return [item["name"] for item in self.created]


@pytest.fixture
def ledger():
    return FakeLedger()


@pytest.fixture
def artifacts():
    store = ArtifactStore()
    for library in POSEIDON_LIBRARIES:
        store.add(make_artifact(library.value, source_name=library_source(library.value)))
    for factory in (EContracts.PollFactory, EContracts.MessageProcessorFactory,
                    EContracts.TallyFactory, EContracts.MACI):
        store.add(make_artifact(factory.value, libraries=[lib.value for lib in POSEIDON_LIBRARIES]))
    for name in (EContracts.ConstantInitialVoiceCreditProxy, EContracts.EASGatekeeper,
                 EContracts.FreeForAllGatekeeper, EContracts.Verifier, EContracts.TopupCredit,
                 EContracts.VkRegistry):
        store.add(make_artifact(name.value))
    return store
