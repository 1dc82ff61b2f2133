"""
Deployment orchestration

The registry is the only record of progress: a step whose contract is
registered on the target network is skipped, anything else is deployed.
A step is one unit of work made of creation, the step's calls (wiring and
configuration) and registration, in that order. If a call fails the
contract stays unregistered and the whole step runs again on the next run.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, Optional

from .contracts import ArtifactStore
from .errors import MissingDependency, StaleRecord
from .linker import link_bytecode
from .plan import Call, DeploymentPlan, DeploymentStep, Ref
from .storage import ContractStorage

logger = logging.getLogger(__name__)


class _Self:
    """Placeholder for the address of the contract being deployed"""


def _substitute(value: Any, addresses: Dict[tuple, Any]) -> Any:
    if isinstance(value, Ref):
        return addresses[value.key]
    if isinstance(value, list):
        return [_substitute(item, addresses) for item in value]
    if isinstance(value, tuple):
        return tuple(_substitute(item, addresses) for item in value)
    return value


class Orchestrator:
    """
    Runs deployment plans against one ledger and one registry

    Args:
        deployment: executor submitting creations and calls
        storage: registry of deployed contracts
        artifacts: compiled contracts by name
        verify_on_resume: check that registered contracts still have code
            before trusting them
    """

    def __init__(self, deployment, storage: ContractStorage, artifacts: ArtifactStore,
                 verify_on_resume: bool = False):
        self.deployment = deployment
        self.storage = storage
        self.artifacts = artifacts
        self.verify_on_resume = verify_on_resume
        self._network: Optional[str] = None

    @property
    def network(self) -> str:
        if self._network is None:
            self._network = self.deployment.get_network()
        return self._network

    def run(self, plan: DeploymentPlan) -> Dict[str, str]:
        """
        Deploy every step of the plan

        Returns:
            address per step, keyed by its id, or by "id (name)" for a step
            deployed under an override name
        """
        steps = plan.order()
        logger.info(f"Deploying {len(steps)} contracts on {self.network}")

        addresses = {}
        for index, step in enumerate(steps, start=1):
            logger.info(f"[{index}/{len(steps)}] {step.id}")
            label = step.id if step.name is None else f"{step.id} ({step.name})"
            addresses[label] = self.deploy_step(step, plan)

        logger.info(f"Deployment on {self.network} complete")
        return addresses

    def deploy_step(self, step: DeploymentStep, plan: Optional[DeploymentPlan] = None) -> str:
        existing = self.storage.try_get_address(step.id, self.network, step.name)
        if existing is not None:
            if self.verify_on_resume:
                self._check_live({step.key: existing, **self._registered_derived(step)})
            logger.info(f"{step.id} already deployed on {self.network} at {existing}, skipping")
            self._register_derived(step, existing)
            return existing

        # every lookup, link and argument happens before the first transaction;
        # an unregistered library surfaces as an unresolved placeholder when linking
        addresses: Dict[tuple, Any] = {}
        for ref in step.refs():
            if ref.name is None and ref.id in step.libraries:
                address = self.storage.try_get_address(ref.id, self.network)
                if address is None:
                    continue
            else:
                address = self.storage.must_get_address(ref.id, self.network, ref.name)
            addresses[ref.key] = address
        if self.verify_on_resume and addresses:
            self._check_live(addresses)

        artifact = self.artifacts.get(step.artifact_name)
        bytecode = artifact.bytecode
        if step.libraries or artifact.link_references:
            libraries = {
                self.artifacts.get(library).fully_qualified_name: addresses[(library, None)]
                for library in step.libraries
                if (library, None) in addresses
            }
            bytecode = link_bytecode(artifact.bytecode, libraries, artifact.link_references)

        for ref in step.refs():
            if ref.key not in addresses:
                raise MissingDependency(ref.id, self.network, ref.name)

        args = _substitute(step.args, addresses)
        calls = [self._prepare_call(step, call, addresses, plan) for call in step.calls]

        deployed = self.deployment.deploy_contract(artifact, *args, bytecode=bytecode)
        addresses[step.key] = deployed.address

        for call, target, abi in calls:
            call_args = _substitute(call.args, addresses)
            if target is _Self:
                target = deployed.address
            logger.info(f"{step.id}: {call.method} on {target}")
            self.deployment.transact(target, abi, call.method, *call_args)

        self.storage.register(step.id, self.network, deployed.address, args,
                              name=step.name, tx_hash=deployed.tx_hash)
        self._register_derived(step, deployed.address)
        return deployed.address

    def _prepare_call(self, step: DeploymentStep, call: Call, addresses: Dict[tuple, Any],
                      plan: Optional[DeploymentPlan]):
        if call.target is None:
            return call, _Self, self.artifacts.get(call.artifact or step.artifact_name).abi

        artifact_name = call.artifact
        if artifact_name is None:
            target_step = plan.get(call.target.id, call.target.name) if plan is not None else None
            artifact_name = target_step.artifact_name if target_step is not None else call.target.id
        return call, addresses[call.target.key], self.artifacts.get(artifact_name).abi

    def _registered_derived(self, step: DeploymentStep) -> Dict[tuple, str]:
        registered = {}
        for derived in step.derived:
            address = self.storage.try_get_address(derived.id, self.network, derived.name)
            if address is not None:
                registered[(derived.id, derived.name)] = address
        return registered

    def _register_derived(self, step: DeploymentStep, address: str):
        if not step.derived:
            return
        abi = self.artifacts.get(step.artifact_name).abi
        for derived in step.derived:
            if self.storage.try_get_address(derived.id, self.network, derived.name) is not None:
                continue
            derived_address = self.deployment.call(address, abi, derived.getter)
            self.storage.register(derived.id, self.network, derived_address, derived.args, name=derived.name)

    def _check_live(self, addresses: Dict[tuple, str]):
        """Reads only, so the lookups run side by side"""
        keys = list(addresses)
        with ThreadPoolExecutor(max_workers=min(8, len(keys)) or 1) as pool:
            live = list(pool.map(lambda key: self.deployment.has_code(addresses[key]), keys))

        for key, has_code in zip(keys, live):
            if not has_code:
                raise StaleRecord(key[0], self.network, addresses[key])
