"""
MACI deployment

Deploys the MACI contracts:
1. ConstantInitialVoiceCreditProxy
2. Gatekeeper (EAS or free-for-all)
3. Verifier
4. TopupCredit
5. Poseidon libraries
6. PollFactory
7. MessageProcessorFactory
8. TallyFactory
9. MACI, then wires it into the gatekeeper
10. VkRegistry, with its verifying keys set in one batch per tree config
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple, Union

from .contracts import EContracts, POSEIDON_LIBRARIES
from .orchestrator import Orchestrator
from .plan import Call, DeploymentPlan, DeploymentStep, Derived, Ref
from .vk import VerifyingKeyBundle


STATE_TREE_SUB_DEPTH = 2
ACC_QUEUE_NAME = "contracts/trees/AccQueueQuinaryBlankSl.sol:AccQueueQuinaryBlankSl"

GATEKEEPERS = (EContracts.EASGatekeeper, EContracts.FreeForAllGatekeeper)


@dataclass
class MaciDeployArgs:
    state_tree_depth: int
    initial_voice_credits: int
    vk_bundles: List[VerifyingKeyBundle] = field(default_factory=list)
    gatekeeper: EContracts = EContracts.EASGatekeeper
    eas_address: Optional[str] = None
    eas_attester: Optional[str] = None
    eas_schema: Optional[Union[str, bytes]] = None


def initial_voice_credit_proxy_step(amount: int) -> DeploymentStep:
    return DeploymentStep(EContracts.ConstantInitialVoiceCreditProxy, args=[amount])


def gatekeeper_step(gatekeeper: EContracts = EContracts.EASGatekeeper, eas_address: Optional[str] = None,
                    attester: Optional[str] = None,
                    encoded_schema: Optional[Union[str, bytes]] = None) -> DeploymentStep:
    if gatekeeper not in GATEKEEPERS:
        raise ValueError(f"Unsupported gatekeeper: {gatekeeper}")
    if gatekeeper == EContracts.FreeForAllGatekeeper:
        return DeploymentStep(gatekeeper)

    if eas_address is None or attester is None or encoded_schema is None:
        raise ValueError("EASGatekeeper needs the EAS address, attester and encoded schema")
    return DeploymentStep(gatekeeper, args=[eas_address, attester, encoded_schema])


def verifier_step() -> DeploymentStep:
    return DeploymentStep(EContracts.Verifier)


def topup_credit_step() -> DeploymentStep:
    return DeploymentStep(EContracts.TopupCredit)


def poseidon_steps() -> List[DeploymentStep]:
    return [DeploymentStep(library) for library in POSEIDON_LIBRARIES]


def factory_step(factory: EContracts) -> DeploymentStep:
    """PollFactory, MessageProcessorFactory and TallyFactory all link Poseidon"""
    return DeploymentStep(factory, libraries=list(POSEIDON_LIBRARIES))


def maci_step(state_tree_depth: int, gatekeeper: EContracts = EContracts.EASGatekeeper) -> DeploymentStep:
    """
    MACI needs the gatekeeper at construction and the gatekeeper needs
    MACI afterwards, so the gatekeeper is told through setMaciInstance
    before MACI is registered.
    """
    return DeploymentStep(
        EContracts.MACI,
        libraries=list(POSEIDON_LIBRARIES),
        args=[
            Ref(EContracts.PollFactory),
            Ref(EContracts.MessageProcessorFactory),
            Ref(EContracts.TallyFactory),
            Ref(gatekeeper),
            Ref(EContracts.ConstantInitialVoiceCreditProxy),
            Ref(EContracts.TopupCredit),
            state_tree_depth,
        ],
        calls=[
            Call("setMaciInstance", [Ref(EContracts.MACI)], target=Ref(gatekeeper)),
        ],
        derived=[
            Derived(EContracts.AccQueueQuinaryBlankSl, "stateAq", name=ACC_QUEUE_NAME,
                    args=[STATE_TREE_SUB_DEPTH]),
        ],
    )


def vk_registry_step(bundles: List[VerifyingKeyBundle]) -> DeploymentStep:
    for bundle in bundles:
        bundle.validate()
    configs = [bundle.config for bundle in bundles]
    if len(set(configs)) != len(configs):
        raise ValueError("Several verifying key bundles share one tree configuration")

    return DeploymentStep(
        EContracts.VkRegistry,
        calls=[Call("setVerifyingKeysBatch", bundle.batch_args()) for bundle in bundles],
    )


def build_plan(args: MaciDeployArgs) -> DeploymentPlan:
    plan = DeploymentPlan()
    plan.add(initial_voice_credit_proxy_step(args.initial_voice_credits))
    plan.add(gatekeeper_step(args.gatekeeper, args.eas_address, args.eas_attester, args.eas_schema))
    plan.add(verifier_step())
    plan.add(topup_credit_step())
    for step in poseidon_steps():
        plan.add(step)
    for factory in (EContracts.PollFactory, EContracts.MessageProcessorFactory, EContracts.TallyFactory):
        plan.add(factory_step(factory))
    plan.add(maci_step(args.state_tree_depth, args.gatekeeper))
    if args.vk_bundles:
        plan.add(vk_registry_step(args.vk_bundles))
    return plan


class MaciService:
    """Deploys MACI components one at a time or as a whole plan"""

    def __init__(self, orchestrator: Orchestrator):
        self.orchestrator = orchestrator

    def deploy_initial_voice_credit_proxy(self, amount: int) -> str:
        return self.orchestrator.deploy_step(initial_voice_credit_proxy_step(amount))

    def deploy_gatekeeper(self, gatekeeper: EContracts = EContracts.EASGatekeeper, eas_address: Optional[str] = None,
                          attester: Optional[str] = None,
                          encoded_schema: Optional[Union[str, bytes]] = None) -> str:
        return self.orchestrator.deploy_step(gatekeeper_step(gatekeeper, eas_address, attester, encoded_schema))

    def deploy_verifier(self) -> str:
        return self.orchestrator.deploy_step(verifier_step())

    def deploy_topup_credit(self) -> str:
        return self.orchestrator.deploy_step(topup_credit_step())

    def deploy_poseidon(self) -> Tuple[str, str, str, str]:
        t3, t4, t5, t6 = [self.orchestrator.deploy_step(step) for step in poseidon_steps()]
        return t3, t4, t5, t6

    def deploy_poll_factory(self) -> str:
        return self.orchestrator.deploy_step(factory_step(EContracts.PollFactory))

    def deploy_message_processor_factory(self) -> str:
        return self.orchestrator.deploy_step(factory_step(EContracts.MessageProcessorFactory))

    def deploy_tally_factory(self) -> str:
        return self.orchestrator.deploy_step(factory_step(EContracts.TallyFactory))

    def deploy_maci(self, state_tree_depth: int, gatekeeper: EContracts = EContracts.EASGatekeeper) -> str:
        return self.orchestrator.deploy_step(maci_step(state_tree_depth, gatekeeper))

    def deploy_vk_registry(self, bundles: List[VerifyingKeyBundle]) -> str:
        return self.orchestrator.deploy_step(vk_registry_step(bundles))

    def deploy_all(self, args: MaciDeployArgs) -> Dict[str, str]:
        return self.orchestrator.run(build_plan(args))
