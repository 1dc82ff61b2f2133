"""
MACI Deployer
=============

Resumable deployment of the MACI contracts.

Structure:
- storage: per-network registry of deployed contracts
- linker: library placeholder substitution
- executor: transaction submission through web3
- plan / orchestrator: dependency ordering and step execution
- maci: the MACI contract topology
"""

from .errors import (
    DeploymentError,
    DuplicateRecord,
    FinalizationTimeout,
    LedgerRejection,
    MissingDependency,
    PlanError,
    StaleRecord,
    UnresolvedPlaceholder,
)
from .linker import link_bytecode
from .orchestrator import Orchestrator
from .plan import Call, DeploymentPlan, DeploymentStep, Derived, Ref
from .storage import ComponentRecord, ContractStorage

__version__ = "1.0.0"

__all__ = [
    'Call',
    'ComponentRecord',
    'ContractStorage',
    'DeploymentError',
    'DeploymentPlan',
    'DeploymentStep',
    'Derived',
    'DuplicateRecord',
    'FinalizationTimeout',
    'LedgerRejection',
    'MissingDependency',
    'Orchestrator',
    'PlanError',
    'Ref',
    'StaleRecord',
    'UnresolvedPlaceholder',
    'link_bytecode',
]
