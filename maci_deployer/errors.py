"""
Deployment errors
=================

Every failure the deployer raises derives from DeploymentError so a driver
can tell a deployment failure apart from a programming error.
"""

from typing import List, Optional


class DeploymentError(Exception):
    """Base class for deployment failures"""


class MissingDependency(DeploymentError):
    """A prerequisite has no registered address on the target network"""

    def __init__(self, contract_id: str, network: str, name: Optional[str] = None):
        self.contract_id = contract_id
        self.network = network
        self.name = name
        label = f"{contract_id} ({name})" if name else contract_id
        super().__init__(f"Contract {label} is not deployed on network {network}")


class DuplicateRecord(DeploymentError):
    """A record already exists for (id, network[, name])"""

    def __init__(self, contract_id: str, network: str, address: str, name: Optional[str] = None):
        self.contract_id = contract_id
        self.network = network
        self.address = address
        self.name = name
        label = f"{contract_id} ({name})" if name else contract_id
        super().__init__(f"Contract {label} is already registered on network {network} at {address}")


class UnresolvedPlaceholder(DeploymentError):
    """Bytecode still references libraries with no supplied address"""

    def __init__(self, placeholders: List[str]):
        self.placeholders = list(placeholders)
        super().__init__(f"Unresolved library placeholders: {', '.join(self.placeholders)}")


class LedgerRejection(DeploymentError):
    """The ledger rejected or reverted a submitted operation"""

    def __init__(self, operation: str, reason: str, tx_hash: Optional[str] = None):
        self.operation = operation
        self.reason = reason
        self.tx_hash = tx_hash
        message = f"{operation} was rejected: {reason}"
        if tx_hash:
            message += f" (tx {tx_hash})"
        super().__init__(message)


class FinalizationTimeout(DeploymentError):
    """A submitted operation was not finalized in time; its outcome is unknown"""

    def __init__(self, operation: str, tx_hash: str, timeout: float):
        self.operation = operation
        self.tx_hash = tx_hash
        self.timeout = timeout
        super().__init__(f"{operation} not finalized after {timeout}s (tx {tx_hash})")


class StaleRecord(DeploymentError):
    """A registered address has no code on the ledger any more"""

    def __init__(self, contract_id: str, network: str, address: str):
        self.contract_id = contract_id
        self.network = network
        self.address = address
        super().__init__(
            f"Contract {contract_id} is registered on {network} at {address} but has no code; "
            f"clean the network's records before redeploying"
        )


class PlanError(DeploymentError):
    """The deployment plan itself is invalid"""
