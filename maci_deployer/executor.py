"""
Ledger access through web3.py

Every mutating operation is signed by a single account and waits for its
receipt before returning, so operations land in the order they were issued.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from web3 import Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception, Web3RPCError
from web3.middleware import ExtraDataToPOAMiddleware

from .contracts import ContractArtifact
from .errors import FinalizationTimeout, LedgerRejection, UnresolvedPlaceholder
from .linker import find_placeholders

logger = logging.getLogger(__name__)

CHAIN_NAMES = {
    1: "mainnet",
    10: "optimism",
    100: "gnosis",
    137: "polygon",
    8453: "base",
    31337: "localhost",
    42161: "arbitrum",
    84532: "base-sepolia",
    421614: "arbitrum-sepolia",
    11155111: "sepolia",
    11155420: "optimism-sepolia",
}


@dataclass
class DeployedContract:
    address: str
    tx_hash: str


class Deployment:
    """
    Submits creations and calls for one account and waits for finalization

    Args:
        w3: connected Web3 instance
        account: local account signing every transaction
        network: network name recorded in the registry; derived from the
            chain id when omitted
        tx_timeout: seconds to wait for each receipt
    """

    def __init__(self, w3: Web3, account: Any, network: Optional[str] = None, tx_timeout: float = 300):
        self.w3 = w3
        self.account = account
        self.tx_timeout = tx_timeout
        self._network = network

    @classmethod
    def from_config(cls, config) -> "Deployment":
        w3 = Web3(Web3.HTTPProvider(config.rpc_url))
        w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)
        if not w3.is_connected():
            raise ConnectionError(f"Could not connect to RPC URL: {config.rpc_url}")
        logger.info(f"Connected to blockchain at {config.rpc_url}")

        if not config.private_key:
            raise ValueError("PRIVATE_KEY not found in environment")
        account = w3.eth.account.from_key(config.private_key)
        logger.info(f"Using deployer account: {account.address}")

        if config.chain_id is not None and w3.eth.chain_id != config.chain_id:
            raise ValueError(f"RPC chain id {w3.eth.chain_id} does not match CHAIN_ID {config.chain_id}")

        return cls(w3, account, network=config.network, tx_timeout=config.tx_timeout)

    def get_network(self) -> str:
        if self._network is None:
            chain_id = self.w3.eth.chain_id
            self._network = CHAIN_NAMES.get(chain_id, f"chain-{chain_id}")
        return self._network

    def _tx_params(self) -> Dict[str, Any]:
        return {
            'from': self.account.address,
            'nonce': self.w3.eth.get_transaction_count(self.account.address, 'pending'),
            'gasPrice': self.w3.eth.gas_price,
            'chainId': self.w3.eth.chain_id,
        }

    def _submit(self, build, operation: str):
        """
        Build, sign and send a transaction, then wait for its receipt

        Gas estimation runs on the node while building, so a revert or an
        RPC error there is a rejection. Local validation errors, such as
        arguments that do not match the ABI, propagate unchanged.
        """
        try:
            tx = build(self._tx_params())
        except (ContractLogicError, Web3RPCError) as e:
            raise LedgerRejection(operation, str(e)) from e
        signed_tx = self.account.sign_transaction(tx)

        tx_hash = None
        try:
            tx_hash = self.w3.eth.send_raw_transaction(signed_tx.raw_transaction)
            logger.info(f"{operation}: sent {Web3.to_hex(tx_hash)}")
            receipt = self.w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.tx_timeout)
        except TimeExhausted as e:
            raise FinalizationTimeout(operation, Web3.to_hex(tx_hash), self.tx_timeout) from e
        except (ContractLogicError, Web3Exception, ValueError) as e:
            raise LedgerRejection(operation, str(e), Web3.to_hex(tx_hash) if tx_hash else None) from e

        if receipt['status'] != 1:
            raise LedgerRejection(operation, "transaction reverted", Web3.to_hex(tx_hash))

        logger.info(f"{operation}: confirmed in block {receipt['blockNumber']}")
        return receipt

    def deploy_contract(self, artifact: ContractArtifact, *args, bytecode: Optional[str] = None) -> DeployedContract:
        """
        Create a contract and wait for it to be mined

        ``bytecode`` overrides the artifact's bytecode and is where linked
        bytecode goes. Bytecode that still contains library markers is never
        submitted.
        """
        bytecode = bytecode or artifact.bytecode
        unresolved = find_placeholders(bytecode)
        if unresolved:
            raise UnresolvedPlaceholder(unresolved)

        factory = self.w3.eth.contract(abi=artifact.abi, bytecode=bytecode)
        receipt = self._submit(
            lambda params: factory.constructor(*args).build_transaction(params),
            f"Deploy {artifact.name}",
        )
        address = receipt['contractAddress']
        logger.info(f"{artifact.name} deployed at {address}")
        return DeployedContract(address=address, tx_hash=Web3.to_hex(receipt['transactionHash']))

    def _contract(self, address: str, abi: List[Dict[str, Any]]):
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=abi)

    def transact(self, address: str, abi: List[Dict[str, Any]], method: str, *args):
        """Send a state-changing call and wait for it to be mined"""
        function = getattr(self._contract(address, abi).functions, method)
        return self._submit(
            lambda params: function(*args).build_transaction(params),
            f"Call {method} on {address}",
        )

    def call(self, address: str, abi: List[Dict[str, Any]], method: str, *args):
        """Read-only call"""
        function = getattr(self._contract(address, abi).functions, method)
        return function(*args).call()

    def has_code(self, address: str) -> bool:
        return len(self.w3.eth.get_code(Web3.to_checksum_address(address))) > 0
