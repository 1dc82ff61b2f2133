"""
Deployed contract registry

Records are kept per network, one JSON file each, so runs against different
networks never touch each other's history. Within a network the records are
an append-only ordered list: there is at most one unnamed record per
logical id, and named records let one id be deployed several times.
"""

import os
import re
import json
import logging
import tempfile
import threading
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from web3 import Web3

from .contracts import contract_key
from .errors import DuplicateRecord, MissingDependency

logger = logging.getLogger(__name__)

NETWORK_NAME_PATTERN = re.compile(r'^[A-Za-z0-9_.-]+$')


def _serialize_arg(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    if isinstance(value, (list, tuple)):
        return [_serialize_arg(v) for v in value]
    if isinstance(value, dict):
        return {k: _serialize_arg(v) for k, v in value.items()}
    if hasattr(value, 'value') and isinstance(value.value, (str, int)):
        return value.value
    return value


@dataclass
class ComponentRecord:
    """A deployed contract on one network"""
    id: str
    network: str
    address: str
    args: List[Any] = field(default_factory=list)
    name: Optional[str] = None
    tx_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        del data['network']
        return data

    @classmethod
    def from_dict(cls, network: str, data: Dict[str, Any]) -> "ComponentRecord":
        return cls(
            id=data['id'],
            network=network,
            address=data['address'],
            args=data.get('args', []),
            name=data.get('name'),
            tx_hash=data.get('tx_hash'),
        )


class ContractStorage:
    """
    Registry of deployed contracts keyed by (logical id, network)

    Args:
        path: directory holding ``<network>.json`` files, or None to keep
            records in memory only
    """

    def __init__(self, path: Optional[str] = None):
        self.path = path
        self._records: Dict[str, List[ComponentRecord]] = {}
        self._lock = threading.RLock()

        if self.path is not None:
            os.makedirs(self.path, exist_ok=True)

    def _network_file(self, network: str) -> str:
        if not NETWORK_NAME_PATTERN.match(network):
            raise ValueError(f"Invalid network name: {network!r}")
        return os.path.join(self.path, f'{network}.json')

    def _load(self, network: str) -> List[ComponentRecord]:
        if self.path is None:
            return self._records.setdefault(network, [])

        file_path = self._network_file(network)
        if not os.path.exists(file_path):
            records = []
        else:
            with open(file_path, 'r') as f:
                records = [ComponentRecord.from_dict(network, item) for item in json.load(f)]
        self._records[network] = records
        return records

    def _save(self, network: str, records: List[ComponentRecord]):
        self._records[network] = records
        if self.path is None:
            return

        file_path = self._network_file(network)
        fd, tmp_path = tempfile.mkstemp(dir=self.path, prefix=f'.{network}.', suffix='.tmp')
        try:
            with os.fdopen(fd, 'w') as f:
                json.dump([r.to_dict() for r in records], f, indent=2)
            os.replace(tmp_path, file_path)
        except BaseException:
            os.unlink(tmp_path)
            raise

    def _find(self, records: List[ComponentRecord], contract_id: str,
              name: Optional[str]) -> Optional[ComponentRecord]:
        for record in records:
            if record.id == contract_id and record.name == name:
                return record
        return None

    def register(self, contract_id, network: str, address: str, args: Optional[List[Any]] = None,
                 name: Optional[str] = None, tx_hash: Optional[str] = None) -> ComponentRecord:
        """
        Append a record for a deployed contract

        Raises:
            DuplicateRecord: a record with the same id and name already exists
            ValueError: the address is not a valid address
        """
        contract_id = contract_key(contract_id)
        if not Web3.is_address(address):
            raise ValueError(f"Invalid address for {contract_id}: {address!r}")
        address = Web3.to_checksum_address(address)

        with self._lock:
            records = list(self._load(network))
            existing = self._find(records, contract_id, name)
            if existing is not None:
                raise DuplicateRecord(contract_id, network, existing.address, name)

            record = ComponentRecord(
                id=contract_id,
                network=network,
                address=address,
                args=_serialize_arg(list(args or [])),
                name=name,
                tx_hash=tx_hash,
            )
            records.append(record)
            self._save(network, records)

        logger.info(f"Registered {contract_id}{f' ({name})' if name else ''} on {network} at {address}")
        return record

    def get_record(self, contract_id, network: str, name: Optional[str] = None) -> Optional[ComponentRecord]:
        with self._lock:
            return self._find(self._load(network), contract_key(contract_id), name)

    def try_get_address(self, contract_id, network: str, name: Optional[str] = None) -> Optional[str]:
        record = self.get_record(contract_id, network, name)
        return record.address if record is not None else None

    def must_get_address(self, contract_id, network: str, name: Optional[str] = None) -> str:
        address = self.try_get_address(contract_id, network, name)
        if address is None:
            raise MissingDependency(contract_key(contract_id), network, name)
        return address

    def records(self, network: str) -> List[ComponentRecord]:
        """All records of a network in registration order"""
        with self._lock:
            return list(self._load(network))

    def networks(self) -> List[str]:
        if self.path is None:
            return sorted(n for n, records in self._records.items() if records)
        return sorted(
            entry[:-len('.json')] for entry in os.listdir(self.path)
            if entry.endswith('.json') and not entry.startswith('.')
        )

    def clean(self, network: str):
        """Forget every record of a network, e.g. after a local chain reset"""
        with self._lock:
            self._records.pop(network, None)
            if self.path is not None:
                file_path = self._network_file(network)
                if os.path.exists(file_path):
                    os.remove(file_path)
        logger.warning(f"Removed all deployment records for network {network}")
