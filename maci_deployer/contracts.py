"""
Contract identities and compiled artifacts
"""

import os
import json
import glob
import logging
from enum import Enum, IntEnum
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class EContracts(str, Enum):
    """Logical ids of the deployable MACI components"""
    ConstantInitialVoiceCreditProxy = "ConstantInitialVoiceCreditProxy"
    EASGatekeeper = "EASGatekeeper"
    FreeForAllGatekeeper = "FreeForAllGatekeeper"
    Verifier = "Verifier"
    TopupCredit = "TopupCredit"
    PoseidonT3 = "PoseidonT3"
    PoseidonT4 = "PoseidonT4"
    PoseidonT5 = "PoseidonT5"
    PoseidonT6 = "PoseidonT6"
    PollFactory = "PollFactory"
    MessageProcessorFactory = "MessageProcessorFactory"
    TallyFactory = "TallyFactory"
    MACI = "MACI"
    AccQueueQuinaryBlankSl = "AccQueueQuinaryBlankSl"
    VkRegistry = "VkRegistry"


class EMode(IntEnum):
    """Processing modes, encoded the way VkRegistry expects them"""
    QV = 0
    NON_QV = 1


def contract_key(value) -> str:
    """Plain string form of a logical id, given as EContracts or str"""
    return str(getattr(value, 'value', value))


POSEIDON_LIBRARIES = [
    EContracts.PoseidonT3,
    EContracts.PoseidonT4,
    EContracts.PoseidonT5,
    EContracts.PoseidonT6,
]


@dataclass
class ContractArtifact:
    """Compiled contract: ABI, creation bytecode and library link references"""
    name: str
    abi: List[Dict[str, Any]]
    bytecode: str
    source_name: Optional[str] = None
    link_references: Dict[str, Dict[str, List[Dict[str, int]]]] = field(default_factory=dict)

    @property
    def fully_qualified_name(self) -> str:
        if self.source_name:
            return f"{self.source_name}:{self.name}"
        return self.name

    @property
    def linked_libraries(self) -> List[str]:
        """Fully qualified names of every library the bytecode links against"""
        return [
            f"{source}:{library}"
            for source, libraries in sorted(self.link_references.items())
            for library in sorted(libraries)
        ]

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContractArtifact":
        return cls(
            name=data['contractName'],
            abi=data['abi'],
            bytecode=data['bytecode'],
            source_name=data.get('sourceName'),
            link_references=data.get('linkReferences') or {},
        )

    @classmethod
    def from_json(cls, file_path: str) -> "ContractArtifact":
        """Loads a Hardhat contract artifact from its JSON file."""
        with open(file_path, 'r') as f:
            data = json.load(f)
        return cls.from_dict(data)


class ArtifactStore:
    """
    Looks up compiled artifacts by contract name

    Artifacts are either registered in memory or found under a Hardhat
    ``artifacts`` directory (``<root>/**/<Name>.sol/<Name>.json``).
    """

    def __init__(self, root: Optional[str] = None):
        self.root = root
        self._artifacts: Dict[str, ContractArtifact] = {}

    def add(self, artifact: ContractArtifact):
        self._artifacts[artifact.name] = artifact

    def get(self, name: str) -> ContractArtifact:
        name = contract_key(name)
        if name in self._artifacts:
            return self._artifacts[name]

        if self.root is None:
            raise KeyError(f"No artifact registered for {name}")

        pattern = os.path.join(self.root, '**', f'{name}.json')
        matches = sorted(
            path for path in glob.glob(pattern, recursive=True)
            if not path.endswith('.dbg.json')
        )
        if not matches:
            raise KeyError(f"Artifact {name}.json not found under {self.root}")
        if len(matches) > 1:
            logger.warning(f"Several artifacts named {name}, using {matches[0]}")

        artifact = ContractArtifact.from_json(matches[0])
        self._artifacts[name] = artifact
        return artifact
