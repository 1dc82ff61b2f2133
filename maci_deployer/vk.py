"""
Verifying keys for VkRegistry

Keys arrive as structured snarkjs verification key objects and are turned
into the tuples the registry's ``setVerifyingKeysBatch`` expects. The G2
coordinates are swapped on the way in, matching the precompile's
(imaginary, real) ordering.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence, Tuple

from .contracts import EMode

G1 = Tuple[int, int]
G2 = Tuple[Tuple[int, int], Tuple[int, int]]


def _g1(point: Sequence[Any]) -> G1:
    return (int(point[0]), int(point[1]))


def _g2(point: Sequence[Sequence[Any]]) -> G2:
    return (
        (int(point[0][1]), int(point[0][0])),
        (int(point[1][1]), int(point[1][0])),
    )


@dataclass
class VerifyingKey:
    """Groth16 verifying key"""
    alpha1: G1
    beta2: G2
    gamma2: G2
    delta2: G2
    ic: List[G1]

    @classmethod
    def from_obj(cls, data: Dict[str, Any]) -> "VerifyingKey":
        """Build from a snarkjs ``verification_key.json`` object"""
        return cls(
            alpha1=_g1(data['vk_alpha_1']),
            beta2=_g2(data['vk_beta_2']),
            gamma2=_g2(data['vk_gamma_2']),
            delta2=_g2(data['vk_delta_2']),
            ic=[_g1(point) for point in data['IC']],
        )

    def as_contract_param(self) -> Tuple:
        return (self.alpha1, self.beta2, self.gamma2, self.delta2, list(self.ic))


@dataclass(frozen=True)
class TreeConfig:
    state_tree_depth: int
    int_state_tree_depth: int
    message_tree_depth: int
    message_batch_depth: int
    vote_option_tree_depth: int

    @property
    def message_batch_size(self) -> int:
        return 5 ** self.message_batch_depth


@dataclass
class VerifyingKeyBundle:
    """
    Process and tally keys of several modes for a single tree configuration

    ``modes[i]`` pairs with ``process_keys[i]`` and ``tally_keys[i]``.
    """
    config: TreeConfig
    modes: List[EMode] = field(default_factory=list)
    process_keys: List[VerifyingKey] = field(default_factory=list)
    tally_keys: List[VerifyingKey] = field(default_factory=list)

    def add(self, mode: EMode, process_key: VerifyingKey, tally_key: VerifyingKey):
        if mode in self.modes:
            raise ValueError(f"Mode {mode.name} already present in bundle")
        self.modes.append(mode)
        self.process_keys.append(process_key)
        self.tally_keys.append(tally_key)

    def validate(self):
        if not self.modes:
            raise ValueError("Verifying key bundle has no modes")
        if not len(self.modes) == len(self.process_keys) == len(self.tally_keys):
            raise ValueError(
                f"Verifying key bundle is misaligned: {len(self.modes)} modes, "
                f"{len(self.process_keys)} process keys, {len(self.tally_keys)} tally keys"
            )
        if len(set(self.modes)) != len(self.modes):
            raise ValueError("Verifying key bundle repeats a mode")

    def batch_args(self) -> List[Any]:
        """Arguments of ``VkRegistry.setVerifyingKeysBatch``"""
        self.validate()
        return [
            self.config.state_tree_depth,
            self.config.int_state_tree_depth,
            self.config.message_tree_depth,
            self.config.vote_option_tree_depth,
            self.config.message_batch_size,
            [int(mode) for mode in self.modes],
            [key.as_contract_param() for key in self.process_keys],
            [key.as_contract_param() for key in self.tally_keys],
        ]
