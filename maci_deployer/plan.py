"""
Deployment plans

A plan is a set of steps, one per contract. A step lists the libraries it
links, its constructor arguments and the calls to make right after creation.
Any argument may be a ``Ref`` to another contract, resolved to its registered
address at deploy time; refs give the "requires address of" edges that order
the plan. A call whose arguments refer back to the step's own contract is a
wiring call: it tells an earlier contract about the new one, closing a
circular dependency.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional, Tuple

from .contracts import contract_key
from .errors import PlanError


StepKey = Tuple[str, Optional[str]]


@dataclass(frozen=True)
class Ref:
    """Address of a registered contract, looked up when the step runs"""
    id: str
    name: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, 'id', contract_key(self.id))

    @property
    def key(self) -> StepKey:
        return (self.id, self.name)


@dataclass
class Call:
    """
    State-changing call issued right after the step's contract is created

    ``target`` is None to call the new contract itself. ``artifact`` names
    the ABI to use for the target and defaults to the target's step artifact.
    """
    method: str
    args: List[Any] = field(default_factory=list)
    target: Optional[Ref] = None
    artifact: Optional[str] = None


@dataclass
class Derived:
    """Contract created by the step's contract, read back through a getter"""
    id: str
    getter: str
    name: Optional[str] = None
    args: List[Any] = field(default_factory=list)

    def __post_init__(self):
        self.id = contract_key(self.id)


def _collect_refs(value: Any, into: List[Ref]):
    if isinstance(value, Ref):
        if value not in into:
            into.append(value)
    elif isinstance(value, (list, tuple)):
        for item in value:
            _collect_refs(item, into)


@dataclass
class DeploymentStep:
    id: str
    args: List[Any] = field(default_factory=list)
    libraries: List[str] = field(default_factory=list)
    artifact: Optional[str] = None
    name: Optional[str] = None
    calls: List[Call] = field(default_factory=list)
    derived: List[Derived] = field(default_factory=list)

    def __post_init__(self):
        self.id = contract_key(self.id)
        self.libraries = [contract_key(library) for library in self.libraries]
        if self.artifact is not None:
            self.artifact = contract_key(self.artifact)

    @property
    def key(self) -> StepKey:
        return (self.id, self.name)

    @property
    def artifact_name(self) -> str:
        return self.artifact or self.id

    def refs(self) -> List[Ref]:
        """Every contract this step needs an address for, excluding itself"""
        refs: List[Ref] = []
        for library in self.libraries:
            _collect_refs(Ref(library), refs)
        _collect_refs(self.args, refs)
        for call in self.calls:
            if call.target is not None:
                _collect_refs(call.target, refs)
            _collect_refs(call.args, refs)
        return [ref for ref in refs if ref.key != self.key]

    @property
    def requires(self) -> List[str]:
        return [ref.id for ref in self.refs()]

    def is_wiring(self, call: Call) -> bool:
        refs: List[Ref] = []
        _collect_refs(call.args, refs)
        return call.target is not None and any(ref.key == self.key for ref in refs)


class DeploymentPlan:
    """Steps of one deployment run, ordered by their address requirements"""

    def __init__(self, steps: Optional[List[DeploymentStep]] = None):
        self._steps: Dict[StepKey, DeploymentStep] = {}
        for step in steps or []:
            self.add(step)

    def add(self, step: DeploymentStep) -> DeploymentStep:
        if step.key in self._steps:
            raise PlanError(f"Step {step.id} is already part of the plan")
        self._steps[step.key] = step
        return step

    def get(self, contract_id, name: Optional[str] = None) -> Optional[DeploymentStep]:
        return self._steps.get((contract_key(contract_id), name))

    def __iter__(self) -> Iterator[DeploymentStep]:
        return iter(self._steps.values())

    def __len__(self) -> int:
        return len(self._steps)

    @property
    def libraries(self) -> List[str]:
        seen: List[str] = []
        for step in self._steps.values():
            for library in step.libraries:
                if library not in seen:
                    seen.append(library)
        return seen

    def wiring_edges(self) -> List[Tuple[str, str]]:
        """(contract told about the new one, new contract) pairs"""
        return [
            (call.target.id, step.id)
            for step in self._steps.values()
            for call in step.calls
            if step.is_wiring(call)
        ]

    def order(self) -> List[DeploymentStep]:
        """
        Topological order of the steps (Kahn's algorithm)

        Libraries come first, the rest keep the order they were added in.
        Requirements that are not steps of this plan are expected to be
        registered already and add no edge.

        Raises:
            PlanError: the requirements form a cycle
        """
        position = {key: index for index, key in enumerate(self._steps)}
        libraries = set(self.libraries)

        dependencies: Dict[StepKey, List[StepKey]] = {}
        for key, step in self._steps.items():
            dependencies[key] = [ref.key for ref in step.refs() if ref.key in self._steps]

        in_degree = {key: len(deps) for key, deps in dependencies.items()}
        queue = [key for key, degree in in_degree.items() if degree == 0]
        result: List[StepKey] = []

        while queue:
            queue.sort(key=lambda k: (k[0] not in libraries, position[k]))
            current = queue.pop(0)
            result.append(current)

            for key, deps in dependencies.items():
                if current in deps:
                    in_degree[key] -= 1
                    if in_degree[key] == 0:
                        queue.append(key)

        if len(result) != len(self._steps):
            remaining = sorted(key[0] for key in self._steps if key not in result)
            raise PlanError(f"Circular dependency detected involving: {remaining}")

        return [self._steps[key] for key in result]
