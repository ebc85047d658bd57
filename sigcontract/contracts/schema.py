"""
Vertex and edge types of the signature contract automaton.

Nodes live in a flat arena owned by the contract and are addressed by stable
integer ids. Transitions store target ids, never node objects, and a
reference transition stores only a level index, so the graph holds no
ownership cycles.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Union


class NodeKind(Enum):
    START = "start"
    ARG_POSITION = "arg"
    RETURN_POSITION = "return"
    TERMINAL = "terminal"


@dataclass(frozen=True)
class TypedTransition:
    """The type actually observed at this position was `type_name`."""
    type_name: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": self.type_name}

    def __str__(self) -> str:
        return self.type_name


@dataclass(frozen=True)
class ReferenceTransition:
    """
    The type at this position equals the type that entered level `level`.

    Level L is entered by argument number L (1-based), so a reference never
    carries a type of its own; it is resolved against the path being walked.
    """
    level: int

    def to_dict(self) -> Dict[str, Any]:
        return {"ref": self.level}

    def __str__(self) -> str:
        return f"@{self.level}"


Transition = Union[TypedTransition, ReferenceTransition]


def transition_from_dict(raw: Dict[str, Any]) -> Transition:
    if "ref" in raw:
        return ReferenceTransition(int(raw["ref"]))
    return TypedTransition(str(raw["type"]))


def transition_sort_key(key: Transition):
    """Deterministic ordering: typed transitions by name, then references by level."""
    if isinstance(key, TypedTransition):
        return (0, key.type_name, 0)
    return (1, "", key.level)


@dataclass
class ContractNode:
    """
    A vertex of the automaton.

    Attributes:
        node_id: Stable arena index
        level: Number of arguments consumed to reach this node
        kind: START / ARG_POSITION / RETURN_POSITION / TERMINAL
        mask: Redundancy evidence gathered for the transition entering this
            node (bit d set: position +d always repeated the entering type)
        transitions: Transition key -> target node id
        reference_flag: Node has an incoming or outgoing reference transition
    """
    node_id: int
    level: int
    kind: NodeKind
    mask: int = 0
    transitions: Dict[Transition, int] = field(default_factory=dict)
    reference_flag: bool = False

    def sorted_transitions(self):
        return sorted(self.transitions.items(), key=lambda item: transition_sort_key(item[0]))

    def signature_key(self) -> frozenset:
        """Outgoing behaviour used for equivalence during minimization."""
        return frozenset(self.transitions.items())
