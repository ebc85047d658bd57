"""
Signature contract automaton: incremental construction and read-only access.

A contract aggregates every observed Signature of one call site into a
layered graph:

    level 0            Start
    level 1..N-1       ArgPosition nodes (after consuming k arguments)
    level N            ReturnPosition nodes (all arguments consumed)
    (level N+1)        the single shared Terminal

Transitions leaving level k consume argument k+1; transitions leaving level N
consume the return type and all lead to Terminal. For a zero-argument
contract the Start node is the return layer.

Every node entered by an argument transition carries a redundancy mask,
least-significant bit first by relative offset from the consumed argument p:

    bit 0           argument p itself (always 1)
    bit j           argument p+j had the same type as argument p
    bit N-p+1       the return type was the same as argument p

Masks are ANDed across every insertion that reaches the node, so a bit that
survives says "this later position was always a repeat of the type that
entered this node". The compressor consumes that evidence.
"""

import copy
from typing import Any, Dict, FrozenSet, Iterator, List, Optional, Sequence, Tuple

from ..errors import InvariantViolationError, MismatchedArityError
from ..signature import ParameterInfo, ParamKind, Signature, validate_signature
from .schema import (
    ContractNode,
    NodeKind,
    ReferenceTransition,
    Transition,
    TypedTransition,
    transition_from_dict,
)


def redundancy_mask(arg_types: Sequence[str], return_type: str, position: int) -> int:
    """
    Fresh mask for consuming argument `position` (1-based) of one signature.
    """
    consumed = arg_types[position - 1]
    mask = 0
    for offset, type_name in enumerate(arg_types[position - 1:]):
        if type_name == consumed:
            mask |= 1 << offset
    if return_type == consumed:
        mask |= 1 << (len(arg_types) - position + 1)
    return mask


class SignatureContract:
    """
    Automaton aggregating the observed signatures of one call site.

    The contract exclusively owns its nodes. Not thread-safe: callers must
    serialize insertions into the same instance.
    """

    def __init__(self, signature: Signature):
        validate_signature(signature)
        self._reset(signature.arity, signature.params)
        self.add_signature(signature)

    def _reset(self, arity: int, params: Tuple[ParameterInfo, ...]) -> None:
        self._arity = arity
        self._params = tuple(params)
        self._counter = 0
        self._nodes: List[Optional[ContractNode]] = []
        self._levels: List[List[int]] = [[] for _ in range(arity + 1)]
        self._start_id = self._new_node(0).node_id
        self._terminal_id = self._allocate(arity + 1, NodeKind.TERMINAL).node_id

    @classmethod
    def _empty(cls, arity: int, params: Tuple[ParameterInfo, ...] = ()) -> 'SignatureContract':
        contract = cls.__new__(cls)
        contract._reset(arity, params)
        return contract

    # ------------------------------------------------------------------
    # Arena management
    # ------------------------------------------------------------------

    def _allocate(self, level: int, kind: NodeKind) -> ContractNode:
        node = ContractNode(node_id=len(self._nodes), level=level, kind=kind)
        self._nodes.append(node)
        return node

    def _kind_for_level(self, level: int) -> NodeKind:
        if level == 0:
            return NodeKind.START
        if level < self._arity:
            return NodeKind.ARG_POSITION
        return NodeKind.RETURN_POSITION

    def _new_node(self, level: int) -> ContractNode:
        node = self._allocate(level, self._kind_for_level(level))
        self._levels[level].append(node.node_id)
        return node

    def _clone_node(self, node_id: int) -> ContractNode:
        original = self._nodes[node_id]
        clone = self._new_node(original.level)
        clone.mask = original.mask
        clone.reference_flag = original.reference_flag
        clone.transitions = dict(original.transitions)
        return clone

    def _drop_node(self, node_id: int) -> None:
        self._nodes[node_id] = None

    def _level_ids(self, level: int) -> List[int]:
        return self._levels[level]

    def _set_level_ids(self, level: int, node_ids: List[int]) -> None:
        self._levels[level] = node_ids

    def parents_of(self, node_id: int) -> List[Tuple[int, Transition]]:
        """(parent id, key) for every transition entering `node_id`."""
        node = self.node(node_id)
        if node.kind == NodeKind.TERMINAL:
            source_ids = self._levels[self._arity]
        elif node.level == 0:
            return []
        else:
            source_ids = self._levels[node.level - 1]
        return [
            (source_id, key)
            for source_id in source_ids
            for key, target in self._nodes[source_id].transitions.items()
            if target == node_id
        ]

    def in_degree(self, node_id: int) -> int:
        return len(self.parents_of(node_id))

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    def add_signature(self, signature: Signature) -> None:
        """
        Fold one observed invocation into the contract.

        Raises:
            InvalidSignatureError: malformed signature
            MismatchedArityError: argument count differs from the contract's
        """
        validate_signature(signature)
        if signature.arity != self._arity:
            raise MismatchedArityError(self._arity, signature.arity)
        self._insert(signature.arg_types, signature.return_type)
        self._counter += 1

    def _step(self, node: ContractNode, arg_types: Sequence[str],
              type_name: str) -> Optional[Tuple[Transition, int]]:
        """Follow the transition matching `type_name`: typed first, then references."""
        typed = TypedTransition(type_name)
        if typed in node.transitions:
            return typed, node.transitions[typed]
        for key, target in node.sorted_transitions():
            if isinstance(key, ReferenceTransition) and arg_types[key.level - 1] == type_name:
                return key, target
        return None

    def _insert(self, arg_types: Sequence[str], return_type: str) -> None:
        symbols = list(arg_types) + [return_type]

        # Walk as far as the existing graph already recognises the signature.
        path = [self._start_id]
        keys: List[Transition] = []
        for type_name in symbols:
            step = self._step(self._nodes[path[-1]], arg_types, type_name)
            if step is None:
                break
            keys.append(step[0])
            path.append(step[1])

        consumed = len(keys)
        if consumed < len(symbols):
            self._unshare_path(path, keys)

        for level in range(1, min(consumed, self._arity) + 1):
            self._nodes[path[level]].mask &= redundancy_mask(arg_types, return_type, level)

        if consumed == len(symbols):
            return

        node_id = path[-1]
        for position in range(consumed + 1, self._arity + 1):
            new_node = self._new_node(position)
            new_node.mask = redundancy_mask(arg_types, return_type, position)
            self._nodes[node_id].transitions[TypedTransition(arg_types[position - 1])] = new_node.node_id
            node_id = new_node.node_id
        self._nodes[node_id].transitions[TypedTransition(return_type)] = self._terminal_id

    def _unshare_path(self, path: List[int], keys: List[Transition]) -> None:
        """
        Clone every shared node on the walked path before a new suffix is hung
        below it, so prefixes that merely share those nodes do not gain it.
        """
        first_shared = None
        for index in range(1, len(path)):
            if self.in_degree(path[index]) > 1:
                first_shared = index
                break
        if first_shared is None:
            return
        for index in range(first_shared, len(path)):
            clone = self._clone_node(path[index])
            self._nodes[path[index - 1]].transitions[keys[index - 1]] = clone.node_id
            path[index] = clone.node_id

    def merge(self, other: 'SignatureContract') -> None:
        """
        Fold every signature recognised by `other` into this contract.

        Masks are recomputed from the inserted evidence; the counter grows by
        `other.counter`.

        Raises:
            MismatchedArityError: the contracts have different arities
        """
        if other.arity != self._arity:
            raise MismatchedArityError(self._arity, other.arity)
        recognised = list(other.signatures())
        for signature in recognised:
            self._insert(signature.arg_types, signature.return_type)
        self._counter += other.counter

    def copy(self) -> 'SignatureContract':
        return copy.deepcopy(self)

    def minimize(self) -> None:
        from .minimizer import minimize
        minimize(self)

    def compress(self) -> None:
        from .compressor import compress
        compress(self)

    # ------------------------------------------------------------------
    # Read-only traversal
    # ------------------------------------------------------------------

    @property
    def arity(self) -> int:
        return self._arity

    @property
    def counter(self) -> int:
        return self._counter

    @property
    def params(self) -> Tuple[ParameterInfo, ...]:
        return self._params

    @property
    def start_id(self) -> int:
        return self._start_id

    @property
    def terminal_id(self) -> int:
        return self._terminal_id

    def node(self, node_id: int) -> ContractNode:
        node = self._nodes[node_id] if 0 <= node_id < len(self._nodes) else None
        if node is None:
            raise KeyError(f"no live node with id {node_id}")
        return node

    def levels(self) -> List[List[ContractNode]]:
        """Live nodes per level, Start level first; Terminal is not listed."""
        return [[self._nodes[node_id] for node_id in ids] for ids in self._levels]

    def iter_nodes(self) -> Iterator[ContractNode]:
        for ids in self._levels:
            for node_id in ids:
                yield self._nodes[node_id]
        yield self._nodes[self._terminal_id]

    def iter_transitions(self) -> Iterator[Tuple[int, Transition, int]]:
        for node in self.iter_nodes():
            for key, target in node.sorted_transitions():
                yield node.node_id, key, target

    @property
    def node_count(self) -> int:
        return sum(len(ids) for ids in self._levels) + 1

    @property
    def transition_count(self) -> int:
        return sum(len(node.transitions) for node in self.iter_nodes())

    def resolve(self, arg_types: Sequence[str]) -> FrozenSet[str]:
        """
        Every return type recognised for a concrete argument-type sequence.

        A reference transition matches when the queried type equals argument
        `level` of the same query; return references resolve the same way.
        """
        arg_types = tuple(arg_types)
        if len(arg_types) != self._arity:
            return frozenset()

        frontier = {self._start_id}
        for type_name in arg_types:
            frontier = {
                target
                for node_id in frontier
                for key, target in self._nodes[node_id].transitions.items()
                if _resolve_key(key, arg_types) == type_name
            }

        return frozenset(
            _resolve_key(key, arg_types)
            for node_id in frontier
            for key in self._nodes[node_id].transitions
        )

    def accepts(self, signature: Signature) -> bool:
        return signature.return_type in self.resolve(signature.arg_types)

    def signatures(self) -> Iterator[Signature]:
        """Enumerate the recognised signatures, references resolved, sorted."""
        found = set()

        def walk(node_id: int, prefix: Tuple[str, ...]):
            node = self._nodes[node_id]
            for key, target in node.transitions.items():
                type_name = _resolve_key(key, prefix)
                if node.level == self._arity:
                    found.add((prefix, type_name))
                else:
                    walk(target, prefix + (type_name,))

        walk(self._start_id, ())
        for arg_types, return_type in sorted(found):
            if self._params:
                yield Signature(self._params, arg_types, return_type)
            else:
                yield Signature.of(arg_types, return_type)

    # ------------------------------------------------------------------
    # Invariants and durable form
    # ------------------------------------------------------------------

    def check_invariants(self) -> None:
        """
        Raises:
            InvariantViolationError: the graph breaks a structural invariant
        """
        terminal = self._nodes[self._terminal_id]
        if terminal is None or terminal.kind != NodeKind.TERMINAL:
            raise InvariantViolationError("terminal node missing")
        if terminal.level != self._arity + 1:
            raise InvariantViolationError(
                f"terminal sits at level {terminal.level}, expected {self._arity + 1}"
            )
        if terminal.transitions:
            raise InvariantViolationError("terminal node has outgoing transitions")
        if self._levels[0] != [self._start_id]:
            raise InvariantViolationError("level 0 must hold exactly the start node")

        for level, ids in enumerate(self._levels):
            for node_id in ids:
                node = self._nodes[node_id]
                if node is None:
                    raise InvariantViolationError(f"level {level} lists dropped node {node_id}")
                if node.level != level or node.kind != self._kind_for_level(level):
                    raise InvariantViolationError(
                        f"node {node_id} is {node.kind.value}@{node.level}, listed at level {level}"
                    )
                for key, target in node.transitions.items():
                    self._check_transition(node, key, target)

    def _check_transition(self, node: ContractNode, key: Transition, target: int) -> None:
        target_node = self._nodes[target] if 0 <= target < len(self._nodes) else None
        if target_node is None:
            raise InvariantViolationError(f"node {node.node_id} points at dropped node {target}")
        if node.level == self._arity:
            if target != self._terminal_id:
                raise InvariantViolationError(f"return transition of node {node.node_id} misses terminal")
        elif target_node.level != node.level + 1 or target not in self._levels[node.level + 1]:
            raise InvariantViolationError(
                f"transition {key} of node {node.node_id} skips from level {node.level} to {target_node.level}"
            )
        if isinstance(key, ReferenceTransition) and not 1 <= key.level <= node.level:
            raise InvariantViolationError(
                f"reference to level {key.level} leaving level {node.level} points forward"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Lossless JSON-compatible form: levels, kinds, keys and endpoints."""
        return {
            "arity": self._arity,
            "counter": self._counter,
            "params": [p.to_dict() for p in self._params],
            "start": self._start_id,
            "terminal": self._terminal_id,
            "nodes": [
                {
                    "id": node.node_id,
                    "level": node.level,
                    "kind": node.kind.value,
                    "mask": node.mask,
                    "reference": node.reference_flag,
                    "transitions": [
                        dict(key.to_dict(), target=target)
                        for key, target in node.sorted_transitions()
                    ],
                }
                for node in self.iter_nodes()
            ],
        }

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> 'SignatureContract':
        """
        Rebuild a contract from `to_dict()` output.

        Raises:
            InvariantViolationError: the encoded graph is inconsistent
        """
        try:
            arity = int(raw["arity"])
            params = tuple(
                ParameterInfo(p["name"], ParamKind(p.get("kind", ParamKind.POSITIONAL.value)))
                for p in raw.get("params", [])
            )
            contract = cls._empty(arity, params)
            contract._counter = int(raw.get("counter", 0))
            contract._nodes = []
            contract._levels = [[] for _ in range(arity + 1)]

            size = max(node["id"] for node in raw["nodes"]) + 1
            contract._nodes = [None] * size
            for entry in raw["nodes"]:
                node = ContractNode(
                    node_id=entry["id"],
                    level=entry["level"],
                    kind=NodeKind(entry["kind"]),
                    mask=entry.get("mask", 0),
                    reference_flag=entry.get("reference", False),
                )
                for transition in entry["transitions"]:
                    key = transition_from_dict(transition)
                    if key in node.transitions:
                        raise InvariantViolationError(f"node {node.node_id} repeats transition {key}")
                    node.transitions[key] = transition["target"]
                if contract._nodes[node.node_id] is not None:
                    raise InvariantViolationError(f"node id {node.node_id} is encoded twice")
                contract._nodes[node.node_id] = node
                if node.kind != NodeKind.TERMINAL:
                    contract._levels[node.level].append(node.node_id)

            contract._start_id = raw["start"]
            contract._terminal_id = raw["terminal"]
        except (KeyError, TypeError, ValueError, IndexError) as e:
            raise InvariantViolationError(f"malformed contract encoding: {e}") from e

        contract.check_invariants()
        return contract

    def __repr__(self) -> str:
        return (
            f"SignatureContract(arity={self._arity}, counter={self._counter}, "
            f"nodes={self.node_count}, transitions={self.transition_count})"
        )


def _resolve_key(key: Transition, arg_types: Sequence[str]) -> str:
    if isinstance(key, TypedTransition):
        return key.type_name
    return arg_types[key.level - 1]


def create_contract(signature: Signature) -> SignatureContract:
    """
    Raises:
        InvalidSignatureError: malformed seed signature
    """
    return SignatureContract(signature)


def add_signature(contract: SignatureContract, signature: Signature) -> None:
    contract.add_signature(signature)
