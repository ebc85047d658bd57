"""
Mask-driven compression of a signature contract.

A depth-first pass visits every node below the return layer once. For a root
R at level r, the shifted masks of its children (the nodes entering level
r+1) are ANDed; a surviving bit e-1 says that, on every observed call through
any child, the position consumed at level r+e repeated the type that entered
level r+1. Typed transitions at those positions are rewritten into
ReferenceTransition(r+1), which makes sibling subtrees identical, and the
minimizer then merges them.

Compression never changes the set of recognised signatures, only how the
redundant type information is represented.
"""

from functools import reduce
from typing import Set

from ..errors import InvariantViolationError
from .builder import SignatureContract
from .minimizer import minimize
from .schema import ContractNode, ReferenceTransition, TypedTransition


def compress(contract: SignatureContract) -> int:
    """
    Rewrite mask-indicated redundancy into references, then minimize.

    Returns:
        Number of transitions rewritten into references

    Raises:
        InvariantViolationError: the graph is inconsistent
    """
    contract.check_invariants()
    visited: Set[int] = set()
    rewritten = _compress_from(contract, contract.start_id, visited)
    minimize(contract)
    return rewritten


def _compress_from(contract: SignatureContract, node_id: int, visited: Set[int]) -> int:
    if node_id in visited:
        return 0
    visited.add(node_id)

    node = contract.node(node_id)
    if node.level >= contract.arity:
        return 0

    children = list(dict.fromkeys(target for _, target in node.sorted_transitions()))
    rewritten = 0
    if children:
        common = reduce(lambda acc, child: acc & (contract.node(child).mask >> 1), children, -1)
        if common > 0:
            for child in children:
                rewritten += _rewrite_subtree(contract, child, common, node.level + 1)

    for child in children:
        rewritten += _compress_from(contract, child, visited)
    return rewritten


def _rewrite_subtree(contract: SignatureContract, child_id: int, mask: int, ref_level: int) -> int:
    """
    Walk the part of the graph dominated by `child_id` level by level, using
    bit e-1 of `mask` for nodes e levels below the compression root.

    Nodes that are also reachable without passing through `child_id` are
    left alone: their paths carry no evidence from this child's mask.
    """
    owned = {child_id}
    frontier = [child_id]
    rewritten = 0

    while frontier and mask:
        next_frontier = []
        for node_id in frontier:
            node = contract.node(node_id)
            if mask & 1:
                rewritten += _rewrite_transitions(contract, node, ref_level)
            if node.level == contract.arity:
                continue
            for target in dict.fromkeys(node.transitions.values()):
                if target in owned:
                    continue
                if all(parent in owned for parent, _ in contract.parents_of(target)):
                    owned.add(target)
                    next_frontier.append(target)
        frontier = next_frontier
        mask >>= 1

    return rewritten


def _rewrite_transitions(contract: SignatureContract, node: ContractNode, ref_level: int) -> int:
    typed = [key for key in node.transitions if isinstance(key, TypedTransition)]
    # More than one observed type here contradicts the mask; leave the node as is.
    if len(typed) != 1:
        return 0

    key = typed[0]
    target = node.transitions[key]
    reference = ReferenceTransition(ref_level)
    existing = node.transitions.get(reference)
    if existing is not None and existing != target:
        raise InvariantViolationError(
            f"node {node.node_id} would carry {reference} twice (targets {existing} and {target})"
        )

    del node.transitions[key]
    node.transitions[reference] = target
    node.reference_flag = True
    contract.node(target).reference_flag = True
    return 1
