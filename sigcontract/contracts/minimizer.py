"""
Level-local minimization of a signature contract.

Levels are processed bottom-up, from the return layer back toward Start, so
that when a level is examined every transition out of it already points at a
canonical representative of the level below. Two nodes of one level are
equivalent iff their transition maps (key -> target id) are identical.

Start and Terminal are never merged away. Minimality is level-local only.
"""

from typing import Dict, List

from .builder import SignatureContract


def minimize(contract: SignatureContract) -> int:
    """
    Merge behaviourally identical nodes, level by level.

    Returns:
        Number of nodes removed

    Raises:
        InvariantViolationError: the graph is inconsistent before or after
    """
    contract.check_invariants()
    removed = 0

    for level in range(contract.arity, 0, -1):
        representatives = _merge_level(contract, level)
        if not representatives:
            continue

        for parent_id in contract._level_ids(level - 1):
            parent = contract.node(parent_id)
            for key, target in list(parent.transitions.items()):
                if target in representatives:
                    parent.transitions[key] = representatives[target]

        for node_id in representatives:
            contract._drop_node(node_id)
        removed += len(representatives)

    contract.check_invariants()
    return removed


def _merge_level(contract: SignatureContract, level: int) -> Dict[int, int]:
    """
    Partition one level into equivalence classes.

    Returns:
        Mapping from every redundant node id to its class representative
        (first-seen in level order). The level list keeps only representatives.
    """
    classes: Dict[frozenset, int] = {}
    redundant: Dict[int, int] = {}
    kept: List[int] = []

    for node_id in contract._level_ids(level):
        node = contract.node(node_id)
        behaviour = node.signature_key()
        representative_id = classes.get(behaviour)
        if representative_id is None:
            classes[behaviour] = node_id
            kept.append(node_id)
            continue

        representative = contract.node(representative_id)
        representative.mask &= node.mask
        representative.reference_flag = representative.reference_flag or node.reference_flag
        redundant[node_id] = representative_id

    if redundant:
        contract._set_level_ids(level, kept)
    return redundant
