"""
Signature contract automaton.

Folds observed call signatures into a layered graph, then shrinks it by
level-local minimization and mask-driven compression into back-references.
"""

from sigcontract.contracts.schema import (
    ContractNode,
    NodeKind,
    ReferenceTransition,
    Transition,
    TypedTransition,
)
from sigcontract.contracts.builder import (
    SignatureContract,
    add_signature,
    create_contract,
    redundancy_mask,
)
from sigcontract.contracts.minimizer import minimize
from sigcontract.contracts.compressor import compress
from sigcontract.contracts.registry import ContractRegistry

__all__ = [
    "ContractNode",
    "NodeKind",
    "ReferenceTransition",
    "Transition",
    "TypedTransition",
    "SignatureContract",
    "add_signature",
    "create_contract",
    "redundancy_mask",
    "minimize",
    "compress",
    "ContractRegistry",
]
