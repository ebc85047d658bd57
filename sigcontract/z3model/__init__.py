"""
Z3 models of contract automata.
"""

from sigcontract.z3model.relation import (
    ContractRelation,
    TypeTable,
    distinguishing_signature,
    encode_contract,
    equivalent,
    symbolic_accepts,
)

__all__ = [
    "ContractRelation",
    "TypeTable",
    "distinguishing_signature",
    "encode_contract",
    "equivalent",
    "symbolic_accepts",
]
