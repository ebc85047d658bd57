"""
Symbolic encoding of a signature contract as a Z3 relation.

The contract becomes a formula over integer variables arg1..argN and ret,
where every concrete type name is interned to an integer id. A typed
transition constrains its position to the type's id; a reference transition
constrains it to equal the argument it refers to. The formula holds exactly
for the (args, ret) tuples the automaton recognises, which makes it usable
both as a contract relation R_f for symbolic analysis and as an oracle for
checking that minimization/compression preserved the recognised set.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import z3

from ..contracts.builder import SignatureContract
from ..contracts.schema import TypedTransition
from ..signature import Signature

logger = logging.getLogger(__name__)


class TypeTable:
    """Interns type names to stable integer ids (first seen = 0)."""

    def __init__(self, names: Iterable[str] = ()):
        self._ids: Dict[str, int] = {}
        self._names: List[str] = []
        for name in names:
            self.id_of(name)

    def id_of(self, name: str) -> int:
        type_id = self._ids.get(name)
        if type_id is None:
            type_id = len(self._names)
            self._ids[name] = type_id
            self._names.append(name)
        return type_id

    def name_of(self, type_id: int) -> str:
        if 0 <= type_id < len(self._names):
            return self._names[type_id]
        return f"?{type_id}"

    def __len__(self) -> int:
        return len(self._names)


@dataclass
class ContractRelation:
    """
    Z3 relation R_f ⊆ Args × Ret recognised by one contract.

    Attributes:
        formula: Holds iff (args, ret) is recognised
        args: Argument variables, args[i] is argument i+1
        ret: Return-type variable
        table: Type-name interning shared with other relations
    """
    formula: z3.BoolRef
    args: List[z3.ArithRef]
    ret: z3.ArithRef
    table: TypeTable

    def bind(self, signature: Signature) -> List[z3.BoolRef]:
        """Equalities pinning the variables to a concrete signature."""
        bindings = [
            var == self.table.id_of(type_name)
            for var, type_name in zip(self.args, signature.arg_types)
        ]
        bindings.append(self.ret == self.table.id_of(signature.return_type))
        return bindings


def encode_contract(contract: SignatureContract, table: Optional[TypeTable] = None,
                    prefix: str = "") -> ContractRelation:
    """
    Build the reachability formula of the contract's Terminal, level by level.
    """
    table = table if table is not None else TypeTable()
    args = [z3.Int(f"{prefix}arg{i}") for i in range(1, contract.arity + 1)]
    ret = z3.Int(f"{prefix}ret")
    positions = args + [ret]

    reach: Dict[int, z3.BoolRef] = {contract.start_id: z3.BoolVal(True)}
    for level, nodes in enumerate(contract.levels()):
        incoming: Dict[int, List[z3.BoolRef]] = {}
        for node in nodes:
            here = reach.get(node.node_id)
            if here is None:
                continue
            var = positions[level]
            for key, target in node.sorted_transitions():
                if isinstance(key, TypedTransition):
                    condition = var == table.id_of(key.type_name)
                else:
                    condition = var == args[key.level - 1]
                incoming.setdefault(target, []).append(z3.And(here, condition))
        for target, terms in incoming.items():
            reach[target] = terms[0] if len(terms) == 1 else z3.Or(terms)

    formula = reach.get(contract.terminal_id, z3.BoolVal(False))
    return ContractRelation(formula=formula, args=args, ret=ret, table=table)


def symbolic_accepts(contract: SignatureContract, signature: Signature) -> bool:
    """Check with Z3 whether the contract's relation admits the signature."""
    if signature.arity != contract.arity:
        return False
    relation = encode_contract(contract)
    solver = z3.Solver()
    solver.add(relation.formula)
    solver.add(*relation.bind(signature))
    return solver.check() == z3.sat


def distinguishing_signature(a: SignatureContract, b: SignatureContract,
                             timeout_ms: int = 10000) -> Optional[Signature]:
    """
    A signature recognised by exactly one of the two contracts, or None if
    Z3 proves they recognise the same set.

    Raises:
        ValueError: different arities, or Z3 could not decide in time
    """
    if a.arity != b.arity:
        raise ValueError(f"cannot compare contracts of arity {a.arity} and {b.arity}")

    table = TypeTable()
    rel_a = encode_contract(a, table)
    rel_b = encode_contract(b, table)

    solver = z3.Solver()
    solver.set("timeout", int(timeout_ms))
    solver.add(z3.Xor(rel_a.formula, rel_b.formula))
    result = solver.check()
    if result == z3.unsat:
        return None
    if result == z3.unknown:
        raise ValueError(f"equivalence undecided: {solver.reason_unknown()}")

    model = solver.model()
    arg_types = [
        table.name_of(model.eval(var, model_completion=True).as_long())
        for var in rel_a.args
    ]
    return_type = table.name_of(model.eval(rel_a.ret, model_completion=True).as_long())
    return Signature.of(arg_types, return_type)


def equivalent(a: SignatureContract, b: SignatureContract, timeout_ms: int = 10000) -> bool:
    """True iff Z3 proves both contracts recognise exactly the same signatures."""
    if a.arity != b.arity:
        return False
    try:
        witness = distinguishing_signature(a, b, timeout_ms)
    except ValueError as e:
        logger.warning("contract equivalence not established: %s", e)
        return False
    if witness is not None:
        logger.debug("contracts differ on %s -> %s", witness.arg_types, witness.return_type)
    return witness is None
