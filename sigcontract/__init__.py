"""
sigcontract: compact call-signature contracts from observed invocations.

Folds a stream of concrete calls (argument types plus return type) into a
layered automaton per call site, then shrinks it:
1. Minimization: merge nodes with identical outgoing behaviour, level by level
2. Compression: when a later position always repeats an earlier argument's
   type, replace the typed transition with a back-reference to that argument

The recognised set of signatures is never changed by either step.
"""

from sigcontract.errors import (
    ContractError,
    InvalidSignatureError,
    InvariantViolationError,
    MismatchedArityError,
)
from sigcontract.signature import MethodInfo, ParameterInfo, ParamKind, Signature
from sigcontract.contracts import (
    ContractRegistry,
    SignatureContract,
    add_signature,
    compress,
    create_contract,
    minimize,
)

__version__ = "0.1.0"

__all__ = [
    "ContractError",
    "InvalidSignatureError",
    "InvariantViolationError",
    "MismatchedArityError",
    "MethodInfo",
    "ParameterInfo",
    "ParamKind",
    "Signature",
    "ContractRegistry",
    "SignatureContract",
    "add_signature",
    "compress",
    "create_contract",
    "minimize",
]
