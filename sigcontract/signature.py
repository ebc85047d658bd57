"""
Signature records: one observed invocation of a traced function.

A Signature is the only input of the contract builder. It carries the ordered
parameter descriptors, the concrete type symbol observed for each argument,
and the type symbol of the returned value.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple

from .errors import InvalidSignatureError


class ParamKind(Enum):
    """Python parameter kinds (how the argument was bound)."""
    POSITIONAL = "positional"
    VAR_POSITIONAL = "var_positional"
    KEYWORD_ONLY = "keyword_only"
    VAR_KEYWORD = "var_keyword"


@dataclass(frozen=True)
class ParameterInfo:
    name: str
    kind: ParamKind = ParamKind.POSITIONAL

    def to_dict(self) -> Dict[str, str]:
        return {"name": self.name, "kind": self.kind.value}


@dataclass(frozen=True)
class MethodInfo:
    """Identifies a call site: defining module plus qualified name."""
    module: str
    qualname: str

    def __str__(self) -> str:
        if not self.module:
            return self.qualname
        return f"{self.module}.{self.qualname}"

    def to_dict(self) -> Dict[str, str]:
        return {"module": self.module, "qualname": self.qualname}


@dataclass(frozen=True)
class Signature:
    """
    One observed call: ordered argument types plus the return type.

    `params` may be empty when the producer does not know parameter names;
    otherwise it has one entry per argument type.
    """
    params: Tuple[ParameterInfo, ...]
    arg_types: Tuple[str, ...]
    return_type: str
    method: Optional[MethodInfo] = field(default=None, compare=False)

    @property
    def arity(self) -> int:
        return len(self.arg_types)

    @staticmethod
    def of(arg_types: Sequence[str], return_type: str,
           method: Optional[MethodInfo] = None,
           names: Optional[Sequence[str]] = None) -> 'Signature':
        """Build a signature of positional parameters (named arg0..argN-1 by default)."""
        arg_types = tuple(arg_types)
        if names is None:
            names = [f"arg{i}" for i in range(len(arg_types))]
        params = tuple(ParameterInfo(name) for name in names)
        return Signature(params=params, arg_types=arg_types,
                         return_type=return_type, method=method)

    def to_dict(self) -> Dict[str, Any]:
        params = self.params or tuple(ParameterInfo(f"arg{i}") for i in range(self.arity))
        record: Dict[str, Any] = {
            "args": [
                {"name": p.name, "kind": p.kind.value, "type": t}
                for p, t in zip(params, self.arg_types)
            ],
            "return": self.return_type,
        }
        if self.method is not None:
            record["method"] = self.method.to_dict()
        return record

    @staticmethod
    def from_dict(raw: Dict[str, Any]) -> 'Signature':
        """
        Parse a JSON-compatible record.

        Raises:
            InvalidSignatureError: missing fields or non-string type symbols
        """
        if not isinstance(raw, dict):
            raise InvalidSignatureError(f"signature record must be an object, got {type(raw).__name__}")

        args = raw.get("args", [])
        if not isinstance(args, list):
            raise InvalidSignatureError("'args' must be a list")

        params = []
        arg_types = []
        for index, arg in enumerate(args):
            if not isinstance(arg, dict):
                raise InvalidSignatureError(f"argument #{index} must be an object")
            try:
                kind = ParamKind(arg.get("kind", ParamKind.POSITIONAL.value))
            except ValueError:
                raise InvalidSignatureError(f"argument #{index} has unknown kind {arg.get('kind')!r}")
            params.append(ParameterInfo(str(arg.get("name", f"arg{index}")), kind))
            arg_types.append(arg.get("type"))

        method = None
        method_raw = raw.get("method")
        if isinstance(method_raw, dict):
            method = MethodInfo(str(method_raw.get("module", "")), str(method_raw.get("qualname", "")))
        elif isinstance(method_raw, str):
            module, _, qualname = method_raw.rpartition(".")
            method = MethodInfo(module, qualname)

        signature = Signature(params=tuple(params), arg_types=tuple(arg_types),
                              return_type=raw.get("return"), method=method)
        validate_signature(signature)
        return signature


def _is_type_symbol(value: Any) -> bool:
    return isinstance(value, str) and value != ""


def validate_signature(signature: Signature) -> None:
    """
    Check that a signature can be folded into a contract.

    Raises:
        InvalidSignatureError: a type symbol is absent/empty or the parameter
            list does not line up with the argument types
    """
    if not isinstance(signature, Signature):
        raise InvalidSignatureError(f"expected Signature, got {type(signature).__name__}")
    for position, type_name in enumerate(signature.arg_types, start=1):
        if not _is_type_symbol(type_name):
            raise InvalidSignatureError(f"argument {position} has no type symbol: {type_name!r}")
    if not _is_type_symbol(signature.return_type):
        raise InvalidSignatureError(f"return type symbol missing: {signature.return_type!r}")
    if signature.params and len(signature.params) != len(signature.arg_types):
        raise InvalidSignatureError(
            f"{len(signature.params)} parameter(s) described for {len(signature.arg_types)} argument type(s)"
        )
