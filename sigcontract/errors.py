"""
Error kinds raised by the contract automaton.

All errors are local and non-retryable: the automaton is a pure in-memory
structure, so there is nothing to retry against. The core raises these and
never logs them; logging is the caller's job (registry, loader, CLI).
"""

from typing import Optional


class ContractError(Exception):
    """Base class for every error raised by sigcontract."""


class InvalidSignatureError(ContractError, ValueError):
    """A Signature is malformed (missing or non-string type symbol, etc.)."""


class MismatchedArityError(ContractError, ValueError):
    """
    A Signature's argument count differs from the contract's fixed arity.

    Raised before any node is touched, so the contract is left unchanged.
    """

    def __init__(self, expected: int, actual: int, message: Optional[str] = None):
        self.expected = expected
        self.actual = actual
        super().__init__(
            message or f"contract expects {expected} argument(s), signature has {actual}"
        )


class InvariantViolationError(ContractError, RuntimeError):
    """
    A structural invariant of the automaton is broken.

    This signals a programming defect, not a recoverable condition.
    """
