"""
In-memory registry of contracts, one per traced method.

The registry is the ingestion-side caller of the automaton: it decides which
contract a signature belongs to, creates contracts on first sight, and logs
(rather than propagates) signatures that cannot be folded in.
"""

import logging
from typing import Dict, Iterable, List, Optional, Sequence

from ..errors import ContractError
from ..signature import MethodInfo, Signature
from .builder import SignatureContract

logger = logging.getLogger(__name__)

DEFAULT_FILTERED_PREFIXES = ("#<",)


class ContractRegistry:
    """
    Maps MethodInfo -> SignatureContract.

    Constructed explicitly and passed around; there is no process-wide
    instance.
    """

    def __init__(self, filtered_prefixes: Sequence[str] = DEFAULT_FILTERED_PREFIXES):
        self.filtered_prefixes = tuple(filtered_prefixes)
        self._contracts: Dict[MethodInfo, SignatureContract] = {}
        self.rejected = 0

    def _is_filtered(self, method: MethodInfo) -> bool:
        return any(
            method.module.startswith(prefix) or method.qualname.startswith(prefix)
            for prefix in self.filtered_prefixes
        )

    def accept(self, signature: Signature) -> bool:
        """True if the method's contract already recognises this signature."""
        contract = self._contracts.get(signature.method)
        return (
            contract is not None
            and tuple(signature.params) == contract.params
            and contract.accepts(signature)
        )

    def add(self, signature: Signature) -> Optional[SignatureContract]:
        """
        Fold a signature into its method's contract, creating it if needed.

        Returns:
            The contract the signature went into, or None if it was rejected
        """
        method = signature.method
        if method is None:
            logger.warning("signature without method info dropped: %s", signature)
            self.rejected += 1
            return None
        if self._is_filtered(method):
            logger.debug("filtered method %s", method)
            return None

        contract = self._contracts.get(method)
        try:
            if contract is None:
                contract = SignatureContract(signature)
                self._contracts[method] = contract
                logger.debug("new contract for %s (arity %d)", method, contract.arity)
                return contract

            if (signature.arity == contract.arity and signature.params
                    and tuple(signature.params) != contract.params):
                logger.warning(
                    "parameter list of %s changed from %s to %s, signature dropped",
                    method,
                    [p.name for p in contract.params],
                    [p.name for p in signature.params],
                )
                self.rejected += 1
                return None

            contract.add_signature(signature)
        except ContractError as e:
            logger.warning("cannot add signature of %s: %s", method, e)
            self.rejected += 1
            return None
        return contract

    def add_all(self, signatures: Iterable[Signature]) -> int:
        """Returns the number of signatures folded in."""
        added = 0
        for signature in signatures:
            if self.add(signature) is not None:
                added += 1
        return added

    def compress_all(self) -> None:
        for method, contract in self._contracts.items():
            before = contract.node_count
            contract.compress()
            logger.debug("compressed %s: %d -> %d nodes", method, before, contract.node_count)

    def merge_from(self, other: 'ContractRegistry') -> None:
        """Merge every contract of `other` into this registry (copies, never aliases)."""
        for method, contract in other.items():
            mine = self._contracts.get(method)
            if mine is None:
                self._contracts[method] = contract.copy()
                continue
            try:
                mine.merge(contract)
            except ContractError as e:
                logger.warning("cannot merge contract of %s: %s", method, e)
                self.rejected += contract.counter

    def get(self, method: MethodInfo) -> Optional[SignatureContract]:
        return self._contracts.get(method)

    def methods(self) -> List[MethodInfo]:
        return sorted(self._contracts, key=str)

    def items(self):
        return [(method, self._contracts[method]) for method in self.methods()]

    def clear(self) -> None:
        self._contracts.clear()
        self.rejected = 0

    def __len__(self) -> int:
        return len(self._contracts)

    def __contains__(self, method: MethodInfo) -> bool:
        return method in self._contracts
