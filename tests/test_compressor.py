"""
Tests for mask-driven compression.

Compression turns repeated-type evidence into ReferenceTransitions and then
minimizes; the recognised signature set must not change.
"""

import itertools

import pytest
from sigcontract import (
    InvariantViolationError,
    Signature,
    SignatureContract,
    add_signature,
    compress,
    create_contract,
)
from sigcontract.contracts import ReferenceTransition, TypedTransition


def build(*rows):
    contract = create_contract(Signature.of(*rows[0]))
    for args, ret in rows[1:]:
        add_signature(contract, Signature.of(args, ret))
    return contract


def keys_of(contract):
    return [key for _, key, _ in contract.iter_transitions()]


SCENARIO = [
    (["Integer", "Integer"], "Integer"),
    (["Integer", "String"], "String"),
    (["String", "String"], "String"),
]


class TestScenario:

    def test_node_and_transition_counts(self):
        contract = build(*SCENARIO)

        rewritten = compress(contract)

        assert rewritten == 3
        assert contract.node_count == 5
        assert contract.transition_count == 6

    def test_return_transitions_become_references(self):
        contract = build(*SCENARIO)
        compress(contract)

        references = [
            (source, target)
            for source, key, target in contract.iter_transitions()
            if key == ReferenceTransition(2)
        ]
        assert len(references) == 1
        source, target = references[0]
        assert target == contract.terminal_id
        assert contract.node(source).reference_flag
        assert contract.node(target).reference_flag

    def test_first_argument_stays_typed(self):
        contract = build(*SCENARIO)
        compress(contract)

        start = contract.node(contract.start_id)
        assert set(start.transitions) == {TypedTransition("Integer"), TypedTransition("String")}

    def test_recognised_set_is_preserved(self):
        contract = build(*SCENARIO)
        compress(contract)

        for args, ret in SCENARIO:
            assert contract.resolve(args) == {ret}
        assert contract.resolve(["String", "Integer"]) == frozenset()
        assert contract.resolve(["Integer", "Float"]) == frozenset()


class TestIdentity:

    def test_identity_traces_share_one_reference(self):
        contract = build((["Integer"], "Integer"), (["String"], "String"), (["Float"], "Float"))

        compress(contract)

        assert contract.node_count == 3
        assert contract.transition_count == 4
        assert keys_of(contract).count(ReferenceTransition(1)) == 1
        assert contract.resolve(["String"]) == {"String"}
        assert contract.resolve(["Bytes"]) == frozenset()

    def test_single_child_root_is_compressed(self):
        contract = build(*[(["Integer"], "Integer")] * 3)

        compress(contract)

        assert contract.node_count == 3
        assert contract.transition_count == 2
        assert ReferenceTransition(1) in keys_of(contract)
        assert contract.resolve(["Integer"]) == {"Integer"}

    def test_no_repetition_no_rewrite(self):
        contract = build((["Integer"], "String"), (["Float"], "Bytes"))
        before = contract.to_dict()

        assert compress(contract) == 0
        assert contract.to_dict() == before


class TestDeepChain:
    """(T, T, T) -> T for two types T."""

    def rows(self):
        return [(["Integer"] * 3, "Integer"), (["String"] * 3, "String")]

    def test_chain_collapses(self):
        contract = build(*self.rows())
        assert (contract.node_count, contract.transition_count) == (8, 8)

        assert compress(contract) == 6

        assert (contract.node_count, contract.transition_count) == (5, 5)
        after_first = contract.node(contract.start_id).transitions[TypedTransition("Integer")]
        assert set(contract.node(after_first).transitions) == {ReferenceTransition(1)}

    def test_references_enforce_equality(self):
        contract = build(*self.rows())
        compress(contract)

        assert contract.resolve(["String"] * 3) == {"String"}
        assert contract.resolve(["Integer", "String", "String"]) == frozenset()
        assert sorted(s.arg_types for s in contract.signatures()) == [
            ("Integer",) * 3,
            ("String",) * 3,
        ]


def test_compress_is_stable():
    contract = build(*SCENARIO)
    compress(contract)
    snapshot = contract.to_dict()

    assert compress(contract) == 0
    assert contract.to_dict() == snapshot


def test_compression_preserves_every_answer():
    rows = [
        (["int", "int", "int"], "int"),
        (["str", "str", "str"], "str"),
        (["int", "str", "int"], "int"),
        (["float", "float", "int"], "float"),
        (["str", "int", "int"], "NoneType"),
        (["str", "int", "int"], "str"),
    ]
    contract = build(*rows)
    queries = [list(q) for q in itertools.product(["int", "str", "float"], repeat=3)]
    before = {tuple(q): contract.resolve(q) for q in queries}

    compress(contract)

    assert {tuple(q): contract.resolve(q) for q in queries} == before
    contract.check_invariants()


def test_conflicting_reference_raises():
    """A node already holding Ref(1) to another target cannot absorb a typed edge."""
    raw = {
        "arity": 2,
        "counter": 1,
        "params": [{"name": "arg0"}, {"name": "arg1"}],
        "start": 0,
        "terminal": 1,
        "nodes": [
            {"id": 0, "level": 0, "kind": "start", "mask": 0,
             "transitions": [{"type": "Integer", "target": 2}]},
            {"id": 1, "level": 3, "kind": "terminal", "mask": 0, "transitions": []},
            {"id": 2, "level": 1, "kind": "arg", "mask": 0b111,
             "transitions": [{"ref": 1, "target": 3}, {"type": "Integer", "target": 4}]},
            {"id": 3, "level": 2, "kind": "return", "mask": 0b01,
             "transitions": [{"type": "Integer", "target": 1}]},
            {"id": 4, "level": 2, "kind": "return", "mask": 0b01,
             "transitions": [{"type": "String", "target": 1}]},
        ],
    }
    contract = SignatureContract.from_dict(raw)

    with pytest.raises(InvariantViolationError):
        compress(contract)
