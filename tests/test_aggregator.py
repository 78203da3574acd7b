"""
Tests for the dual-pass aggregator.
"""

import random

import pytest

from rdf_shapeminer.aggregator import DualPassAggregator
from rdf_shapeminer.config import ExtractionConfig
from rdf_shapeminer.context import (
    CancellationToken,
    ExtractionCancelledException,
    ExtractionContext,
)
from rdf_shapeminer.source import TripleSource
from rdf_shapeminer.storage import RDF_LANGSTRING, RDF_TYPE, XSD_STRING, ValueKind

EX = "http://example.org/"
XSD_INTEGER = "http://www.w3.org/2001/XMLSchema#integer"


def iri(name: str) -> str:
    return f"<{EX}{name}>"


def line(s: str, p: str, o: str) -> str:
    return f"{s} {p} {o} ."


def a(entity: str, cls: str) -> str:
    return line(iri(entity), f"<{RDF_TYPE}>", iri(cls))


def run(lines, **config_kwargs) -> DualPassAggregator:
    aggregator = DualPassAggregator(ExtractionConfig(**config_kwargs))
    aggregator.aggregate(TripleSource.from_lines(lines))
    return aggregator


def decoded_index(aggregator):
    decode = aggregator.encoder.decode
    return {
        decode(c): {decode(p): {decode(t) for t in types} for p, types in props.items()}
        for c, props in aggregator.index.items()
    }


def decoded_counts(aggregator):
    return {aggregator.encoder.decode(c): n for c, n in aggregator.class_counts.items()}


def decoded_constraints(aggregator, entity):
    decode = aggregator.encoder.decode
    summary = aggregator.store.get(iri(entity))
    if summary is None:
        return {}
    return {
        decode(p): {decode(t) for t in types}
        for p, types in summary.property_constraints.items()
    }


def decoded_cardinality(aggregator, entity):
    decode = aggregator.encoder.decode
    summary = aggregator.store.get(iri(entity))
    return {decode(p): n for p, n in summary.property_cardinality.items()}


SAMPLE = [
    a("paris", "City"),
    a("paris", "Capital"),
    a("lyon", "City"),
    a("alice", "Person"),
    a("bob", "Person"),
    line(iri("paris"), iri("population"), '"2M"'),
    line(iri("lyon"), iri("population"), f'"500000"^^<{XSD_INTEGER}>'),
    line(iri("alice"), iri("livesIn"), iri("paris")),
    line(iri("bob"), iri("livesIn"), iri("lyon")),
    line(iri("alice"), iri("name"), '"Alice"@en'),
    line(iri("bob"), iri("knows"), iri("alice")),
    line(iri("bob"), iri("knows"), iri("carol")),
]


# ============================================================================
# Membership Pass
# ============================================================================

class TestMembershipPass:
    """Pass 1: class memberships and instance counts."""

    def test_class_counts(self):
        aggregator = run(SAMPLE)
        assert decoded_counts(aggregator) == {
            f"{EX}City": 2, f"{EX}Capital": 1, f"{EX}Person": 2,
        }

    def test_class_symbols_are_bare_iris(self):
        aggregator = run(SAMPLE)
        assert aggregator.encoder.lookup(f"{EX}City") is not None
        assert aggregator.encoder.lookup(f"<{EX}City>") is None

    def test_duplicate_typing_triple_counts_once(self):
        aggregator = run([a("paris", "City"), a("paris", "City")])
        assert decoded_counts(aggregator) == {f"{EX}City": 1}

    def test_custom_type_predicate(self):
        """Scenario A: a custom typing predicate."""
        lines = [
            line(iri("Paris"), iri("isA"), iri("City")),
            line(iri("Paris"), iri("isA"), iri("Capital")),
            line(iri("Paris"), iri("population"), '"2M"'),
        ]
        aggregator = run(lines, type_predicate=f"{EX}isA")

        assert decoded_counts(aggregator) == {f"{EX}City": 1, f"{EX}Capital": 1}
        index = decoded_index(aggregator)
        assert index[f"{EX}City"] == {f"{EX}population": {XSD_STRING}}
        assert index[f"{EX}Capital"] == {f"{EX}population": {XSD_STRING}}

    @pytest.mark.parametrize("workers", [1, 2])
    def test_literal_type_object_is_not_a_class(self, workers):
        lines = [
            a("paris", "City"),
            line(iri("paris"), f"<{RDF_TYPE}>", '"City"'),
            line(iri("lyon"), f"<{RDF_TYPE}>", '"Town"@en'),
        ]
        aggregator = run(lines, workers=workers, chunk_lines=1)

        assert decoded_counts(aggregator) == {f"{EX}City": 1}
        assert aggregator.encoder.lookup('"City"') is None
        assert not aggregator.store.classes_of(iri("lyon"))
        assert aggregator.stats()["ignored_typing_triples"] == 2

    def test_type_predicate_in_angle_brackets(self):
        config = ExtractionConfig(type_predicate=f"<{EX}isA>")
        assert config.type_predicate == f"{EX}isA"


# ============================================================================
# Constraint Pass
# ============================================================================

class TestConstraintPass:
    """Pass 2: per-entity constraints and the class property index."""

    def test_literal_datatypes(self):
        aggregator = run(SAMPLE)
        assert decoded_constraints(aggregator, "paris") == {f"{EX}population": {XSD_STRING}}
        assert decoded_constraints(aggregator, "lyon") == {f"{EX}population": {XSD_INTEGER}}
        assert decoded_constraints(aggregator, "alice")[f"{EX}name"] == {RDF_LANGSTRING}

    def test_datatype_symbols_recorded(self):
        aggregator = run(SAMPLE)
        datatypes = {aggregator.encoder.decode(s) for s in aggregator.datatype_symbols}
        assert datatypes == {XSD_STRING, XSD_INTEGER, RDF_LANGSTRING}

    def test_object_with_several_classes(self):
        """Scenario B: every class of the object is recorded."""
        aggregator = run(SAMPLE)
        assert decoded_constraints(aggregator, "alice")[f"{EX}livesIn"] == {
            f"{EX}City", f"{EX}Capital",
        }
        index = decoded_index(aggregator)
        assert index[f"{EX}Person"][f"{EX}livesIn"] == {f"{EX}City", f"{EX}Capital"}

    def test_untyped_object_adds_nothing(self):
        """Scenario D: an untyped reference contributes no evidence."""
        lines = [
            a("x", "Person"),
            line(iri("x"), iri("knows"), iri("ghost")),
        ]
        aggregator = run(lines)
        assert decoded_constraints(aggregator, "x") == {}
        assert f"{EX}Person" not in decoded_index(aggregator)

    def test_untyped_object_leaves_existing_index_alone(self):
        aggregator = run(SAMPLE)
        # bob knows carol (untyped) and alice (Person)
        assert decoded_constraints(aggregator, "bob")[f"{EX}knows"] == {f"{EX}Person"}
        assert decoded_index(aggregator)[f"{EX}Person"][f"{EX}knows"] == {f"{EX}Person"}

    def test_untyped_subject_gets_summary_but_no_index_entry(self):
        lines = [line(iri("thing"), iri("label"), '"x"')]
        aggregator = run(lines)
        assert decoded_constraints(aggregator, "thing") == {f"{EX}label": {XSD_STRING}}
        assert len(aggregator.index) == 0

    def test_typing_triples_are_not_constraints(self):
        aggregator = run(SAMPLE)
        assert aggregator.encoder.lookup(RDF_TYPE) is None
        for properties in decoded_index(aggregator).values():
            assert RDF_TYPE not in properties

    def test_blank_node_objects_are_references(self):
        lines = [
            "_:addr <%s> <%sAddress> ." % (RDF_TYPE, EX),
            a("alice", "Person"),
            line(iri("alice"), iri("address"), "_:addr"),
        ]
        aggregator = run(lines)
        assert decoded_constraints(aggregator, "alice") == {f"{EX}address": {f"{EX}Address"}}

    def test_value_kinds_recorded(self):
        lines = SAMPLE + [
            "_:addr <%s> <%sAddress> ." % (RDF_TYPE, EX),
            line(iri("alice"), iri("address"), "_:addr"),
        ]
        aggregator = run(lines)
        enc = aggregator.encoder.lookup
        person = enc(f"{EX}Person")

        assert aggregator.index.value_kind(
            person, enc(f"{EX}livesIn"), enc(f"{EX}City")
        ) == ValueKind.IRI
        assert aggregator.index.value_kind(
            person, enc(f"{EX}address"), enc(f"{EX}Address")
        ) == ValueKind.BLANK_NODE
        assert aggregator.index.value_kind(
            person, enc(f"{EX}name"), enc(RDF_LANGSTRING)
        ) == ValueKind.LITERAL

    def test_second_pass_requires_first(self):
        aggregator = DualPassAggregator()
        with pytest.raises(RuntimeError):
            aggregator.second_pass(TripleSource.from_lines(SAMPLE))


# ============================================================================
# Cardinality
# ============================================================================

class TestCardinality:
    """Per-entity property occurrence counters."""

    def test_disabled_by_default(self):
        aggregator = run(SAMPLE)
        assert aggregator.store.get(iri("bob")).property_cardinality == {}

    def test_one_increment_per_triple(self):
        """An object with two classes still counts as one occurrence."""
        aggregator = run(SAMPLE, track_cardinality=True)
        assert decoded_cardinality(aggregator, "alice")[f"{EX}livesIn"] == 1

    def test_untyped_reference_is_not_counted(self):
        aggregator = run(SAMPLE, track_cardinality=True)
        assert decoded_cardinality(aggregator, "bob")[f"{EX}knows"] == 1

    def test_duplicate_lines(self):
        """Duplicates leave the index unchanged but count as raw occurrences."""
        single = run(SAMPLE, track_cardinality=True)
        doubled = run(SAMPLE + [SAMPLE[5], SAMPLE[0]], track_cardinality=True)

        assert decoded_index(single) == decoded_index(doubled)
        assert decoded_counts(single) == decoded_counts(doubled)
        assert decoded_cardinality(doubled, "paris")[f"{EX}population"] == 2
        assert decoded_cardinality(single, "paris")[f"{EX}population"] == 1


# ============================================================================
# Ordering and Sharding
# ============================================================================

class TestDeterminism:
    """Order independence and sharded passes."""

    def test_line_order_does_not_matter(self):
        expected = run(SAMPLE, track_cardinality=True)
        shuffled = list(SAMPLE)
        random.Random(7).shuffle(shuffled)
        actual = run(shuffled, track_cardinality=True)

        assert decoded_index(actual) == decoded_index(expected)
        assert decoded_counts(actual) == decoded_counts(expected)
        for entity in ("paris", "lyon", "alice", "bob"):
            assert decoded_constraints(actual, entity) == decoded_constraints(expected, entity)

    @pytest.mark.parametrize("chunk_lines", [1, 2, 5])
    def test_parallel_matches_sequential(self, chunk_lines):
        sequential = run(SAMPLE, track_cardinality=True)
        parallel = run(
            SAMPLE + [a("paris", "City")],
            track_cardinality=True,
            workers=3,
            chunk_lines=chunk_lines,
        )

        assert decoded_counts(parallel) == decoded_counts(sequential)
        assert decoded_index(parallel) == decoded_index(sequential)
        for entity in ("paris", "lyon", "alice", "bob"):
            assert decoded_constraints(parallel, entity) == decoded_constraints(sequential, entity)
            assert decoded_cardinality(parallel, entity) == decoded_cardinality(sequential, entity)


# ============================================================================
# Errors and Cancellation
# ============================================================================

class TestErrors:
    """Malformed input and cancellation."""

    def test_malformed_lines_are_skipped(self):
        lines = SAMPLE[:6] + [
            "this is not a triple",
            f"<{EX}x> <{RDF_TYPE}> .",
        ] + SAMPLE[6:]
        aggregator = run(lines)

        assert decoded_counts(aggregator) == decoded_counts(run(SAMPLE))
        assert decoded_index(aggregator) == decoded_index(run(SAMPLE))
        # Pass 1 only tokenizes the line mentioning rdf:type, pass 2 sees both
        assert aggregator.errors.count == 3
        assert {e.line_number for e in aggregator.errors.samples} == {7, 8}

    def test_error_samples_are_bounded(self):
        aggregator = run(["garbage"] * 20, max_recorded_errors=5)
        assert aggregator.errors.count == 20
        assert len(aggregator.errors.samples) == 5

    def test_parallel_errors_are_merged(self):
        aggregator = run(SAMPLE + ["garbage"] * 4, workers=2, chunk_lines=3)
        assert aggregator.errors.count == 4

    def test_cancellation(self):
        token = CancellationToken()
        token.cancel()
        aggregator = DualPassAggregator(
            ExtractionConfig(check_interval=1),
            context=ExtractionContext(cancellation_token=token),
        )
        with pytest.raises(ExtractionCancelledException):
            aggregator.first_pass(TripleSource.from_lines(SAMPLE))

    def test_parallel_cancellation(self):
        token = CancellationToken()
        token.cancel()
        aggregator = DualPassAggregator(
            ExtractionConfig(workers=2, chunk_lines=2),
            context=ExtractionContext(cancellation_token=token),
        )
        with pytest.raises(ExtractionCancelledException):
            aggregator.first_pass(TripleSource.from_lines(SAMPLE))

    def test_stats(self):
        aggregator = run(SAMPLE)
        stats = aggregator.stats()
        assert stats["typed_entities"] == 4
        assert stats["classes"] == 3
        assert stats["skipped_lines"] == 0
        assert aggregator.completed
