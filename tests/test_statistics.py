"""Tests for the statistics computer."""

import polars as pl
import pytest

from rdf_shapeminer.aggregator import DualPassAggregator
from rdf_shapeminer.config import ExtractionConfig
from rdf_shapeminer.source import TripleSource
from rdf_shapeminer.statistics import StatisticsComputer, ShapeStatistics
from rdf_shapeminer.storage import (
    EntitySummaryStore,
    InvariantViolation,
    RDF_TYPE,
    XSD_STRING,
)

EX = "http://example.org/"


def iri(name: str) -> str:
    return f"<{EX}{name}>"


def a(entity: str, cls: str) -> str:
    return f"{iri(entity)} <{RDF_TYPE}> {iri(cls)} ."


def people(total: int, with_email: int) -> list[str]:
    lines = []
    for i in range(total):
        lines.append(a(f"p{i}", "Person"))
        if i < with_email:
            lines.append(f'{iri(f"p{i}")} {iri("email")} "p{i}@example.org" .')
    return lines


def aggregate(lines, **config_kwargs) -> DualPassAggregator:
    aggregator = DualPassAggregator(ExtractionConfig(**config_kwargs))
    return aggregator.aggregate(TripleSource.from_lines(lines))


class TestStatisticsComputer:
    """Tests for StatisticsComputer."""

    def test_fan_out(self):
        """3 classes x 2 object types -> 6 buckets."""
        store = EntitySummaryStore()
        summary = store.get_or_create("<e>")
        for cls in (0, 1, 2):
            summary.add_class(cls)
        summary.add_property_constraint(10, [20, 21])

        stats = StatisticsComputer().compute(store, {0: 1, 1: 1, 2: 1})

        assert len(stats) == 6
        assert set(stats.triplet_counts.values()) == {1}
        assert stats.property_counts == {(0, 10): 1, (1, 10): 1, (2, 10): 1}

    def test_untyped_entities_are_ignored(self):
        store = EntitySummaryStore()
        store.get_or_create("<e>").add_property_constraint(10, [20])
        stats = StatisticsComputer().compute(store, {})
        assert len(stats) == 0

    def test_counts_and_support(self):
        aggregator = aggregate(people(100, 60))
        stats = StatisticsComputer().compute(aggregator.store, aggregator.class_counts)

        person = aggregator.encoder.lookup(f"{EX}Person")
        email = aggregator.encoder.lookup(f"{EX}email")
        string = aggregator.encoder.lookup(XSD_STRING)

        assert stats.count(person, email, string) == 60
        assert stats.support(person, email, string) == pytest.approx(0.6)
        assert stats.property_support(person, email) == pytest.approx(0.6)

    def test_support_bound(self):
        """Every nonzero statistic has support in (0, 1]."""
        lines = people(10, 7) + [
            a("p0", "Employee"),
            a("p1", "Employee"),
            f'{iri("p0")} {iri("name")} "Zero"@en .',
            f'{iri("p1")} {iri("manager")} {iri("p0")} .',
        ]
        aggregator = aggregate(lines)
        stats = StatisticsComputer().compute(aggregator.store, aggregator.class_counts)

        assert len(stats) > 0
        for (cls, prop, obj), count in stats.triplet_counts.items():
            assert 0 < count / aggregator.class_counts[cls] <= 1
            assert 0 < stats.support(cls, prop, obj) <= 1

    def test_max_cardinality(self):
        lines = [
            a("a", "Person"),
            a("b", "Person"),
            f'{iri("a")} {iri("phone")} "1" .',
            f'{iri("a")} {iri("phone")} "2" .',
            f'{iri("a")} {iri("phone")} "3" .',
            f'{iri("b")} {iri("phone")} "4" .',
            f'{iri("b")} {iri("name")} "B" .',
        ]
        aggregator = aggregate(lines, track_cardinality=True)
        stats = StatisticsComputer(track_cardinality=True).compute(
            aggregator.store, aggregator.class_counts
        )
        person = aggregator.encoder.lookup(f"{EX}Person")
        phone = aggregator.encoder.lookup(f"{EX}phone")
        name = aggregator.encoder.lookup(f"{EX}name")

        assert stats.max_cardinality[(person, phone)] == 3
        assert stats.max_cardinality[(person, name)] == 1

    def test_max_cardinality_off(self):
        aggregator = aggregate(people(3, 3), track_cardinality=True)
        stats = StatisticsComputer().compute(aggregator.store, aggregator.class_counts)
        assert stats.max_cardinality == {}

    def test_count_above_class_count_is_invariant_violation(self):
        store = EntitySummaryStore()
        summary = store.get_or_create("<e>")
        summary.add_class(0)
        summary.add_property_constraint(10, [20])

        with pytest.raises(InvariantViolation):
            StatisticsComputer().compute(store, {0: 0})


class TestShapeStatistics:
    """Tests for ShapeStatistics helpers."""

    def test_missing_combination(self):
        stats = ShapeStatistics(class_counts={0: 4})
        assert stats.count(0, 1, 2) == 0
        assert stats.support(0, 1, 2) == 0.0
        assert stats.support(9, 1, 2) == 0.0

    def test_to_dataframe_decoded(self):
        aggregator = aggregate(people(4, 2))
        stats = StatisticsComputer().compute(aggregator.store, aggregator.class_counts)

        df = stats.to_dataframe(aggregator.encoder)

        assert df.height == 1
        row = df.row(0, named=True)
        assert row["class"] == f"{EX}Person"
        assert row["property"] == f"{EX}email"
        assert row["object_type"] == XSD_STRING
        assert row["count"] == 2
        assert row["class_count"] == 4
        assert row["support"] == pytest.approx(0.5)

    def test_to_dataframe_empty(self):
        df = ShapeStatistics().to_dataframe()
        assert df.height == 0
        assert df.schema["support"] == pl.Float64
