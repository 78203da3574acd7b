"""
Support statistics for shape constraints.

Counts, for every observed (class, property, object type) combination, how
many instances of the class exhibit it. Only combinations that were
actually observed get a counter, so the work is bounded by the number of
entity x class x property x object type observations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Mapping, Optional

import polars as pl

from rdf_shapeminer.storage.entities import EntitySummaryStore
from rdf_shapeminer.storage.terms import InvariantViolation, Symbol, SymbolEncoder

logger = logging.getLogger(__name__)

# (class, property, object type)
ShapeTriplet = tuple[Symbol, Symbol, Symbol]
# (class, property)
ClassProperty = tuple[Symbol, Symbol]


@dataclass
class ShapeStatistics:
    """
    Entity counts backing each candidate constraint.

    Attributes:
        triplet_counts: (class, property, object type) -> entities of the class
            with at least one such triple
        property_counts: (class, property) -> entities of the class using the
            property with any object type
        max_cardinality: (class, property) -> largest per-entity occurrence
            count; empty when cardinality tracking is off
        class_counts: class -> number of instances
    """
    triplet_counts: dict[ShapeTriplet, int] = field(default_factory=dict)
    property_counts: dict[ClassProperty, int] = field(default_factory=dict)
    max_cardinality: dict[ClassProperty, int] = field(default_factory=dict)
    class_counts: Mapping[Symbol, int] = field(default_factory=dict)

    def count(self, class_symbol: Symbol, property_symbol: Symbol, object_type: Symbol) -> int:
        return self.triplet_counts.get((class_symbol, property_symbol, object_type), 0)

    def support(self, class_symbol: Symbol, property_symbol: Symbol, object_type: Symbol) -> float:
        """Fraction of the class's instances exhibiting the combination."""
        instances = self.class_counts.get(class_symbol, 0)
        if instances == 0:
            return 0.0
        return self.count(class_symbol, property_symbol, object_type) / instances

    def property_support(self, class_symbol: Symbol, property_symbol: Symbol) -> float:
        """Fraction of the class's instances using the property at all."""
        instances = self.class_counts.get(class_symbol, 0)
        if instances == 0:
            return 0.0
        return self.property_counts.get((class_symbol, property_symbol), 0) / instances

    def __len__(self) -> int:
        return len(self.triplet_counts)

    def to_dataframe(self, encoder: Optional[SymbolEncoder] = None) -> pl.DataFrame:
        """
        Export one row per (class, property, object type).

        With an encoder, symbols are decoded to their IRIs; otherwise the
        integer symbols are returned.
        """
        rows = []
        for (class_symbol, property_symbol, object_type), count in self.triplet_counts.items():
            instances = self.class_counts.get(class_symbol, 0)
            rows.append({
                "class": class_symbol,
                "property": property_symbol,
                "object_type": object_type,
                "count": count,
                "class_count": instances,
                "support": count / instances if instances else 0.0,
                "max_cardinality": self.max_cardinality.get((class_symbol, property_symbol)),
            })

        schema = {
            "class": pl.UInt32,
            "property": pl.UInt32,
            "object_type": pl.UInt32,
            "count": pl.UInt64,
            "class_count": pl.UInt64,
            "support": pl.Float64,
            "max_cardinality": pl.UInt64,
        }
        df = pl.DataFrame(rows, schema=schema)
        if encoder is None:
            return df.sort(["class", "property", "object_type"])

        decode = encoder.decode
        return df.with_columns(
            pl.col("class").map_elements(decode, return_dtype=pl.Utf8),
            pl.col("property").map_elements(decode, return_dtype=pl.Utf8),
            pl.col("object_type").map_elements(decode, return_dtype=pl.Utf8),
        ).sort(["class", "property", "object_type"])


class StatisticsComputer:
    """
    Fans every entity's observations out over its classes.

    An entity with 3 classes and a property with 2 object types contributes
    to 6 triplet counters.
    """

    def __init__(self, track_cardinality: bool = False):
        self.track_cardinality = track_cardinality

    def compute(
        self,
        store: EntitySummaryStore,
        class_counts: Mapping[Symbol, int],
    ) -> ShapeStatistics:
        """
        Compute the statistics.

        Raises:
            InvariantViolation: if a count exceeds its class's instance count
        """
        triplet_counts: dict[ShapeTriplet, int] = {}
        property_counts: dict[ClassProperty, int] = {}
        max_cardinality: dict[ClassProperty, int] = {}
        track_cardinality = self.track_cardinality

        for summary in store.values():
            if not summary.class_types or not summary.property_constraints:
                continue
            for class_symbol in summary.class_types:
                for property_symbol, object_types in summary.property_constraints.items():
                    key = (class_symbol, property_symbol)
                    property_counts[key] = property_counts.get(key, 0) + 1
                    for object_type in object_types:
                        triplet = (class_symbol, property_symbol, object_type)
                        triplet_counts[triplet] = triplet_counts.get(triplet, 0) + 1
                    if track_cardinality:
                        cardinality = summary.property_cardinality.get(property_symbol, 0)
                        if cardinality > max_cardinality.get(key, 0):
                            max_cardinality[key] = cardinality

        statistics = ShapeStatistics(
            triplet_counts=triplet_counts,
            property_counts=property_counts,
            max_cardinality=max_cardinality,
            class_counts=class_counts,
        )
        self._check_bounds(statistics)
        logger.info(
            f"Computed {len(triplet_counts):,} shape triplet statistics "
            f"over {len(class_counts):,} classes"
        )
        return statistics

    def _check_bounds(self, statistics: ShapeStatistics) -> None:
        class_counts = statistics.class_counts
        for (class_symbol, property_symbol), count in statistics.property_counts.items():
            instances = class_counts.get(class_symbol, 0)
            if count > instances:
                raise InvariantViolation(
                    f"{count} entities use property {property_symbol} but class "
                    f"{class_symbol} has only {instances} instances"
                )
        for (class_symbol, property_symbol, object_type), count in statistics.triplet_counts.items():
            if count > statistics.property_counts.get((class_symbol, property_symbol), 0):
                raise InvariantViolation(
                    f"Statistic for ({class_symbol}, {property_symbol}, {object_type}) "
                    f"exceeds its property count"
                )
