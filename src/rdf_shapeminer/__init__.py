"""
RDF-ShapeMiner: SHACL shape inference for large RDF graphs.

Streams an N-Triples source twice, aggregates integer-encoded class and
property observations, and derives support-backed shape constraints.
"""

__version__ = "0.1.0"

from rdf_shapeminer.config import ExtractionConfig, ThresholdConfig
from rdf_shapeminer.context import (
    CancellationToken,
    ExtractionCancelledException,
    ExtractionContext,
    PhaseStats,
)
from rdf_shapeminer.source import TripleSource, ParseErrorLog
from rdf_shapeminer.storage import (
    SymbolEncoder,
    InvariantViolation,
    EntitySummary,
    EntitySummaryStore,
    ClassPropertyIndex,
    ValueKind,
)
from rdf_shapeminer.aggregator import DualPassAggregator
from rdf_shapeminer.statistics import StatisticsComputer, ShapeStatistics
from rdf_shapeminer.shapes import (
    ShapeConstructor,
    NodeShape,
    PropertyShape,
    ObjectTypeConstraint,
    ObjectTypeKind,
    NodeKind,
)
from rdf_shapeminer.serialization import to_shacl_turtle, shapes_to_dict, shapes_to_dataframe
from rdf_shapeminer.pipeline import ShapeExtractor, ExtractionResult, extract_shapes

__all__ = [
    "ExtractionConfig",
    "ThresholdConfig",
    "CancellationToken",
    "ExtractionCancelledException",
    "ExtractionContext",
    "PhaseStats",
    "TripleSource",
    "ParseErrorLog",
    # Storage
    "SymbolEncoder",
    "InvariantViolation",
    "EntitySummary",
    "EntitySummaryStore",
    "ClassPropertyIndex",
    "ValueKind",
    # Core
    "DualPassAggregator",
    "StatisticsComputer",
    "ShapeStatistics",
    "ShapeConstructor",
    "NodeShape",
    "PropertyShape",
    "ObjectTypeConstraint",
    "ObjectTypeKind",
    "NodeKind",
    # Output
    "to_shacl_turtle",
    "shapes_to_dict",
    "shapes_to_dataframe",
    # Pipeline
    "ShapeExtractor",
    "ExtractionResult",
    "extract_shapes",
]
