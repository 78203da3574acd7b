"""
RDF-ShapeMiner Storage Layer.

Integer-encoded vocabulary and the in-memory aggregates built by the
extraction passes.
"""

from rdf_shapeminer.storage.terms import (
    Symbol,
    SymbolEncoder,
    InvariantViolation,
    RDF_TYPE,
    RDF_LANGSTRING,
    XSD_STRING,
)
from rdf_shapeminer.storage.entities import (
    EntitySummary,
    EntitySummaryStore,
    ClassPropertyIndex,
    ValueKind,
)

__all__ = [
    "Symbol",
    "SymbolEncoder",
    "InvariantViolation",
    "RDF_TYPE",
    "RDF_LANGSTRING",
    "XSD_STRING",
    "EntitySummary",
    "EntitySummaryStore",
    "ClassPropertyIndex",
    "ValueKind",
]
