"""
RDF line formats.

Supports:
- N-Triples (.nt) lines
- N-Quads (.nq) lines (graph label ignored)
"""

from rdf_shapeminer.formats.ntriples import (
    NTriplesTokenizer,
    NTriplesParseError,
    TripleTokens,
    REFERENCE,
    classify_object,
    is_valid_iri,
    term_label,
)

__all__ = [
    "NTriplesTokenizer",
    "NTriplesParseError",
    "TripleTokens",
    "REFERENCE",
    "classify_object",
    "is_valid_iri",
    "term_label",
]
