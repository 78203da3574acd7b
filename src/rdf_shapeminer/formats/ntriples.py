"""
N-Triples Line Tokenizer and Object Classification.

Each line contains: subject predicate object [graph] .

Grammar (subset used for shape extraction):
  triple    ::= subject predicate object graphLabel? '.'
  subject   ::= IRIREF | BLANK_NODE_LABEL
  predicate ::= IRIREF
  object    ::= IRIREF | BLANK_NODE_LABEL | literal
  literal   ::= STRING_LITERAL_QUOTE ('^^' IRIREF | LANGTAG)?

Terms are returned in their raw N-Triples form (``<iri>``, ``_:b0``,
``"lex"@en``) except the predicate, which is returned as a bare IRI. An
optional N-Quads graph label is accepted and discarded.

Reference: https://www.w3.org/TR/n-triples/
"""

from __future__ import annotations

import re
from typing import NamedTuple, Optional

from rdf_shapeminer.storage.terms import RDF_LANGSTRING, XSD_STRING


# Object category for references to other entities
REFERENCE = "IRI"

# scheme ":" followed by characters allowed in an IRIREF
_IRI_RE = re.compile(r'^[A-Za-z][A-Za-z0-9+.\-]*:[^\s<>"{}|\\^`]*$')
_LANGTAG_RE = re.compile(r'^[A-Za-z]+(-[A-Za-z0-9]+)*$')


class NTriplesParseError(ValueError):
    """Raised when a line is not a well-formed triple."""
    pass


class TripleTokens(NamedTuple):
    """The three terms of one parsed line."""
    subject: str
    predicate: str
    object: str


def is_valid_iri(value: str) -> bool:
    """Syntactic IRI check (scheme plus IRIREF characters)."""
    return bool(_IRI_RE.match(value))


def term_label(term: str) -> str:
    """Strip the angle brackets of an IRI term; other terms are returned as-is."""
    if len(term) >= 2 and term[0] == '<' and term[-1] == '>':
        return term[1:-1]
    return term


def classify_object(term: str) -> str:
    """
    Classify an object term.

    Returns:
        ``REFERENCE`` when the object denotes another entity (IRI or blank
        node), otherwise the IRI of the literal's datatype: the explicit
        ``^^`` datatype, ``rdf:langString`` for language-tagged strings,
        or ``xsd:string`` as the fallback.
    """
    if term.startswith('"'):
        close = term.rfind('"')
        tail = term[close + 1:]
        if tail.startswith('^^<') and tail.endswith('>'):
            return tail[3:-1]
        if tail.startswith('@'):
            return RDF_LANGSTRING
        return XSD_STRING
    if term.startswith('_:'):
        return REFERENCE
    if is_valid_iri(term_label(term)):
        return REFERENCE
    return XSD_STRING


class NTriplesTokenizer:
    """
    Tokenizer for single N-Triples lines.

    Example:
        tokenizer = NTriplesTokenizer()
        tokenizer.tokenize('<http://ex.org/a> <http://ex.org/p> "x"@en .')
        # TripleTokens(subject='<http://ex.org/a>', predicate='http://ex.org/p',
        #              object='"x"@en')
    """

    def tokenize(self, line: str) -> Optional[TripleTokens]:
        """
        Split one line into its terms.

        Returns:
            TripleTokens, or None for blank lines and comments

        Raises:
            NTriplesParseError: if the line is not a well-formed triple
        """
        line = line.strip()
        if not line or line.startswith('#'):
            return None

        pos = 0
        subject, pos = self._parse_subject(line, pos)
        pos = self._skip_ws(line, pos)

        predicate, pos = self._parse_iri(line, pos)
        pos = self._skip_ws(line, pos)

        obj, pos = self._parse_object(line, pos)
        pos = self._skip_ws(line, pos)

        # Optional graph label (N-Quads)
        if pos < len(line) and line[pos] in '<_':
            _, pos = self._parse_subject(line, pos)
            pos = self._skip_ws(line, pos)

        if pos >= len(line) or line[pos] != '.':
            raise NTriplesParseError(f"Expected '.' at column {pos + 1}")
        pos = self._skip_ws(line, pos + 1)
        if pos < len(line) and line[pos] != '#':
            raise NTriplesParseError(f"Unexpected trailing content at column {pos + 1}")

        return TripleTokens(subject, term_label(predicate), obj)

    def _skip_ws(self, line: str, pos: int) -> int:
        while pos < len(line) and line[pos] in ' \t':
            pos += 1
        return pos

    def _parse_subject(self, line: str, pos: int) -> tuple[str, int]:
        if line.startswith('_:', pos):
            return self._parse_blank_node(line, pos)
        return self._parse_iri(line, pos)

    def _parse_iri(self, line: str, pos: int) -> tuple[str, int]:
        """Parse ``<...>`` starting at ``pos``."""
        if pos >= len(line) or line[pos] != '<':
            raise NTriplesParseError(f"Expected IRI at column {pos + 1}")
        end = line.find('>', pos + 1)
        if end == -1:
            raise NTriplesParseError(f"Unterminated IRI at column {pos + 1}")
        return line[pos:end + 1], end + 1

    def _parse_blank_node(self, line: str, pos: int) -> tuple[str, int]:
        end = pos + 2
        while end < len(line) and line[end] not in ' \t':
            end += 1
        # A trailing '.' belongs to the statement, not the label
        if end > pos + 2 and line[end - 1] == '.' and end == len(line):
            end -= 1
        if end == pos + 2:
            raise NTriplesParseError(f"Empty blank node label at column {pos + 1}")
        return line[pos:end], end

    def _parse_object(self, line: str, pos: int) -> tuple[str, int]:
        if pos >= len(line):
            raise NTriplesParseError("Missing object")
        if line[pos] == '"':
            return self._parse_literal(line, pos)
        return self._parse_subject(line, pos)

    def _parse_literal(self, line: str, pos: int) -> tuple[str, int]:
        """Parse a quoted literal with optional datatype or language tag."""
        i = pos + 1
        while i < len(line) and line[i] != '"':
            if line[i] == '\\':
                i += 2
            else:
                i += 1
        if i >= len(line):
            raise NTriplesParseError(f"Unterminated literal at column {pos + 1}")
        end = i + 1

        if line.startswith('^^', end):
            _, end = self._parse_iri(line, end + 2)
        elif end < len(line) and line[end] == '@':
            tag_end = end + 1
            while tag_end < len(line) and (line[tag_end].isalnum() or line[tag_end] == '-'):
                tag_end += 1
            if not _LANGTAG_RE.match(line[end + 1:tag_end]):
                raise NTriplesParseError(f"Invalid language tag at column {end + 1}")
            end = tag_end

        return line[pos:end], end
