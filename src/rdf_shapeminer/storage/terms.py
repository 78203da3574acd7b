"""
Symbol Dictionary with Integer Encoding.

Maps the bounded vocabulary of a graph (class IRIs, property IRIs and
literal datatype IRIs) to dense integer symbols so the aggregate structures
built during extraction hold small ints instead of strings.

Key design decisions:
- Dense ID space: symbols start at 0 and are never reused or skipped
- Lock-free reads: the forward map is consulted without locking
- Serialized allocation: new symbols are issued under a lock so that
  sharded passes can share one encoder
- Entity identities (subjects/objects) are NOT encoded; they are numerous
  and looked up once, so interning them would only cost memory
"""

from __future__ import annotations

import threading
from typing import Iterator, Optional

import polars as pl


# Type alias for encoded symbols
Symbol = int


class InvariantViolation(Exception):
    """
    Raised when an internal invariant does not hold.

    Signals a programming defect (for example decoding a symbol that was
    never issued). It is never caught by the extraction pipeline.
    """
    pass


# =============================================================================
# Well-known IRIs
# =============================================================================

RDF_TYPE = "http://www.w3.org/1999/02/22-rdf-syntax-ns#type"
RDF_LANGSTRING = "http://www.w3.org/1999/02/22-rdf-syntax-ns#langString"
XSD_STRING = "http://www.w3.org/2001/XMLSchema#string"


# =============================================================================
# Symbol Encoder
# =============================================================================

class SymbolEncoder:
    """
    Bidirectional text <-> symbol dictionary.

    Symbols are issued in strictly increasing order starting at 0, so the
    reverse map is a plain list indexed by symbol.

    Thread-safety: safe for concurrent ``encode`` callers. Reads of
    already-issued symbols never take the lock.
    """

    def __init__(self):
        # Forward map: text -> symbol
        self._text_to_symbol: dict[str, Symbol] = {}

        # Reverse map: symbol -> text (index == symbol)
        self._symbol_to_text: list[str] = []

        self._lock = threading.Lock()

    def encode(self, text: str) -> Symbol:
        """
        Intern ``text`` and return its symbol.

        Returns the existing symbol when the text was seen before,
        otherwise allocates the next dense symbol.
        """
        # Fast path: no lock for known text
        symbol = self._text_to_symbol.get(text)
        if symbol is not None:
            return symbol

        with self._lock:
            # Another thread may have allocated it while we waited
            symbol = self._text_to_symbol.get(text)
            if symbol is None:
                symbol = len(self._symbol_to_text)
                self._symbol_to_text.append(text)
                self._text_to_symbol[text] = symbol
            return symbol

    def encode_batch(self, texts: list[str]) -> list[Symbol]:
        """Intern a batch of texts, returning symbols in the same order."""
        return [self.encode(text) for text in texts]

    def decode(self, symbol: Symbol) -> str:
        """
        Return the text for a previously issued symbol.

        Raises:
            InvariantViolation: if ``symbol`` was never issued by this encoder
        """
        if 0 <= symbol < len(self._symbol_to_text):
            return self._symbol_to_text[symbol]
        raise InvariantViolation(f"Symbol {symbol} was never issued by this encoder")

    def decode_batch(self, symbols) -> list[str]:
        """Decode several symbols."""
        return [self.decode(symbol) for symbol in symbols]

    def lookup(self, text: str) -> Optional[Symbol]:
        """Look up the symbol for ``text`` without creating it."""
        return self._text_to_symbol.get(text)

    def __contains__(self, text: str) -> bool:
        return text in self._text_to_symbol

    def __len__(self) -> int:
        return len(self._symbol_to_text)

    def items(self) -> Iterator[tuple[Symbol, str]]:
        """Yield ``(symbol, text)`` pairs in symbol order."""
        return iter(enumerate(list(self._symbol_to_text)))

    # =========================================================================
    # Export
    # =========================================================================

    def to_dataframe(self) -> pl.DataFrame:
        """
        Export the dictionary to a Polars DataFrame.

        Schema:
        - symbol: u32
        - text: string
        """
        texts = list(self._symbol_to_text)
        return pl.DataFrame({
            "symbol": pl.Series(list(range(len(texts))), dtype=pl.UInt32),
            "text": pl.Series(texts, dtype=pl.Utf8),
        })

    def stats(self) -> dict:
        """Return statistics about the dictionary."""
        return {
            "total_symbols": len(self),
            "next_symbol": len(self),
        }
