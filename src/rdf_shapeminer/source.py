"""
Line-oriented triple sources.

A TripleSource can be iterated any number of times; every iteration
re-reads the underlying file from the beginning, which is what the two
extraction passes rely on. Gzip-compressed files (``.gz``) are read
transparently.
"""

from __future__ import annotations

import gzip
import logging
from dataclasses import dataclass, field
from itertools import islice
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)


class TripleSource:
    """
    Re-iterable source of raw triple lines.

    Example:
        source = TripleSource("dbpedia.nt.gz")
        for line_number, line in source:
            ...
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        lines: Optional[Iterable[str]] = None,
        encoding: str = "utf-8",
    ):
        if (path is None) == (lines is None):
            raise ValueError("Provide exactly one of path or lines")
        self._path = Path(path) if path is not None else None
        self._lines = list(lines) if lines is not None else None
        self._encoding = encoding

        if self._path is not None and not self._path.is_file():
            raise FileNotFoundError(f"Triple source not found: {self._path}")

    @classmethod
    def from_lines(cls, lines: Iterable[str]) -> "TripleSource":
        """Create an in-memory source, mostly for tests and small graphs."""
        return cls(lines=lines)

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def is_gzipped(self) -> bool:
        return self._path is not None and self._path.suffix.lower() == ".gz"

    def __iter__(self) -> Iterator[Tuple[int, str]]:
        """Yield ``(line_number, line)`` pairs, 1-based."""
        if self._lines is not None:
            yield from enumerate(self._lines, start=1)
            return

        if self.is_gzipped:
            f = gzip.open(self._path, "rt", encoding=self._encoding, errors="replace")
        else:
            f = open(self._path, "r", encoding=self._encoding, errors="replace")

        try:
            yield from enumerate(f, start=1)
        finally:
            f.close()

    def chunks(self, chunk_lines: int) -> Iterator[Tuple[int, List[str]]]:
        """
        Yield ``(first_line_number, lines)`` blocks of at most ``chunk_lines``.

        Lines never straddle two chunks.
        """
        iterator = iter(self)
        while True:
            block = list(islice(iterator, chunk_lines))
            if not block:
                return
            yield block[0][0], [line for _, line in block]

    def __repr__(self) -> str:
        if self._path is not None:
            return f"TripleSource({str(self._path)!r})"
        return f"TripleSource(<{len(self._lines)} lines>)"


@dataclass
class ParseError:
    """A line that could not be tokenized."""
    line_number: int
    pass_number: int
    line: str
    message: str

    def to_dict(self) -> dict:
        return {
            "line_number": self.line_number,
            "pass": self.pass_number,
            "line": self.line,
            "message": self.message,
        }


@dataclass
class ParseErrorLog:
    """
    Skipped lines of a run.

    Every skipped line is counted; only the first ``max_recorded`` are kept
    with their text for diagnostics.
    """
    max_recorded: int = 100
    count: int = 0
    samples: List[ParseError] = field(default_factory=list)

    # Lines logged at WARNING before switching to DEBUG
    warn_limit: int = 10

    def record(self, line_number: int, pass_number: int, line: str, message: str) -> None:
        self.count += 1
        if len(self.samples) < self.max_recorded:
            self.samples.append(ParseError(line_number, pass_number, line.rstrip("\n"), message))
        if self.count <= self.warn_limit:
            logger.warning(f"Skipping line {line_number} (pass {pass_number}): {message}")
        else:
            logger.debug(f"Skipping line {line_number} (pass {pass_number}): {message}")

    def merge(self, other: "ParseErrorLog") -> None:
        """Fold a shard's log into this one."""
        self.count += other.count
        room = self.max_recorded - len(self.samples)
        if room > 0:
            self.samples.extend(other.samples[:room])

    def __len__(self) -> int:
        return self.count

    def to_dict(self) -> dict:
        return {
            "count": self.count,
            "samples": [error.to_dict() for error in self.samples],
        }
