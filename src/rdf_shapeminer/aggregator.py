"""
Dual-pass aggregation over a line-oriented triple source.

Pass 1 (membership): records the classes of every typed entity and counts
the distinct instances of every class.

Pass 2 (constraints): for every non-typing triple, works out the object's
type(s) - the classes of a referenced entity, or the datatype of a literal -
and records them against the subject's property, both per entity and per
class of the subject.

Pass 2 needs the complete output of pass 1, so the passes never overlap.
Within a pass, lines can be aggregated by a thread pool: each chunk of
lines is folded into a private shard which the calling thread merges into
the global aggregates (union for sets, sum for counters).
"""

from __future__ import annotations

import logging
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from dataclasses import dataclass, field
from threading import Lock
from typing import Callable, Iterable, Optional, Tuple

from rdf_shapeminer.config import ExtractionConfig
from rdf_shapeminer.context import ExtractionContext
from rdf_shapeminer.formats.ntriples import (
    REFERENCE,
    NTriplesParseError,
    NTriplesTokenizer,
    TripleTokens,
    classify_object,
    term_label,
)
from rdf_shapeminer.source import ParseErrorLog, TripleSource
from rdf_shapeminer.storage.entities import ClassPropertyIndex, EntitySummaryStore, ValueKind
from rdf_shapeminer.storage.terms import Symbol, SymbolEncoder

logger = logging.getLogger(__name__)

MEMBERSHIP_PASS = 1
CONSTRAINT_PASS = 2


@dataclass
class PassShard:
    """Private aggregates of one chunk of lines."""
    store: EntitySummaryStore = field(default_factory=EntitySummaryStore)
    index: ClassPropertyIndex = field(default_factory=ClassPropertyIndex)
    datatype_symbols: set[Symbol] = field(default_factory=set)
    errors: ParseErrorLog = field(default_factory=ParseErrorLog)
    lines_seen: int = 0


class DualPassAggregator:
    """
    Builds entity summaries, class instance counts and the class property
    index from two scans of the same source.

    Example:
        aggregator = DualPassAggregator(ExtractionConfig(track_cardinality=True))
        aggregator.first_pass(source)
        aggregator.second_pass(source)
        aggregator.class_counts      # {class_symbol: instances}
        aggregator.index             # class -> property -> object types
    """

    def __init__(
        self,
        config: Optional[ExtractionConfig] = None,
        encoder: Optional[SymbolEncoder] = None,
        context: Optional[ExtractionContext] = None,
        tokenizer: Optional[NTriplesTokenizer] = None,
    ):
        self.config = config if config is not None else ExtractionConfig()
        self.encoder = encoder if encoder is not None else SymbolEncoder()
        self.context = context if context is not None else ExtractionContext()
        self._tokenizer = tokenizer if tokenizer is not None else NTriplesTokenizer()

        self.store = EntitySummaryStore()
        self.class_counts: dict[Symbol, int] = {}
        self.index = ClassPropertyIndex()
        self.datatype_symbols: set[Symbol] = set()
        self.errors = ParseErrorLog(max_recorded=self.config.max_recorded_errors)
        self.ignored_typing_triples = 0
        self._ignored_lock = Lock()

        self._type_predicate = self.config.type_predicate
        # A typing triple's line always contains the bracketed predicate
        self._type_marker = f"<{self._type_predicate}>"
        self._first_pass_done = False
        self._second_pass_done = False

    # =========================================================================
    # Passes
    # =========================================================================

    def first_pass(self, source: TripleSource) -> int:
        """
        Scan ``source`` for typing triples.

        Returns:
            Number of lines read
        """
        if self.config.workers > 1:
            lines = self._run_parallel(source, MEMBERSHIP_PASS, self._merge_membership_shard)
        else:
            lines = self._scan(
                source,
                MEMBERSHIP_PASS,
                self.process_membership,
                self.errors,
                report_progress=True,
            )
        self._first_pass_done = True
        logger.info(
            f"Pass 1: {self.store.typed_count():,} typed entities, "
            f"{len(self.class_counts):,} classes"
        )
        return lines

    def second_pass(self, source: TripleSource) -> int:
        """
        Scan ``source`` for property constraints.

        Raises:
            RuntimeError: if the membership pass has not completed
        """
        if not self._first_pass_done:
            raise RuntimeError("second_pass requires a completed first_pass")
        if self.config.workers > 1:
            lines = self._run_parallel(source, CONSTRAINT_PASS, self._merge_constraint_shard)
        else:
            lines = self._scan(
                source,
                CONSTRAINT_PASS,
                self.process_constraint,
                self.errors,
                report_progress=True,
            )
        self._second_pass_done = True
        logger.info(
            f"Pass 2: {len(self.store):,} entity summaries, "
            f"{len(self.index):,} classes with properties"
        )
        return lines

    def aggregate(self, source: TripleSource) -> "DualPassAggregator":
        """Run both passes back to back."""
        self.first_pass(source)
        self.second_pass(source)
        return self

    # =========================================================================
    # Per-triple handlers
    # =========================================================================

    def process_membership(self, tokens: TripleTokens) -> None:
        """Pass 1 handler: record a class membership if ``tokens`` is a typing triple."""
        class_symbol = self._class_of(tokens)
        if class_symbol is None:
            return
        if self.store.add_class(tokens.subject, class_symbol):
            self.class_counts[class_symbol] = self.class_counts.get(class_symbol, 0) + 1

    def _class_of(self, tokens: TripleTokens) -> Optional[Symbol]:
        """Class symbol of a typing triple, None for any other triple."""
        if tokens.predicate != self._type_predicate:
            return None
        if classify_object(tokens.object) != REFERENCE:
            # A literal (or malformed IRI) cannot name a class
            with self._ignored_lock:
                self.ignored_typing_triples += 1
            logger.debug(f"Ignoring typing triple with non-class object {tokens.object}")
            return None
        return self.encoder.encode(term_label(tokens.object))

    def process_constraint(self, tokens: TripleTokens) -> None:
        """Pass 2 handler: record the object types of a non-typing triple."""
        self._add_constraint(tokens, self.store, self.index, self.datatype_symbols)

    def _add_constraint(
        self,
        tokens: TripleTokens,
        target_store: EntitySummaryStore,
        target_index: ClassPropertyIndex,
        datatype_symbols: set[Symbol],
    ) -> None:
        if tokens.predicate == self._type_predicate:
            return

        property_symbol = self.encoder.encode(tokens.predicate)
        category = classify_object(tokens.object)

        if category == REFERENCE:
            # Memberships come from pass 1 and are read-only here
            object_types: Iterable[Symbol] = self.store.classes_of(tokens.object)
            if not object_types:
                # Untyped reference: no type evidence
                return
            kind = ValueKind.BLANK_NODE if tokens.object.startswith("_:") else ValueKind.IRI
        else:
            datatype_symbol = self.encoder.encode(category)
            datatype_symbols.add(datatype_symbol)
            object_types = (datatype_symbol,)
            kind = ValueKind.LITERAL

        summary = target_store.get_or_create(tokens.subject)
        summary.add_property_constraint(property_symbol, object_types)
        if self.config.track_cardinality:
            summary.add_property_cardinality(property_symbol)

        for class_symbol in self.store.classes_of(tokens.subject):
            target_index.add(class_symbol, property_symbol, object_types, kind)

    # =========================================================================
    # Scanning
    # =========================================================================

    def _scan(
        self,
        numbered_lines: Iterable[Tuple[int, str]],
        pass_number: int,
        handle: Callable[[TripleTokens], None],
        errors: ParseErrorLog,
        report_progress: bool = False,
    ) -> int:
        """Tokenize and dispatch lines; malformed lines are recorded and skipped."""
        tokenize = self._tokenizer.tokenize
        check_interval = self.config.check_interval
        progress_interval = self.config.progress_interval
        type_marker = self._type_marker if pass_number == MEMBERSHIP_PASS else None

        lines = 0
        for line_number, line in numbered_lines:
            lines += 1
            if lines % check_interval == 0:
                self.context.check_cancelled()
            if report_progress and progress_interval and lines % progress_interval == 0:
                logger.info(f"  Pass {pass_number}: read {lines:,} lines...")

            if type_marker is not None and type_marker not in line:
                continue
            try:
                tokens = tokenize(line)
            except NTriplesParseError as e:
                errors.record(line_number, pass_number, line, str(e))
                continue
            if tokens is not None:
                handle(tokens)
        return lines

    def _run_parallel(
        self,
        source: TripleSource,
        pass_number: int,
        merge: Callable[[PassShard], None],
    ) -> int:
        """Aggregate chunks on a thread pool and merge the shards here."""
        workers = self.config.workers
        chunk_lines = self.config.effective_chunk_lines
        max_in_flight = workers * 2
        progress_interval = self.config.progress_interval

        lines = 0
        next_report = progress_interval

        def merge_done(done: set[Future]) -> None:
            nonlocal lines, next_report
            for future in done:
                shard = future.result()
                merge(shard)
                self.errors.merge(shard.errors)
                lines += shard.lines_seen
            if progress_interval and lines >= next_report:
                logger.info(f"  Pass {pass_number}: merged {lines:,} lines...")
                next_report = (lines // progress_interval + 1) * progress_interval

        with ThreadPoolExecutor(
            max_workers=workers,
            thread_name_prefix=f"shapeminer-pass{pass_number}",
        ) as executor:
            pending: set[Future] = set()
            try:
                for first_line, block in source.chunks(chunk_lines):
                    self.context.check_cancelled()
                    pending.add(
                        executor.submit(self._build_shard, pass_number, first_line, block)
                    )
                    if len(pending) >= max_in_flight:
                        done, pending = wait(pending, return_when=FIRST_COMPLETED)
                        merge_done(done)
                done, pending = wait(pending)
                merge_done(done)
            except BaseException:
                for future in pending:
                    future.cancel()
                raise
        return lines

    def _build_shard(self, pass_number: int, first_line: int, block: list[str]) -> PassShard:
        shard = PassShard(errors=ParseErrorLog(max_recorded=self.config.max_recorded_errors))
        if pass_number == MEMBERSHIP_PASS:
            def handle(tokens: TripleTokens) -> None:
                class_symbol = self._class_of(tokens)
                if class_symbol is not None:
                    shard.store.add_class(tokens.subject, class_symbol)
        else:
            def handle(tokens: TripleTokens) -> None:
                self._add_constraint(tokens, shard.store, shard.index, shard.datatype_symbols)

        shard.lines_seen = self._scan(
            enumerate(block, start=first_line), pass_number, handle, shard.errors
        )
        return shard

    def _merge_membership_shard(self, shard: PassShard) -> None:
        # Counts are derived here so that an entity typed in two shards is counted once
        for class_symbol, new_members in self.store.merge_classes(shard.store).items():
            self.class_counts[class_symbol] = self.class_counts.get(class_symbol, 0) + new_members

    def _merge_constraint_shard(self, shard: PassShard) -> None:
        self.store.merge_constraints(shard.store)
        self.index.merge(shard.index)
        self.datatype_symbols.update(shard.datatype_symbols)

    # =========================================================================
    # Introspection
    # =========================================================================

    @property
    def completed(self) -> bool:
        return self._first_pass_done and self._second_pass_done

    def stats(self) -> dict:
        """Return statistics about the aggregates."""
        return {
            "entities": len(self.store),
            "typed_entities": self.store.typed_count(),
            "classes": len(self.class_counts),
            "classes_with_properties": len(self.index),
            "symbols": len(self.encoder),
            "datatypes": len(self.datatype_symbols),
            "skipped_lines": self.errors.count,
            "ignored_typing_triples": self.ignored_typing_triples,
        }
