"""
End-to-end shape extraction.

Runs the four phases in order:

    first_pass -> [barrier] -> second_pass -> compute_statistics -> construct_shapes

and returns the shapes together with everything needed to inspect them.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Union

from rdf_shapeminer.aggregator import DualPassAggregator
from rdf_shapeminer.config import ExtractionConfig
from rdf_shapeminer.context import CancellationToken, ExtractionContext
from rdf_shapeminer.serialization import shapes_to_dict, to_shacl_turtle
from rdf_shapeminer.shapes import NodeShape, ShapeConstructor
from rdf_shapeminer.source import ParseErrorLog, TripleSource
from rdf_shapeminer.statistics import ShapeStatistics, StatisticsComputer
from rdf_shapeminer.storage.terms import SymbolEncoder

logger = logging.getLogger(__name__)


@dataclass
class ExtractionResult:
    """Outcome of one extraction run."""
    shapes: list[NodeShape]
    statistics: ShapeStatistics
    encoder: SymbolEncoder
    errors: ParseErrorLog
    context: ExtractionContext
    config: ExtractionConfig
    aggregate_stats: dict = field(default_factory=dict)

    def to_turtle(self) -> str:
        return to_shacl_turtle(self.shapes, self.config.shape_namespace)

    def to_dict(self) -> dict:
        return {
            **shapes_to_dict(self.shapes),
            "aggregates": self.aggregate_stats,
            "errors": self.errors.to_dict(),
            **self.context.to_dict(),
        }


class ShapeExtractor:
    """
    Infers SHACL-like shapes from an N-Triples source.

    Example:
        extractor = ShapeExtractor("graph.nt", ExtractionConfig(track_cardinality=True))
        result = extractor.run()
        print(result.to_turtle())
    """

    def __init__(
        self,
        source: Union[str, Path, TripleSource],
        config: Optional[ExtractionConfig] = None,
        cancellation_token: Optional[CancellationToken] = None,
    ):
        self.source = source if isinstance(source, TripleSource) else TripleSource(source)
        self.config = config if config is not None else ExtractionConfig()
        self.context = ExtractionContext(cancellation_token=cancellation_token)
        self.encoder = SymbolEncoder()
        self.aggregator = DualPassAggregator(self.config, self.encoder, self.context)

    def run(self) -> ExtractionResult:
        """
        Run all phases.

        Raises:
            ExtractionCancelledException: if the token is cancelled mid-run
            InvariantViolation: on an internal defect
        """
        logger.info(
            f"Extracting shapes from {self.source} "
            f"(type predicate <{self.config.type_predicate}>, "
            f"cardinality {'on' if self.config.track_cardinality else 'off'}, "
            f"{self.config.workers} worker(s))"
        )
        aggregator = self.aggregator

        with self.context.phase("first_pass") as stats:
            stats.lines_seen = aggregator.first_pass(self.source)
            stats.lines_skipped = aggregator.errors.count

        # Barrier: pass 2 reads the complete pass-1 memberships
        self.context.check_cancelled()

        with self.context.phase("second_pass") as stats:
            skipped_before = aggregator.errors.count
            stats.lines_seen = aggregator.second_pass(self.source)
            stats.lines_skipped = aggregator.errors.count - skipped_before

        with self.context.phase("compute_statistics"):
            statistics = StatisticsComputer(self.config.track_cardinality).compute(
                aggregator.store, aggregator.class_counts
            )

        with self.context.phase("construct_shapes"):
            constructor = ShapeConstructor(self.encoder, self.config.thresholds)
            shapes = constructor.construct(aggregator.index, statistics, aggregator.class_counts)

        self._log_sizing(aggregator)
        return ExtractionResult(
            shapes=shapes,
            statistics=statistics,
            encoder=self.encoder,
            errors=aggregator.errors,
            context=self.context,
            config=self.config,
            aggregate_stats=aggregator.stats(),
        )

    def _log_sizing(self, aggregator: DualPassAggregator) -> None:
        classes = len(aggregator.class_counts)
        entities = len(aggregator.store)
        logger.info(
            f"Observed {classes:,} classes (expected {self.config.expected_classes:,}) and "
            f"{entities:,} entities (expected {self.config.expected_entities:,})"
        )
        if aggregator.errors.count:
            logger.warning(f"Skipped {aggregator.errors.count:,} malformed lines")


def extract_shapes(
    source: Union[str, Path, TripleSource],
    config: Optional[ExtractionConfig] = None,
) -> list[NodeShape]:
    """Convenience wrapper returning only the shapes."""
    return ShapeExtractor(source, config).run().shapes
