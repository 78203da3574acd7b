"""
Command line interface.

Usage:
    rdf-shapeminer graph.nt.gz --max-cardinality --min-support 0.1 -o shapes.ttl
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

import yaml

from rdf_shapeminer import __version__
from rdf_shapeminer.config import ExtractionConfig, ThresholdConfig
from rdf_shapeminer.context import CancellationToken, ExtractionCancelledException
from rdf_shapeminer.pipeline import ShapeExtractor
from rdf_shapeminer.serialization import shapes_to_dataframe

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rdf-shapeminer",
        description="Infer SHACL shapes from an N-Triples file in two streaming passes",
    )
    parser.add_argument("input", type=Path, help="N-Triples file (.nt, .nq, optionally .gz)")
    parser.add_argument("--config", type=Path, help="YAML or JSON configuration file")
    parser.add_argument("--type-predicate", help="Predicate denoting class membership")
    parser.add_argument(
        "--max-cardinality",
        action="store_true",
        default=None,
        help="Track per-entity property counts and emit sh:maxCount",
    )
    parser.add_argument("--min-support", type=float, help="Minimum support to keep a constraint")
    parser.add_argument("--min-count", type=int, help="Minimum entity count to keep a constraint")
    parser.add_argument(
        "--mandatory-support",
        type=float,
        help="Support at or above which a property is mandatory",
    )
    parser.add_argument("--expected-classes", type=int, help="Estimated number of classes")
    parser.add_argument("--expected-entities", type=int, help="Estimated number of entities")
    parser.add_argument("--workers", type=int, help="Threads aggregating each pass")
    parser.add_argument("--namespace", help="Namespace for minted shape IRIs")
    parser.add_argument("-o", "--output", type=Path, help="Output file (default: stdout)")
    parser.add_argument(
        "--format",
        choices=["turtle", "json"],
        default="turtle",
        help="Output format (default: turtle)",
    )
    parser.add_argument(
        "--stats-output",
        type=Path,
        help="Write the flattened constraints table (.parquet or .csv)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser


def config_from_args(args: argparse.Namespace) -> ExtractionConfig:
    """Merge command line overrides into the (optional) configuration file."""
    if args.config is not None:
        data = ExtractionConfig.from_file(args.config).to_dict()
    else:
        data = ExtractionConfig().to_dict()

    overrides = {
        "type_predicate": args.type_predicate,
        "track_cardinality": args.max_cardinality,
        "expected_classes": args.expected_classes,
        "expected_entities": args.expected_entities,
        "workers": args.workers,
        "shape_namespace": args.namespace,
    }
    data.update({key: value for key, value in overrides.items() if value is not None})

    thresholds = {
        "min_support": args.min_support,
        "min_count": args.min_count,
        "mandatory_support": args.mandatory_support,
    }
    data["thresholds"].update({key: value for key, value in thresholds.items() if value is not None})
    return ExtractionConfig(
        **{key: value for key, value in data.items() if key != "thresholds"},
        thresholds=ThresholdConfig.from_dict(data["thresholds"]),
    )


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = config_from_args(args)
    except (ValueError, TypeError, OSError, yaml.YAMLError) as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    if not args.input.is_file():
        logger.error(f"Input file not found: {args.input}")
        return 1

    token = CancellationToken()
    try:
        result = ShapeExtractor(args.input, config, cancellation_token=token).run()
    except KeyboardInterrupt:
        token.cancel()
        logger.warning("Interrupted")
        return 130
    except ExtractionCancelledException:
        return 130

    if args.format == "json":
        output = json.dumps(result.to_dict(), indent=2)
    else:
        output = result.to_turtle()

    if args.output is not None:
        args.output.write_text(output, encoding="utf-8")
        logger.info(f"Wrote {len(result.shapes):,} shapes to {args.output}")
    else:
        sys.stdout.write(output)

    if args.stats_output is not None:
        table = shapes_to_dataframe(result.shapes)
        if args.stats_output.suffix.lower() == ".csv":
            table.write_csv(args.stats_output)
        else:
            table.write_parquet(args.stats_output)
        logger.info(f"Wrote {table.height:,} constraint rows to {args.stats_output}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
