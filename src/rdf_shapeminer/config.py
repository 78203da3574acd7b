"""
Extraction Configuration for RDF-ShapeMiner.

Provides:
- Support / mandatory threshold policy
- Pass execution settings (typing predicate, cardinality tracking, workers)
- Sizing hints
- Loading from dicts, YAML or JSON files
"""
from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from rdf_shapeminer.storage.terms import RDF_TYPE
from rdf_shapeminer.formats.ntriples import term_label

logger = logging.getLogger(__name__)

DEFAULT_SHAPE_NAMESPACE = "http://shaclshapes.org/"


def _get(data: Dict[str, Any], key: str, default: Any) -> Any:
    """Value of ``key``, with an explicit null meaning the default."""
    if not isinstance(data, dict):
        raise ValueError(f"Expected a mapping, got {type(data).__name__}")
    value = data.get(key)
    return default if value is None else value


@dataclass
class ThresholdConfig:
    """
    Support policy applied by the shape constructor.

    A (class, property, object type) combination is kept when its support
    is at least ``min_support`` and at least ``min_count`` entities exhibit
    it. It is mandatory when its support reaches ``mandatory_support``.
    """
    min_support: float = 0.0
    min_count: int = 1
    mandatory_support: float = 1.0

    def __post_init__(self):
        if not 0.0 <= self.min_support <= 1.0:
            raise ValueError(f"min_support must be within [0, 1], got {self.min_support}")
        if self.min_count < 1:
            raise ValueError(f"min_count must be at least 1, got {self.min_count}")
        if not 0.0 < self.mandatory_support <= 1.0:
            raise ValueError(
                f"mandatory_support must be within (0, 1], got {self.mandatory_support}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "min_support": self.min_support,
            "min_count": self.min_count,
            "mandatory_support": self.mandatory_support,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ThresholdConfig":
        return cls(
            min_support=float(_get(data, "min_support", 0.0)),
            min_count=int(_get(data, "min_count", 1)),
            mandatory_support=float(_get(data, "mandatory_support", 1.0)),
        )


@dataclass
class ExtractionConfig:
    """
    Complete configuration for one extraction run.

    ``expected_classes`` and ``expected_entities`` are sizing hints only;
    they never change the result.
    """
    type_predicate: str = RDF_TYPE
    track_cardinality: bool = False

    # Sizing hints
    expected_classes: int = 1000
    expected_entities: int = 1_000_000

    # Pass execution
    workers: int = 1
    chunk_lines: Optional[int] = None
    check_interval: int = 10_000
    progress_interval: int = 1_000_000
    max_recorded_errors: int = 100

    # Output
    shape_namespace: str = DEFAULT_SHAPE_NAMESPACE

    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)

    def __post_init__(self):
        if not isinstance(self.type_predicate, str):
            raise ValueError(f"type_predicate must be a string, got {self.type_predicate!r}")
        self.type_predicate = term_label(self.type_predicate.strip())
        if not self.type_predicate:
            raise ValueError("type_predicate must not be empty")
        if self.workers < 1:
            raise ValueError(f"workers must be at least 1, got {self.workers}")
        if self.chunk_lines is not None and self.chunk_lines < 1:
            raise ValueError(f"chunk_lines must be at least 1, got {self.chunk_lines}")
        if self.check_interval < 1:
            raise ValueError(f"check_interval must be at least 1, got {self.check_interval}")
        if self.expected_classes < 0 or self.expected_entities < 0:
            raise ValueError("expected_classes and expected_entities must not be negative")

    @property
    def effective_chunk_lines(self) -> int:
        """Lines per shard when passes run in parallel."""
        if self.chunk_lines is not None:
            return self.chunk_lines
        # Aim for a handful of chunks per worker, bounded to keep shards small
        per_worker = self.expected_entities // (self.workers * 4) if self.workers else 0
        return max(10_000, min(500_000, per_worker))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type_predicate": self.type_predicate,
            "track_cardinality": self.track_cardinality,
            "expected_classes": self.expected_classes,
            "expected_entities": self.expected_entities,
            "workers": self.workers,
            "chunk_lines": self.chunk_lines,
            "check_interval": self.check_interval,
            "progress_interval": self.progress_interval,
            "max_recorded_errors": self.max_recorded_errors,
            "shape_namespace": self.shape_namespace,
            "thresholds": self.thresholds.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractionConfig":
        return cls(
            type_predicate=_get(data, "type_predicate", RDF_TYPE),
            track_cardinality=bool(_get(data, "track_cardinality", False)),
            expected_classes=int(_get(data, "expected_classes", 1000)),
            expected_entities=int(_get(data, "expected_entities", 1_000_000)),
            workers=int(_get(data, "workers", 1)),
            chunk_lines=data.get("chunk_lines"),
            check_interval=int(_get(data, "check_interval", 10_000)),
            progress_interval=int(_get(data, "progress_interval", 1_000_000)),
            max_recorded_errors=int(_get(data, "max_recorded_errors", 100)),
            shape_namespace=_get(data, "shape_namespace", DEFAULT_SHAPE_NAMESPACE),
            thresholds=ThresholdConfig.from_dict(_get(data, "thresholds", {})),
        )

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "ExtractionConfig":
        """
        Load a configuration from a YAML or JSON file.

        The format is chosen by suffix; ``.json`` is read as JSON, anything
        else as YAML.
        """
        path = Path(path)
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text) or {}
        if not isinstance(data, dict):
            raise ValueError(f"Configuration in {path} must be a mapping")
        logger.debug(f"Loaded configuration from {path}")
        return cls.from_dict(data)

    def save(self, path: Union[str, Path]) -> None:
        """Write the configuration as YAML (or JSON for a ``.json`` path)."""
        path = Path(path)
        if path.suffix.lower() == ".json":
            path.write_text(json.dumps(self.to_dict(), indent=2), encoding="utf-8")
        else:
            path.write_text(
                yaml.dump(self.to_dict(), default_flow_style=False, sort_keys=False),
                encoding="utf-8",
            )
