"""
Shape construction from aggregated statistics.

Turns the class property index and its support statistics into one node
shape per class. Each property shape lists the object types that pass
the support policy, whether the property is mandatory and, when tracked,
the maximum cardinality observed.

Symbols are decoded back to IRIs only here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import AbstractSet, Any, Mapping, Optional

from rdf_shapeminer.config import ThresholdConfig
from rdf_shapeminer.statistics import ShapeStatistics
from rdf_shapeminer.storage.entities import ClassPropertyIndex, ValueKind
from rdf_shapeminer.storage.terms import Symbol, SymbolEncoder

logger = logging.getLogger(__name__)


class ObjectTypeKind(Enum):
    """What an allowed object type refers to."""

    CLASS = "class"          # reference to an entity of that class
    DATATYPE = "datatype"    # literal of that datatype


class NodeKind(Enum):
    """SHACL node kind of the values behind an object type."""

    IRI = "IRI"
    BLANK_NODE = "BlankNode"
    BLANK_NODE_OR_IRI = "BlankNodeOrIRI"
    LITERAL = "Literal"

    @classmethod
    def from_value_kind(cls, value_kind: ValueKind) -> "NodeKind":
        blank = bool(value_kind & ValueKind.BLANK_NODE)
        iri = bool(value_kind & ValueKind.IRI)
        if blank and iri:
            return cls.BLANK_NODE_OR_IRI
        if blank:
            return cls.BLANK_NODE
        if iri:
            return cls.IRI
        return cls.LITERAL


@dataclass
class ObjectTypeConstraint:
    """One allowed object type of a property shape."""

    object_type: str
    kind: ObjectTypeKind
    count: int
    support: float
    mandatory: bool = False
    node_kind: Optional[NodeKind] = None

    def __post_init__(self):
        if self.node_kind is None:
            self.node_kind = (
                NodeKind.LITERAL if self.kind == ObjectTypeKind.DATATYPE else NodeKind.IRI
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "objectType": self.object_type,
            "kind": self.kind.value,
            "nodeKind": self.node_kind.value,
            "count": self.count,
            "support": self.support,
            "mandatory": self.mandatory,
        }


@dataclass
class PropertyShape:
    """A property constraint of a class shape."""

    path: str
    object_types: list[ObjectTypeConstraint] = field(default_factory=list)
    count: int = 0
    support: float = 0.0
    mandatory: bool = False
    max_count: Optional[int] = None

    @property
    def functional(self) -> bool:
        """True when no instance uses the property more than once."""
        return self.max_count == 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "path": self.path,
            "objectTypes": [constraint.to_dict() for constraint in self.object_types],
            "count": self.count,
            "support": self.support,
            "mandatory": self.mandatory,
            "maxCount": self.max_count,
        }


@dataclass
class NodeShape:
    """The inferred shape of one class."""

    target_class: str
    instance_count: int
    property_shapes: list[PropertyShape] = field(default_factory=list)

    def get_property(self, path: str) -> Optional[PropertyShape]:
        for property_shape in self.property_shapes:
            if property_shape.path == path:
                return property_shape
        return None

    def to_dict(self) -> dict[str, Any]:
        return {
            "targetClass": self.target_class,
            "instanceCount": self.instance_count,
            "properties": [shape.to_dict() for shape in self.property_shapes],
        }


class ShapeConstructor:
    """
    Applies the support policy and emits decoded shapes.

    Whether an object type is a class or a datatype is read from the index's
    value kinds for that (class, property), so one IRI can be a class under
    one property and a datatype under another. When the same combination was
    seen both as a reference and as a literal, the reference wins.

    Example:
        constructor = ShapeConstructor(encoder, ThresholdConfig(min_support=0.5))
        shapes = constructor.construct(aggregator.index, statistics,
                                       aggregator.class_counts)
    """

    def __init__(
        self,
        encoder: SymbolEncoder,
        thresholds: Optional[ThresholdConfig] = None,
    ):
        self.encoder = encoder
        self.thresholds = thresholds if thresholds is not None else ThresholdConfig()

    def construct(
        self,
        index: ClassPropertyIndex,
        statistics: ShapeStatistics,
        class_counts: Mapping[Symbol, int],
    ) -> list[NodeShape]:
        """Build one shape per class of ``index``, sorted by class IRI."""
        shapes = [
            self._build_node_shape(index, class_symbol, properties, statistics, class_counts)
            for class_symbol, properties in index.items()
        ]
        shapes.sort(key=lambda shape: shape.target_class)

        kept = sum(len(shape.property_shapes) for shape in shapes)
        logger.info(f"Constructed {len(shapes):,} node shapes with {kept:,} property shapes")
        return shapes

    def _build_node_shape(
        self,
        index: ClassPropertyIndex,
        class_symbol: Symbol,
        properties: Mapping[Symbol, AbstractSet[Symbol]],
        statistics: ShapeStatistics,
        class_counts: Mapping[Symbol, int],
    ) -> NodeShape:
        instances = class_counts.get(class_symbol, 0)
        node_shape = NodeShape(
            target_class=self.encoder.decode(class_symbol),
            instance_count=instances,
        )
        if instances == 0:
            return node_shape

        thresholds = self.thresholds
        for property_symbol, object_types in properties.items():
            constraints = []
            for object_type in object_types:
                count = statistics.count(class_symbol, property_symbol, object_type)
                support = count / instances
                if count < thresholds.min_count or support < thresholds.min_support:
                    continue
                value_kind = index.value_kind(class_symbol, property_symbol, object_type)
                if value_kind.is_reference:
                    kind = ObjectTypeKind.CLASS
                    value_kind &= ValueKind.IRI | ValueKind.BLANK_NODE
                else:
                    kind = ObjectTypeKind.DATATYPE
                constraints.append(ObjectTypeConstraint(
                    object_type=self.encoder.decode(object_type),
                    kind=kind,
                    count=count,
                    support=support,
                    mandatory=support >= thresholds.mandatory_support,
                    node_kind=NodeKind.from_value_kind(value_kind),
                ))
            if not constraints:
                continue

            constraints.sort(key=lambda c: c.object_type)
            property_count = statistics.property_counts.get((class_symbol, property_symbol), 0)
            property_support = property_count / instances
            node_shape.property_shapes.append(PropertyShape(
                path=self.encoder.decode(property_symbol),
                object_types=constraints,
                count=property_count,
                support=property_support,
                mandatory=property_support >= thresholds.mandatory_support,
                max_count=statistics.max_cardinality.get((class_symbol, property_symbol)),
            ))

        node_shape.property_shapes.sort(key=lambda shape: shape.path)
        return node_shape
