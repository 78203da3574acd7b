"""
Shape serialization.

Writes inferred shapes as SHACL Core Turtle, as JSON-able dictionaries, or
as a flat Polars table (one row per class, property and object type).
"""

from __future__ import annotations

import re
from typing import Any, Iterable

import polars as pl

from rdf_shapeminer.config import DEFAULT_SHAPE_NAMESPACE
from rdf_shapeminer.shapes import NodeShape, ObjectTypeConstraint, ObjectTypeKind, PropertyShape

# SHACL namespace
SH = "http://www.w3.org/ns/shacl#"
XSD = "http://www.w3.org/2001/XMLSchema#"

_LOCAL_NAME_RE = re.compile(r"[^A-Za-z0-9_\-]")


def _format_term(value: str) -> str:
    """Turtle form of an IRI or blank node label."""
    if value.startswith("_:"):
        return value
    return f"<{value}>"


def local_name(iri: str) -> str:
    """Last path/fragment segment of an IRI, reduced to safe characters."""
    value = iri.rstrip("/#")
    for separator in ("#", "/", ":"):
        if separator in value:
            value = value.rsplit(separator, 1)[1]
            break
    value = _LOCAL_NAME_RE.sub("_", value)
    return value or "Thing"


class ShapeIriMinter:
    """Mints unique shape IRIs inside one namespace."""

    def __init__(self, namespace: str = DEFAULT_SHAPE_NAMESPACE):
        self.namespace = namespace
        self._used: set[str] = set()

    def mint(self, name: str) -> str:
        candidate = f"{self.namespace}{name}"
        suffix = 2
        while candidate in self._used:
            candidate = f"{self.namespace}{name}_{suffix}"
            suffix += 1
        self._used.add(candidate)
        return candidate


def _value_type_lines(constraint: ObjectTypeConstraint) -> list[str]:
    node_kind = f"sh:nodeKind sh:{constraint.node_kind.value}"
    if constraint.kind == ObjectTypeKind.DATATYPE:
        return [node_kind, f"sh:datatype {_format_term(constraint.object_type)}"]
    return [node_kind, f"sh:class {_format_term(constraint.object_type)}"]


def _property_shape_to_turtle(shape_iri: str, shape: PropertyShape) -> str:
    lines = [
        f"<{shape_iri}> a sh:PropertyShape",
        f"sh:path {_format_term(shape.path)}",
    ]
    if shape.mandatory:
        lines.append("sh:minCount 1")
    if shape.max_count is not None:
        lines.append(f"sh:maxCount {shape.max_count}")

    if len(shape.object_types) == 1:
        lines.extend(_value_type_lines(shape.object_types[0]))
    else:
        alternatives = [
            "[ " + " ; ".join(_value_type_lines(constraint)) + " ]"
            for constraint in shape.object_types
        ]
        lines.append("sh:or (\n        " + "\n        ".join(alternatives) + "\n    )")

    return " ;\n    ".join(lines) + " ."


def to_shacl_turtle(
    shapes: Iterable[NodeShape],
    namespace: str = DEFAULT_SHAPE_NAMESPACE,
) -> str:
    """
    Serialize shapes to SHACL Core Turtle.

    Args:
        shapes: Node shapes produced by the shape constructor
        namespace: Namespace for the minted shape IRIs

    Returns:
        Turtle document
    """
    minter = ShapeIriMinter(namespace)
    blocks = [
        f"@prefix sh: <{SH}> .",
        f"@prefix xsd: <{XSD}> .",
    ]

    for node_shape in shapes:
        class_name = local_name(node_shape.target_class)
        node_iri = minter.mint(f"{class_name}Shape")

        property_blocks = []
        property_iris = []
        for property_shape in node_shape.property_shapes:
            property_iri = minter.mint(
                f"{local_name(property_shape.path)}{class_name}ShapeProperty"
            )
            property_iris.append(property_iri)
            property_blocks.append(_property_shape_to_turtle(property_iri, property_shape))

        lines = [
            f"<{node_iri}> a sh:NodeShape",
            f"sh:targetClass {_format_term(node_shape.target_class)}",
        ]
        if property_iris:
            lines.append(
                "sh:property " + ",\n        ".join(f"<{iri}>" for iri in property_iris)
            )
        blocks.append(" ;\n    ".join(lines) + " .")
        blocks.extend(property_blocks)

    return "\n\n".join(blocks) + "\n"


def shapes_to_dict(shapes: Iterable[NodeShape]) -> dict[str, Any]:
    """JSON-able representation of a list of shapes."""
    shapes = list(shapes)
    return {
        "nodeShapeCount": len(shapes),
        "propertyShapeCount": sum(len(shape.property_shapes) for shape in shapes),
        "shapes": [shape.to_dict() for shape in shapes],
    }


def shapes_to_dataframe(shapes: Iterable[NodeShape]) -> pl.DataFrame:
    """Flatten shapes into one row per (class, property, object type)."""
    rows = []
    for node_shape in shapes:
        for property_shape in node_shape.property_shapes:
            for constraint in property_shape.object_types:
                rows.append({
                    "class": node_shape.target_class,
                    "instance_count": node_shape.instance_count,
                    "property": property_shape.path,
                    "object_type": constraint.object_type,
                    "kind": constraint.kind.value,
                    "node_kind": constraint.node_kind.value,
                    "count": constraint.count,
                    "support": constraint.support,
                    "mandatory": constraint.mandatory,
                    "property_mandatory": property_shape.mandatory,
                    "max_count": property_shape.max_count,
                })

    return pl.DataFrame(rows, schema={
        "class": pl.Utf8,
        "instance_count": pl.UInt64,
        "property": pl.Utf8,
        "object_type": pl.Utf8,
        "kind": pl.Utf8,
        "node_kind": pl.Utf8,
        "count": pl.UInt64,
        "support": pl.Float64,
        "mandatory": pl.Boolean,
        "property_mandatory": pl.Boolean,
        "max_count": pl.UInt64,
    })
