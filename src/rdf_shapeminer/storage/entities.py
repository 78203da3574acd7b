"""
Per-entity summaries and the per-class property index.

Holds everything the two passes learn about the graph:
- EntitySummary: classes of one entity, the object types seen for each of
  its properties and (optionally) how often each property occurred
- EntitySummaryStore: entity identity -> EntitySummary
- ClassPropertyIndex: class -> property -> union of object types, with the
  kind of value (literal, IRI, blank node) behind each object type

All structures only ever grow. Sharded passes build private instances and
merge them into the global ones with ``merge``.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import IntFlag
from typing import Iterable, Iterator, Optional

from rdf_shapeminer.storage.terms import Symbol


@dataclass(slots=True)
class EntitySummary:
    """
    Everything observed about one entity.

    Attributes:
        class_types: Encoded classes the entity is asserted to belong to
        property_constraints: Property symbol -> object type symbols
        property_cardinality: Property symbol -> raw occurrence counter
    """
    class_types: set[Symbol] = field(default_factory=set)
    property_constraints: dict[Symbol, set[Symbol]] = field(default_factory=dict)
    property_cardinality: dict[Symbol, int] = field(default_factory=dict)

    def add_class(self, class_symbol: Symbol) -> bool:
        """Add a class; returns True when it was not recorded before."""
        if class_symbol in self.class_types:
            return False
        self.class_types.add(class_symbol)
        return True

    def add_property_constraint(
        self,
        property_symbol: Symbol,
        object_types: Iterable[Symbol],
    ) -> None:
        """Union ``object_types`` into the set kept for ``property_symbol``."""
        types = self.property_constraints.get(property_symbol)
        if types is None:
            types = set()
            self.property_constraints[property_symbol] = types
        types.update(object_types)

    def add_property_cardinality(self, property_symbol: Symbol, count: int = 1) -> None:
        """Count ``count`` more occurrences of ``property_symbol``."""
        self.property_cardinality[property_symbol] = (
            self.property_cardinality.get(property_symbol, 0) + count
        )


class EntitySummaryStore:
    """
    Entity identity -> EntitySummary.

    Entity identities are the raw N-Triples forms of subjects and objects
    (``<iri>`` or ``_:label``).

    Example:
        store = EntitySummaryStore()
        store.add_class("<http://ex.org/Paris>", city)
        store.get("<http://ex.org/Paris>").class_types   # {city}
    """

    def __init__(self):
        self._entities: dict[str, EntitySummary] = {}

    def get(self, entity: str) -> Optional[EntitySummary]:
        """Return the summary for ``entity`` or None if it was never seen."""
        return self._entities.get(entity)

    def get_or_create(self, entity: str) -> EntitySummary:
        """Fetch the summary for ``entity``, creating it on first use."""
        summary = self._entities.get(entity)
        if summary is None:
            summary = self._entities.setdefault(entity, EntitySummary())
        return summary

    def add_class(self, entity: str, class_symbol: Symbol) -> bool:
        """Record a class membership; returns True if it is new for the entity."""
        return self.get_or_create(entity).add_class(class_symbol)

    def classes_of(self, entity: str) -> frozenset[Symbol] | set[Symbol]:
        """Classes recorded for ``entity`` (empty when untyped)."""
        summary = self._entities.get(entity)
        if summary is None:
            return frozenset()
        return summary.class_types

    def __len__(self) -> int:
        return len(self._entities)

    def __contains__(self, entity: str) -> bool:
        return entity in self._entities

    def items(self) -> Iterator[tuple[str, EntitySummary]]:
        return iter(self._entities.items())

    def values(self) -> Iterator[EntitySummary]:
        return iter(self._entities.values())

    def typed_count(self) -> int:
        """Number of entities with at least one class."""
        return sum(1 for summary in self._entities.values() if summary.class_types)

    def merge_classes(self, other: "EntitySummaryStore") -> dict[Symbol, int]:
        """
        Merge class memberships from a shard.

        Returns:
            Class symbol -> number of entities for which that class was new,
            i.e. the increments owed to the class instance counts
        """
        new_members: dict[Symbol, int] = {}
        for entity, shard_summary in other.items():
            summary = self.get_or_create(entity)
            for class_symbol in shard_summary.class_types:
                if summary.add_class(class_symbol):
                    new_members[class_symbol] = new_members.get(class_symbol, 0) + 1
        return new_members

    def merge_constraints(self, other: "EntitySummaryStore") -> None:
        """Merge property constraints and cardinalities from a shard (union / sum)."""
        for entity, shard_summary in other.items():
            summary = self.get_or_create(entity)
            for property_symbol, object_types in shard_summary.property_constraints.items():
                summary.add_property_constraint(property_symbol, object_types)
            for property_symbol, count in shard_summary.property_cardinality.items():
                summary.add_property_cardinality(property_symbol, count)


class ValueKind(IntFlag):
    """How the values behind an object type were written."""

    LITERAL = 1
    IRI = 2
    BLANK_NODE = 4

    @property
    def is_reference(self) -> bool:
        return bool(self & (ValueKind.IRI | ValueKind.BLANK_NODE))


class ClassPropertyIndex:
    """
    Class -> property -> object types, unioned over all instances of the class.

    A structural superset: it says which object types were ever seen, not
    how common they are. Each (class, property, object type) also keeps the
    ValueKind flags of the values it was derived from, so a symbol used both
    as a class and as a datatype is told apart by position.
    """

    def __init__(self):
        self._index: dict[Symbol, dict[Symbol, set[Symbol]]] = {}
        self._kinds: dict[tuple[Symbol, Symbol, Symbol], ValueKind] = {}

    def add(
        self,
        class_symbol: Symbol,
        property_symbol: Symbol,
        object_types: Iterable[Symbol],
        kind: ValueKind = ValueKind.IRI,
    ) -> None:
        """Union ``object_types`` into ``(class_symbol, property_symbol)``."""
        properties = self._index.get(class_symbol)
        if properties is None:
            properties = {}
            self._index[class_symbol] = properties
        types = properties.get(property_symbol)
        if types is None:
            types = set()
            properties[property_symbol] = types
        kinds = self._kinds
        for object_type in object_types:
            types.add(object_type)
            key = (class_symbol, property_symbol, object_type)
            kinds[key] = kinds.get(key, ValueKind(0)) | kind

    def properties_of(self, class_symbol: Symbol) -> dict[Symbol, set[Symbol]]:
        return self._index.get(class_symbol, {})

    def object_types(self, class_symbol: Symbol, property_symbol: Symbol) -> set[Symbol]:
        return self._index.get(class_symbol, {}).get(property_symbol, set())

    def value_kind(
        self,
        class_symbol: Symbol,
        property_symbol: Symbol,
        object_type: Symbol,
    ) -> ValueKind:
        """Flags of the values seen for the combination (empty when unseen)."""
        return self._kinds.get((class_symbol, property_symbol, object_type), ValueKind(0))

    def classes(self) -> list[Symbol]:
        return list(self._index)

    def items(self) -> Iterator[tuple[Symbol, dict[Symbol, set[Symbol]]]]:
        return iter(self._index.items())

    def __contains__(self, class_symbol: Symbol) -> bool:
        return class_symbol in self._index

    def __len__(self) -> int:
        return len(self._index)

    def merge(self, other: "ClassPropertyIndex") -> None:
        """Union another index into this one, OR-ing the value kinds."""
        for class_symbol, properties in other.items():
            for property_symbol, object_types in properties.items():
                for object_type in object_types:
                    self.add(
                        class_symbol,
                        property_symbol,
                        (object_type,),
                        other.value_kind(class_symbol, property_symbol, object_type),
                    )

    def to_sets(self) -> dict[Symbol, dict[Symbol, frozenset[Symbol]]]:
        """Immutable snapshot, handy for comparing two runs."""
        return {
            class_symbol: {
                property_symbol: frozenset(types)
                for property_symbol, types in properties.items()
            }
            for class_symbol, properties in self._index.items()
        }
