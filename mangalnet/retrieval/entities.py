"""
Entity Hierarchy - Typed records and their cross-references
============================================================

Defines the seven entity kinds served by the database, the immutable
dataclass for each, and the fixed table of foreign keys between them.

Reference Graph
---------------
    Dataset ------> Reference
    Network ------> Dataset
    Interaction --> Network, Node (source), Node (target), Attribute
    Node ---------> ReferenceTaxon
    Attribute, Reference, ReferenceTaxon: leaves

The graph is acyclic and closed. The deepest chain is three hops
(Interaction -> Network -> Dataset -> Reference), which bounds recursive
hydration.

Key Concepts
------------
    Relation field:
        A record key whose value is the identifier of another entity
        (e.g. ``node_from`` on an interaction). The resolver replaces it
        with the fetched entity; the raw identifier stays available on
        the entity (``source_id``).

    Hydration errors:
        Relations that failed to resolve are left as None and the
        HydrationError is kept on the owning entity. Hydration errors are
        excluded from equality and hashing.

    Parent filter:
        Key used to scope a listing or count to a parent entity,
        e.g. interactions of network 42 -> ``network_id=42``.

Example
-------
    >>> validate_record(EntityKind.NODE, {"id": 7, "taxonomy_id": 3})
    7
    >>> [r.field for r in relations_of(EntityKind.INTERACTION)]
    ['network_id', 'node_from', 'node_to', 'attr_id']
"""

from dataclasses import dataclass, field, fields
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Dict, Mapping, Optional, Tuple, Type

from .errors import HydrationError, schema_error

# Upper bound on relation hops from any entity to a leaf
MAX_HIERARCHY_DEPTH = 3


class EntityKind(Enum):
    """Entity kinds with their remote resource name and display label."""

    DATASET = ("dataset", "Dataset")
    REFERENCE = ("reference", "Reference")
    NETWORK = ("network", "Network")
    INTERACTION = ("interaction", "Interaction")
    ATTRIBUTE = ("attribute", "Attribute")
    NODE = ("node", "Node")
    REFERENCE_TAXON = ("taxonomy", "ReferenceTaxon")

    def __init__(self, resource: str, label: str):
        self.resource = resource
        self.label = label

    def __str__(self) -> str:
        return self.resource


class StrengthKind(Enum):
    """How an interaction's value is to be read."""
    BOOLEAN = "boolean"
    PROBABILISTIC = "probabilistic"
    QUANTITATIVE = "quantitative"

    @classmethod
    def parse(cls, value: Any) -> Optional["StrengthKind"]:
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            for member in cls:
                if member.value == value.strip().lower():
                    return member
        return None


@dataclass(frozen=True)
class RelationField:
    """One foreign key of an entity kind."""
    field: str      # key in the raw record
    attr: str       # attribute holding the resolved entity
    id_attr: str    # attribute holding the raw identifier
    kind: EntityKind


def _opt_int(value: Any) -> Optional[int]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    return None


def _opt_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    return str(value)


@dataclass(frozen=True)
class Entity:
    """Base for all hydrated entities."""

    id: int
    hydration_errors: Tuple[HydrationError, ...] = field(
        default=(), compare=False, repr=False
    )

    kind: ClassVar[EntityKind]

    @classmethod
    def _parse(cls, record: Mapping[str, Any]) -> Dict[str, Any]:
        """Map raw record keys to dataclass fields (metadata only)."""
        return {}

    @classmethod
    def from_record(
        cls,
        record: Mapping[str, Any],
        relations: Optional[Mapping[str, "Entity"]] = None,
        errors: Tuple[HydrationError, ...] = (),
    ) -> "Entity":
        """
        Build the entity from a validated raw record.

        Args:
            record: Raw JSON object (already checked by validate_record)
            relations: Resolved relations keyed by RelationField.attr
            errors: Hydration errors collected while resolving relations
        """
        values = cls._parse(record)
        for rel in relations_of(cls.kind):
            values[rel.id_attr] = _opt_int(record.get(rel.field))
            values[rel.attr] = (relations or {}).get(rel.attr)
        return cls(id=record["id"], hydration_errors=tuple(errors), **values)

    @property
    def is_complete(self) -> bool:
        """True when every relation resolved (recursively)."""
        if self.hydration_errors:
            return False
        for rel in relations_of(self.kind):
            related = getattr(self, rel.attr)
            if related is not None and not related.is_complete:
                return False
        return True

    def to_dict(self) -> Dict[str, Any]:
        result: Dict[str, Any] = {"kind": self.kind.resource}
        for f in fields(self):
            value = getattr(self, f.name)
            if f.name == "hydration_errors":
                result["hydrationErrors"] = [e.to_dict() for e in value]
            elif isinstance(value, Entity):
                result[f.name] = value.to_dict()
            else:
                result[f.name] = value
        return result


@dataclass(frozen=True)
class Reference(Entity):
    """Bibliographic citation for a dataset."""

    doi: Optional[str] = None
    jstor: Optional[str] = None
    pmid: Optional[str] = None
    paper_url: Optional[str] = None
    data_url: Optional[str] = None
    author: Optional[str] = None
    year: Optional[str] = None
    bibtex: Optional[str] = None

    kind: ClassVar[EntityKind] = EntityKind.REFERENCE

    @classmethod
    def _parse(cls, record):
        return {
            key: _opt_str(record.get(key))
            for key in ("doi", "jstor", "pmid", "paper_url", "data_url", "author", "year", "bibtex")
        }


@dataclass(frozen=True)
class Dataset(Entity):
    """A published collection of networks."""

    name: Optional[str] = None
    date: Optional[str] = None
    description: Optional[str] = None
    public: Optional[bool] = None
    reference_id: Optional[int] = None
    reference: Optional[Reference] = None

    kind: ClassVar[EntityKind] = EntityKind.DATASET

    @classmethod
    def _parse(cls, record):
        return {
            "name": _opt_str(record.get("name")),
            "date": _opt_str(record.get("date")),
            "description": _opt_str(record.get("description")),
            "public": record.get("public"),
        }


@dataclass(frozen=True)
class Network(Entity):
    """Metadata of one ecological network."""

    name: Optional[str] = None
    date: Optional[str] = None
    description: Optional[str] = None
    public: Optional[bool] = None
    all_interactions: Optional[bool] = None
    geometry_type: Optional[str] = None
    # (longitude, latitude) for point locations
    location: Optional[Tuple[float, float]] = None
    dataset_id: Optional[int] = None
    dataset: Optional[Dataset] = None

    kind: ClassVar[EntityKind] = EntityKind.NETWORK

    @classmethod
    def _parse(cls, record):
        geom = record.get("geom") or {}
        geometry_type = geom.get("type") if isinstance(geom, Mapping) else None
        location = None
        if geometry_type == "Point":
            coords = geom.get("coordinates") or ()
            if len(coords) == 2:
                try:
                    location = (float(coords[0]), float(coords[1]))
                except (TypeError, ValueError):
                    location = None
        return {
            "name": _opt_str(record.get("name")),
            "date": _opt_str(record.get("date")),
            "description": _opt_str(record.get("description")),
            "public": record.get("public"),
            "all_interactions": record.get("all_interactions"),
            "geometry_type": geometry_type,
            "location": location,
        }


@dataclass(frozen=True)
class Attribute(Entity):
    """Semantic type of an interaction value."""

    name: Optional[str] = None
    description: Optional[str] = None
    unit: Optional[str] = None

    kind: ClassVar[EntityKind] = EntityKind.ATTRIBUTE

    @classmethod
    def _parse(cls, record):
        return {
            "name": _opt_str(record.get("name")),
            "description": _opt_str(record.get("description")),
            "unit": _opt_str(record.get("unit")),
        }


@dataclass(frozen=True)
class ReferenceTaxon(Entity):
    """Canonical taxonomic name with external database identifiers."""

    name: Optional[str] = None
    rank: Optional[str] = None
    ncbi: Optional[int] = None
    tsn: Optional[int] = None
    eol: Optional[int] = None
    bold: Optional[int] = None
    gbif: Optional[int] = None
    col: Optional[str] = None

    kind: ClassVar[EntityKind] = EntityKind.REFERENCE_TAXON

    @classmethod
    def _parse(cls, record):
        values = {key: _opt_int(record.get(key)) for key in ("ncbi", "tsn", "eol", "bold", "gbif")}
        values.update({
            "name": _opt_str(record.get("name")),
            "rank": _opt_str(record.get("rank")),
            "col": _opt_str(record.get("col")),
        })
        return values


@dataclass(frozen=True)
class Node(Entity):
    """One taxon's observation record within a network."""

    original_name: Optional[str] = None
    node_level: Optional[str] = None
    network_id: Optional[int] = None
    taxonomy_id: Optional[int] = None
    taxon: Optional[ReferenceTaxon] = None

    kind: ClassVar[EntityKind] = EntityKind.NODE

    @classmethod
    def _parse(cls, record):
        return {
            "original_name": _opt_str(record.get("original_name")),
            "node_level": _opt_str(record.get("node_level")),
            "network_id": _opt_int(record.get("network_id")),
        }

    @property
    def name(self) -> Optional[str]:
        """Canonical name when the taxon resolved, else the recorded name."""
        if self.taxon is not None and self.taxon.name:
            return self.taxon.name
        return self.original_name


@dataclass(frozen=True)
class Interaction(Entity):
    """A pairwise link between two nodes of a network."""

    interaction_type: Optional[str] = None
    method: Optional[str] = None
    direction: Optional[str] = None
    value: Any = None
    strength: Optional[StrengthKind] = None
    date: Optional[str] = None
    description: Optional[str] = None
    public: Optional[bool] = None
    network_id: Optional[int] = None
    network: Optional[Network] = None
    source_id: Optional[int] = None
    source: Optional[Node] = None
    target_id: Optional[int] = None
    target: Optional[Node] = None
    attribute_id: Optional[int] = None
    attribute: Optional[Attribute] = None

    kind: ClassVar[EntityKind] = EntityKind.INTERACTION

    @classmethod
    def _parse(cls, record):
        return {
            "interaction_type": _opt_str(record.get("type")),
            "method": _opt_str(record.get("method")),
            "direction": _opt_str(record.get("direction")),
            "value": record.get("value"),
            "strength": StrengthKind.parse(record.get("strength")),
            "date": _opt_str(record.get("date")),
            "description": _opt_str(record.get("description")),
            "public": record.get("public"),
        }

    @property
    def directed(self) -> bool:
        return (self.direction or "").lower() != "undirected"


# Foreign keys per kind. Closed: nothing registers kinds at runtime.
HIERARCHY: Mapping[EntityKind, Tuple[RelationField, ...]] = MappingProxyType({
    EntityKind.DATASET: (
        RelationField("ref_id", "reference", "reference_id", EntityKind.REFERENCE),
    ),
    EntityKind.REFERENCE: (),
    EntityKind.NETWORK: (
        RelationField("dataset_id", "dataset", "dataset_id", EntityKind.DATASET),
    ),
    EntityKind.INTERACTION: (
        RelationField("network_id", "network", "network_id", EntityKind.NETWORK),
        RelationField("node_from", "source", "source_id", EntityKind.NODE),
        RelationField("node_to", "target", "target_id", EntityKind.NODE),
        RelationField("attr_id", "attribute", "attribute_id", EntityKind.ATTRIBUTE),
    ),
    EntityKind.ATTRIBUTE: (),
    EntityKind.NODE: (
        RelationField("taxonomy_id", "taxon", "taxonomy_id", EntityKind.REFERENCE_TAXON),
    ),
    EntityKind.REFERENCE_TAXON: (),
})

ENTITY_CLASSES: Mapping[EntityKind, Type[Entity]] = MappingProxyType({
    EntityKind.DATASET: Dataset,
    EntityKind.REFERENCE: Reference,
    EntityKind.NETWORK: Network,
    EntityKind.INTERACTION: Interaction,
    EntityKind.ATTRIBUTE: Attribute,
    EntityKind.NODE: Node,
    EntityKind.REFERENCE_TAXON: ReferenceTaxon,
})

# Identifier fields that are plain metadata (not hydrated) but still typed
_METADATA_ID_FIELDS: Mapping[EntityKind, Tuple[str, ...]] = MappingProxyType({
    EntityKind.NODE: ("network_id",),
})

# (child kind, parent kind) -> filter key scoping the child to the parent
PARENT_FILTERS: Mapping[Tuple[EntityKind, EntityKind], str] = MappingProxyType({
    (EntityKind.INTERACTION, EntityKind.NETWORK): "network_id",
    (EntityKind.INTERACTION, EntityKind.ATTRIBUTE): "attr_id",
    (EntityKind.NODE, EntityKind.NETWORK): "network_id",
    (EntityKind.NODE, EntityKind.REFERENCE_TAXON): "taxonomy_id",
    (EntityKind.NETWORK, EntityKind.DATASET): "dataset_id",
    (EntityKind.DATASET, EntityKind.REFERENCE): "ref_id",
})


def relations_of(kind: EntityKind) -> Tuple[RelationField, ...]:
    """Declared foreign keys of ``kind``."""
    return HIERARCHY[kind]


def entity_class(kind: EntityKind) -> Type[Entity]:
    return ENTITY_CLASSES[kind]


def hierarchy_depth(kind: EntityKind) -> int:
    """Longest chain of relation hops starting at ``kind``."""
    rels = HIERARCHY[kind]
    if not rels:
        return 0
    return 1 + max(hierarchy_depth(rel.kind) for rel in rels)


def check_relation(owner: EntityKind, attr: str, value: Any) -> bool:
    """
    True if ``value`` is acceptable for relation ``attr`` of ``owner``:
    either unset or an entity of the declared kind.
    """
    for rel in HIERARCHY[owner]:
        if rel.attr == attr:
            return value is None or isinstance(value, ENTITY_CLASSES[rel.kind])
    return False


def _is_id(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def validate_record(kind: EntityKind, record: Any) -> int:
    """
    Check a raw record against the hierarchy.

    Returns:
        The record's identifier

    Raises:
        SchemaError: If the record is not an object, has no positive integer
            id, or a foreign-key / id field holds a non-integer value
    """
    if not isinstance(record, Mapping):
        raise schema_error(kind.resource, None, f"expected an object, got {type(record).__name__}")

    entity_id = record.get("id")
    if not _is_id(entity_id) or entity_id <= 0:
        raise schema_error(kind.resource, entity_id, "missing or non-integer 'id'")

    id_fields = [rel.field for rel in HIERARCHY[kind]] + list(_METADATA_ID_FIELDS.get(kind, ()))
    for key in id_fields:
        value = record.get(key)
        if value is not None and (not _is_id(value) or value <= 0):
            raise schema_error(kind.resource, entity_id, f"field '{key}' must be a positive integer id, got {value!r}")

    return entity_id

