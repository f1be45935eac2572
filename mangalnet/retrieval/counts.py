"""
Count Aggregator - Totals without fetching record bodies
========================================================

Counts records of any kind, globally or scoped to a parent entity, using
the server-side total of a one-record listing request. Used to size
pagination and to report per-network richness and link totals.

Parent Scoping
--------------
    count(INTERACTION, parent=network_42)
        -> listing filter network_id=42

    Supported (child, parent) pairs come from entities.PARENT_FILTERS.
    The parent may be an Entity or an (EntityKind, id) pair.

Interaction Types
-----------------
    network_summary() counts each type in INTERACTION_TYPES separately and
    keeps only the non-zero ones.

Example
-------
    >>> counts = CountAggregator(fetcher)
    >>> counts.count(EntityKind.INTERACTION, {"type": "predation"}, parent=network_42)
    118
    >>> counts.network_summary(42).to_dict()
    {'networkId': 42, 'nodeCount': 31, 'interactionCount': 140, 'byType': {...}}
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Tuple, Union

from .entities import PARENT_FILTERS, Entity, EntityKind
from .fetcher import PaginatedFetcher
from .query import FilterInput, Query, build_query
from .validation import ValidationError, validate_entity_id, validate_kind

logger = logging.getLogger("Mangal.Counts")

# Interaction types recognised by the database
INTERACTION_TYPES = (
    "competition",
    "predation",
    "herbivory",
    "amensalism",
    "neutralism",
    "commensalism",
    "mutualism",
    "parasitism",
    "symbiosis",
    "scavenger",
    "detritivore",
    "unspecified",
)

ParentRef = Union[Entity, Tuple[Any, int]]


@dataclass
class NetworkCounts:
    """Per-network totals."""
    network_id: int
    node_count: int
    interaction_count: int
    by_type: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "networkId": self.network_id,
            "nodeCount": self.node_count,
            "interactionCount": self.interaction_count,
            "byType": dict(self.by_type),
        }


def parent_filter(kind: EntityKind, parent: ParentRef) -> Tuple[str, str]:
    """
    Filter pair scoping ``kind`` to ``parent``.

    Raises:
        ValidationError: If the pair is not a supported parent relation
    """
    if isinstance(parent, Entity):
        parent_kind, parent_id = parent.kind, parent.id
    else:
        try:
            raw_kind, raw_id = parent
        except (TypeError, ValueError):
            raise ValidationError("parent", "must be an entity or a (kind, id) pair", parent)
        parent_kind = validate_kind(raw_kind)
        parent_id = validate_entity_id(raw_id, "parent")

    key = PARENT_FILTERS.get((kind, parent_kind))
    if key is None:
        raise ValidationError(
            "parent",
            f"{kind.label} cannot be scoped to {parent_kind.label}",
            parent_kind.resource,
        )
    return key, str(parent_id)


class CountAggregator:
    """Counting front-end over a PaginatedFetcher."""

    def __init__(self, fetcher: PaginatedFetcher):
        self.fetcher = fetcher

    def count(
        self,
        kind,
        filters: FilterInput = None,
        parent: Optional[ParentRef] = None,
    ) -> int:
        """
        Number of ``kind`` records matching ``filters``, optionally within
        ``parent``.
        """
        kind = validate_kind(kind)
        query = self.scoped_query(kind, filters, parent)
        return self.fetcher.count(kind, query)

    def scoped_query(
        self,
        kind: EntityKind,
        filters: FilterInput = None,
        parent: Optional[ParentRef] = None,
    ) -> Query:
        query = build_query(filters)
        if parent is not None:
            query = query.extend([parent_filter(kind, parent)])
        return query

    def network_summary(self, network: Union[Entity, int]) -> NetworkCounts:
        """Node, interaction and per-type interaction totals of one network."""
        if isinstance(network, Entity):
            network_id = network.id
        else:
            network_id = validate_entity_id(network, "network")
        parent = (EntityKind.NETWORK, network_id)

        node_count = self.count(EntityKind.NODE, parent=parent)
        interaction_count = self.count(EntityKind.INTERACTION, parent=parent)

        by_type: Dict[str, int] = {}
        if interaction_count:
            for interaction_type in INTERACTION_TYPES:
                n = self.count(EntityKind.INTERACTION, {"type": interaction_type}, parent=parent)
                if n:
                    by_type[interaction_type] = n

        logger.debug(
            f"network {network_id}: {node_count} nodes, {interaction_count} interactions, "
            f"types={by_type}"
        )
        return NetworkCounts(
            network_id=network_id,
            node_count=node_count,
            interaction_count=interaction_count,
            by_type=by_type,
        )
