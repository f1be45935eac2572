"""
Network Materializer - Interactions to nodes and weighted edges
================================================================

Converts the hydrated interactions of one network into a node set and an
edge collection, then exposes them as a NetworkX multigraph or a dense
adjacency matrix for downstream graph measures.

Edge Weights
------------
    boolean:        every interaction record is a present edge with weight
                    1.0, whatever its raw value. Absence means there is
                    no record; the raw value is kept on the edge.
    probabilistic:  weight is the value, which must lie in [0, 1].
    quantitative:   weight is the raw magnitude, which must be >= 0.
                    A value of 0 is a real edge with weight 0.

Strength Inference
------------------
    1. An explicit ``strength`` on the record wins.
    2. Attribute name mentions presence/absence  -> boolean
    3. Attribute name or unit mentions probability -> probabilistic
    4. Any other attribute                        -> quantitative
    5. No attribute: missing or boolean value     -> boolean,
                     anything else                -> quantitative

An attribute id whose record failed to resolve leaves the strength
unknown; such an interaction is skipped rather than guessed.

Validation
----------
An interaction is skipped (and reported as a ConversionError) when:
    - it belongs to another network
    - its source or target node is missing, unresolved or of the wrong kind
    - either endpoint belongs to another network
    - its attribute is unresolved and no explicit strength is given
    - its value cannot be read under its strength kind

Skipping one interaction never affects the others. The node set is built
only from endpoints of retained edges, so no orphan nodes appear.

Parallel Edges
--------------
Every interaction is its own edge, keyed by interaction id. Predation and
competition between the same two nodes remain two edges.

Example
-------
    >>> result = materialize_network(network, interactions)
    >>> len(result.edges), len(result.conversion_errors)
    (9, 1)
    >>> nodes, matrix = result.to_matrix(interaction_type="predation")
    >>> result.graph.number_of_edges()
    9
"""

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple

import networkx as nx
import numpy as np

from .entities import (
    EntityKind,
    Interaction,
    Network,
    Node,
    StrengthKind,
    check_relation,
)
from .errors import ConversionError, Failure, conversion_error, failure_from_exception

logger = logging.getLogger("Mangal.Materialize")

_BOOLEAN_MARKERS = ("presence", "absence")
_PROBABILITY_MARKERS = ("probab",)


@dataclass
class NetworkEdge:
    """One materialized interaction."""
    interaction_id: int
    source: int
    target: int
    weight: float
    strength: StrengthKind
    interaction_type: Optional[str] = None
    attribute_id: Optional[int] = None
    attribute: Optional[str] = None
    directed: bool = True
    # Raw recorded value, as sent by the server
    value: Any = None

    def to_dict(self) -> dict:
        return {
            "interactionId": self.interaction_id,
            "source": self.source,
            "target": self.target,
            "weight": self.weight,
            "value": self.value,
            "strength": self.strength.value,
            "type": self.interaction_type,
            "attributeId": self.attribute_id,
            "attribute": self.attribute,
            "directed": self.directed,
        }


def infer_strength(interaction: Interaction) -> StrengthKind:
    """Decide how the interaction's value is read."""
    if interaction.strength is not None:
        return interaction.strength

    attribute = interaction.attribute
    if attribute is not None:
        name = (attribute.name or "").lower()
        unit = (attribute.unit or "").lower()
        if any(marker in name for marker in _BOOLEAN_MARKERS):
            return StrengthKind.BOOLEAN
        if any(marker in name or marker in unit for marker in _PROBABILITY_MARKERS):
            return StrengthKind.PROBABILISTIC
        return StrengthKind.QUANTITATIVE

    if interaction.value is None or isinstance(interaction.value, bool):
        return StrengthKind.BOOLEAN
    return StrengthKind.QUANTITATIVE


def _as_magnitude(value: Any) -> float:
    if value is None:
        raise ValueError("value is missing")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValueError(f"value {value!r} is not numeric")
    if math.isnan(number) or math.isinf(number):
        raise ValueError(f"value {value!r} is not finite")
    return number


def edge_weight(value: Any, strength: StrengthKind) -> float:
    """
    Weight for ``value`` under ``strength``.

    Raises:
        ValueError: If the value cannot be read under ``strength``
    """
    # The record exists, so the link is present
    if strength is StrengthKind.BOOLEAN:
        return 1.0

    number = _as_magnitude(value)
    if strength is StrengthKind.PROBABILISTIC:
        if not 0.0 <= number <= 1.0:
            raise ValueError(f"probability {number} outside [0, 1]")
        return number

    if number < 0:
        raise ValueError(f"quantitative value {number} is negative")
    return number


def _endpoint(network: Network, interaction: Interaction, role: str) -> Node:
    """Validated source or target node of ``interaction``."""
    node_id = getattr(interaction, f"{role}_id")
    node = getattr(interaction, role)

    if node_id is None:
        raise conversion_error(interaction.id, network.id, f"missing {role} node")
    if node is None:
        reasons = [
            e.message for e in interaction.hydration_errors
            if e.target_kind == EntityKind.NODE.resource and e.target_id == node_id
        ]
        detail = f": {reasons[0]}" if reasons else ""
        raise conversion_error(interaction.id, network.id, f"{role} node {node_id} unresolved{detail}")
    if not check_relation(EntityKind.INTERACTION, role, node):
        raise conversion_error(
            interaction.id, network.id, f"{role} is a {type(node).__name__}, expected Node"
        )
    if node.network_id != network.id:
        raise conversion_error(
            interaction.id,
            network.id,
            f"{role} node {node.id} belongs to network {node.network_id}",
        )
    return node


def convert_interaction(
    network: Network,
    interaction: Any,
) -> Tuple[NetworkEdge, Tuple[Node, Node]]:
    """
    Convert one interaction.

    Returns:
        ``(edge, (source, target))``

    Raises:
        ConversionError: If the interaction cannot be placed in the network
    """
    if not isinstance(interaction, Interaction):
        raise conversion_error(
            getattr(interaction, "id", None),
            network.id,
            f"expected Interaction, got {type(interaction).__name__}",
        )
    if interaction.network_id != network.id:
        raise conversion_error(
            interaction.id,
            network.id,
            f"belongs to network {interaction.network_id}",
        )
    if not check_relation(EntityKind.INTERACTION, "network", interaction.network):
        raise conversion_error(interaction.id, network.id, "network relation has the wrong kind")
    if not check_relation(EntityKind.INTERACTION, "attribute", interaction.attribute):
        raise conversion_error(interaction.id, network.id, "attribute relation has the wrong kind")
    if (
        interaction.strength is None
        and interaction.attribute is None
        and interaction.attribute_id is not None
    ):
        reasons = [
            e.message for e in interaction.hydration_errors
            if e.target_kind == EntityKind.ATTRIBUTE.resource
        ]
        detail = f": {reasons[0]}" if reasons else ""
        raise conversion_error(
            interaction.id,
            network.id,
            f"attribute {interaction.attribute_id} unresolved, strength unknown{detail}",
        )

    source = _endpoint(network, interaction, "source")
    target = _endpoint(network, interaction, "target")

    strength = infer_strength(interaction)
    try:
        weight = edge_weight(interaction.value, strength)
    except ValueError as e:
        raise conversion_error(interaction.id, network.id, f"{strength.value}: {e}") from e


    attribute = interaction.attribute
    edge = NetworkEdge(
        interaction_id=interaction.id,
        source=source.id,
        target=target.id,
        weight=weight,
        strength=strength,
        interaction_type=interaction.interaction_type,
        attribute_id=interaction.attribute_id,
        attribute=attribute.name if attribute is not None else None,
        directed=interaction.directed,
        value=interaction.value,
    )
    return edge, (source, target)


@dataclass
class MaterializedNetwork:
    """
    Node set and edge collection of one network.

    Attributes:
        network: The network's metadata entity
        nodes: Node id -> Node, endpoints of retained edges only
        edges: One NetworkEdge per retained interaction
        conversion_errors: Interactions that were skipped
    """
    network: Network
    nodes: Dict[int, Node] = field(default_factory=dict)
    edges: List[NetworkEdge] = field(default_factory=list)
    conversion_errors: List[ConversionError] = field(default_factory=list)
    _graph: Optional[nx.MultiDiGraph] = field(default=None, init=False, repr=False)

    @property
    def node_ids(self) -> FrozenSet[int]:
        return frozenset(self.nodes)

    @property
    def node_count(self) -> int:
        return len(self.nodes)

    @property
    def edge_count(self) -> int:
        return len(self.edges)

    @property
    def failures(self) -> List[Failure]:
        return [failure_from_exception(e, identifier=e.interaction_id) for e in self.conversion_errors]

    @property
    def graph(self) -> nx.MultiDiGraph:
        """
        NetworkX view: one node per Node id, one keyed edge per interaction.

        Undirected interactions are stored once with ``directed=False``.
        """
        if self._graph is None:
            g = nx.MultiDiGraph(network_id=self.network.id, name=self.network.name)
            for node_id in sorted(self.nodes):
                node = self.nodes[node_id]
                g.add_node(
                    node_id,
                    name=node.name,
                    original_name=node.original_name,
                    taxonomy_id=node.taxonomy_id,
                    node_level=node.node_level,
                )
            for edge in self.edges:
                g.add_edge(
                    edge.source,
                    edge.target,
                    key=edge.interaction_id,
                    weight=edge.weight,
                    strength=edge.strength.value,
                    type=edge.interaction_type,
                    attribute=edge.attribute,
                    directed=edge.directed,
                )
            self._graph = g
        return self._graph

    def to_matrix(
        self,
        interaction_type: Optional[str] = None,
    ) -> Tuple[List[int], np.ndarray]:
        """
        Dense adjacency matrix, rows = source, columns = target.

        Parallel edges are summed; undirected edges fill both cells.

        Args:
            interaction_type: Keep only edges of this type

        Returns:
            (node ids in row/column order, matrix)
        """
        order = sorted(self.nodes)
        index = {node_id: i for i, node_id in enumerate(order)}
        matrix = np.zeros((len(order), len(order)), dtype=float)

        for edge in self.edges:
            if interaction_type is not None and edge.interaction_type != interaction_type:
                continue
            i, j = index[edge.source], index[edge.target]
            matrix[i, j] += edge.weight
            if not edge.directed and i != j:
                matrix[j, i] += edge.weight

        return order, matrix

    def species(self) -> Dict[int, Optional[str]]:
        """Node id -> canonical (or recorded) taxon name."""
        return {node_id: node.name for node_id, node in sorted(self.nodes.items())}

    def edge_types(self) -> Dict[str, int]:
        """Edge counts per interaction type."""
        return dict(Counter(edge.interaction_type or "unspecified" for edge in self.edges))

    def to_dict(self) -> dict:
        return {
            "networkId": self.network.id,
            "name": self.network.name,
            "nodeCount": self.node_count,
            "edgeCount": self.edge_count,
            "nodes": [
                {"id": node_id, "name": name} for node_id, name in self.species().items()
            ],
            "edges": [e.to_dict() for e in self.edges],
            "failures": [f.to_dict() for f in self.failures],
        }


def materialize_network(
    network: Network,
    interactions: Iterable[Interaction],
) -> MaterializedNetwork:
    """
    Build the node set and edge collection for ``network``.

    Each interaction is converted independently; failures are collected
    on the result and never abort the rest of the network.
    """
    result = MaterializedNetwork(network=network)
    seen: set = set()

    for interaction in interactions:
        interaction_id = getattr(interaction, "id", None)
        if interaction_id is not None and interaction_id in seen:
            result.conversion_errors.append(
                conversion_error(interaction_id, network.id, "duplicate interaction")
            )
            continue

        try:
            edge, endpoints = convert_interaction(network, interaction)
        except ConversionError as e:
            logger.warning(f"network {network.id}: skipped interaction {e.interaction_id}: {e.message}")
            result.conversion_errors.append(e)
            continue

        seen.add(interaction_id)
        result.edges.append(edge)
        for node in endpoints:
            result.nodes.setdefault(node.id, node)

    logger.debug(
        f"materialized network {network.id}: {result.node_count} nodes, "
        f"{result.edge_count} edges, {len(result.conversion_errors)} skipped"
    )
    return result
