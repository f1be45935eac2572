"""
Tests for interaction-to-edge conversion.
"""

import math

import networkx as nx
import numpy as np
import pytest

from mangalnet.retrieval.entities import (
    Attribute,
    Interaction,
    Network,
    Node,
    ReferenceTaxon,
    StrengthKind,
)
from mangalnet.retrieval.errors import ConversionError, ErrorCode, HydrationError
from mangalnet.retrieval.materialize import (
    convert_interaction,
    edge_weight,
    infer_strength,
    materialize_network,
)

PRESENCE = Attribute.from_record({"id": 1, "name": "presence/absence"})
BIOMASS = Attribute.from_record({"id": 2, "name": "biomass", "unit": "g"})
PROBABILITY = Attribute.from_record({"id": 3, "name": "interaction probability"})


def make_network(network_id=42):
    return Network.from_record({"id": network_id, "name": f"net{network_id}"})


def make_node(node_id, network_id=42):
    taxon = ReferenceTaxon.from_record({"id": node_id, "name": f"Species {node_id}"})
    return Node.from_record(
        {"id": node_id, "network_id": network_id, "taxonomy_id": node_id},
        {"taxon": taxon},
    )


def make_interaction(interaction_id, source, target, value=1, attribute=PRESENCE,
                     network=None, network_id=42, **extra):
    network = network if network is not None else make_network(network_id)
    record = {
        "id": interaction_id,
        "network_id": network_id,
        "node_from": source.id if isinstance(source, Node) else source,
        "node_to": target.id if isinstance(target, Node) else target,
        "attr_id": attribute.id if attribute is not None else None,
        "value": value,
    }
    record.update(extra)
    relations = {
        "network": network,
        "source": source if isinstance(source, Node) else None,
        "target": target if isinstance(target, Node) else None,
        "attribute": attribute,
    }
    return Interaction.from_record(record, relations)


@pytest.fixture
def network():
    return make_network()


@pytest.fixture
def nodes():
    return {i: make_node(i) for i in range(1, 6)}


class TestInferStrength:
    """Tests for infer_strength()."""

    def test_explicit_strength_wins(self, nodes):
        i = make_interaction(1, nodes[1], nodes[2], attribute=BIOMASS, strength="probabilistic")
        assert infer_strength(i) is StrengthKind.PROBABILISTIC

    @pytest.mark.parametrize("attribute,expected", [
        (PRESENCE, StrengthKind.BOOLEAN),
        (PROBABILITY, StrengthKind.PROBABILISTIC),
        (Attribute.from_record({"id": 4, "name": "frequency", "unit": "probability"}), StrengthKind.PROBABILISTIC),
        (BIOMASS, StrengthKind.QUANTITATIVE),
    ])
    def test_from_attribute(self, nodes, attribute, expected):
        i = make_interaction(1, nodes[1], nodes[2], attribute=attribute)
        assert infer_strength(i) is expected

    @pytest.mark.parametrize("value,expected", [
        (None, StrengthKind.BOOLEAN),
        (True, StrengthKind.BOOLEAN),
        (3.5, StrengthKind.QUANTITATIVE),
    ])
    def test_without_attribute(self, nodes, value, expected):
        i = make_interaction(1, nodes[1], nodes[2], value=value, attribute=None)
        assert infer_strength(i) is expected


class TestEdgeWeight:
    """Tests for edge_weight()."""

    @pytest.mark.parametrize("value", [1, True, None, "1", "present", 0, False, "0", "false"])
    def test_boolean_record_is_present(self, value):
        assert edge_weight(value, StrengthKind.BOOLEAN) == 1.0

    def test_probability_range(self):
        assert edge_weight(0.25, StrengthKind.PROBABILISTIC) == 0.25
        assert edge_weight(1, StrengthKind.PROBABILISTIC) == 1.0
        with pytest.raises(ValueError):
            edge_weight(1.5, StrengthKind.PROBABILISTIC)
        with pytest.raises(ValueError):
            edge_weight(-0.1, StrengthKind.PROBABILISTIC)

    def test_quantitative(self):
        assert edge_weight(12.5, StrengthKind.QUANTITATIVE) == 12.5
        assert edge_weight("3", StrengthKind.QUANTITATIVE) == 3.0
        assert edge_weight(0, StrengthKind.QUANTITATIVE) == 0.0

    @pytest.mark.parametrize("value", [-1, None, "lots", math.nan, math.inf])
    def test_quantitative_rejects(self, value):
        with pytest.raises(ValueError):
            edge_weight(value, StrengthKind.QUANTITATIVE)


class TestConvertInteraction:
    """Tests for convert_interaction()."""

    def test_edge_fields(self, network, nodes):
        i = make_interaction(7, nodes[1], nodes[2], attribute=BIOMASS, value=4.2, type="predation")

        edge, (source, target) = convert_interaction(network, i)

        assert (edge.source, edge.target) == (1, 2)
        assert edge.weight == 4.2
        assert edge.strength is StrengthKind.QUANTITATIVE
        assert edge.interaction_type == "predation"
        assert edge.attribute == "biomass"
        assert edge.directed
        assert (source, target) == (nodes[1], nodes[2])

    def test_foreign_interaction(self, network, nodes):
        i = make_interaction(7, nodes[1], nodes[2], network_id=43)
        with pytest.raises(ConversionError) as exc_info:
            convert_interaction(network, i)
        assert exc_info.value.error_code is ErrorCode.CONVERSION_FAILED
        assert exc_info.value.interaction_id == 7

    def test_foreign_node(self, network, nodes):
        stranger = make_node(99, network_id=43)
        i = make_interaction(7, nodes[1], stranger)
        with pytest.raises(ConversionError) as exc_info:
            convert_interaction(network, i)
        assert "network 43" in exc_info.value.message

    def test_unresolved_node_reports_cause(self, network, nodes):
        cause = HydrationError(
            ErrorCode.MISSING_RELATION, "node 55 does not exist",
            owner_kind="interaction", owner_id=7, field="node_to",
            target_kind="node", target_id=55,
        )
        record = {"id": 7, "network_id": 42, "node_from": 1, "node_to": 55, "value": 1}
        i = Interaction.from_record(record, {"source": nodes[1], "network": network}, (cause,))

        with pytest.raises(ConversionError) as exc_info:
            convert_interaction(network, i)
        assert "node 55 does not exist" in exc_info.value.message

    def test_wrong_endpoint_kind(self, network, nodes):
        record = {"id": 7, "network_id": 42, "node_from": 1, "node_to": 2, "value": 1}
        taxon = ReferenceTaxon.from_record({"id": 2})
        i = Interaction.from_record(record, {"source": nodes[1], "target": taxon, "network": network})
        with pytest.raises(ConversionError):
            convert_interaction(network, i)

    def test_not_an_interaction(self, network, nodes):
        with pytest.raises(ConversionError):
            convert_interaction(network, nodes[1])


class TestMaterializeNetwork:
    """Tests for materialize_network()."""

    def test_one_malformed_of_ten(self, network, nodes):
        interactions = [
            make_interaction(100 + k, nodes[1 + k % 5], nodes[1 + (k + 1) % 5])
            for k in range(9)
        ]
        interactions.insert(4, make_interaction(200, nodes[1], None))

        result = materialize_network(network, interactions)

        assert result.edge_count == 9
        assert len(result.conversion_errors) == 1
        assert result.conversion_errors[0].interaction_id == 200
        assert "200" in str(result.conversion_errors[0])
        assert [f.identifier for f in result.failures] == [200]

    def test_boolean_edges_match_inputs(self, network, nodes):
        """Every boolean record on a distinct pair is one edge, whatever its value."""
        interactions = [
            make_interaction(1, nodes[1], nodes[2], value=1, strength="boolean"),
            make_interaction(2, nodes[2], nodes[3], value=True, strength="boolean"),
            make_interaction(3, nodes[3], nodes[4], value=0, strength="boolean"),
            make_interaction(4, nodes[4], nodes[5], value=False, strength="boolean"),
        ]

        result = materialize_network(network, interactions)

        assert result.edge_count == len(interactions)
        assert result.conversion_errors == []
        assert result.node_ids == frozenset({1, 2, 3, 4, 5})
        assert all(e.weight == 1.0 for e in result.edges)
        assert [e.value for e in result.edges] == [1, True, 0, False]

    def test_unresolved_attribute_is_not_guessed(self, network, nodes):
        cause = HydrationError(
            ErrorCode.MISSING_RELATION, "attribute 9 does not exist",
            owner_kind="interaction", owner_id=5, field="attr_id",
            target_kind="attribute", target_id=9,
        )
        record = {"id": 5, "network_id": 42, "node_from": 1, "node_to": 2, "attr_id": 9, "value": 0.4}
        relations = {"network": network, "source": nodes[1], "target": nodes[2]}
        unresolved = Interaction.from_record(record, relations, (cause,))
        explicit = Interaction.from_record(dict(record, id=6, strength="probabilistic"), relations)

        result = materialize_network(network, [unresolved, explicit])

        assert [e.interaction_id for e in result.edges] == [6]
        assert result.edges[0].strength is StrengthKind.PROBABILISTIC
        assert result.conversion_errors[0].interaction_id == 5
        assert "attribute 9 does not exist" in result.conversion_errors[0].message

    def test_node_set_from_retained_edges_only(self, network, nodes):
        interactions = [
            make_interaction(1, nodes[1], nodes[2]),
            make_interaction(2, nodes[3], nodes[4], attribute=PROBABILITY, value=7),
        ]

        result = materialize_network(network, interactions)

        endpoints = {e.source for e in result.edges} | {e.target for e in result.edges}
        assert result.node_ids == endpoints == frozenset({1, 2})

    def test_quantitative_zero_is_an_edge(self, network, nodes):
        result = materialize_network(network, [
            make_interaction(1, nodes[1], nodes[2], attribute=BIOMASS, value=0),
        ])
        assert result.edge_count == 1
        assert result.edges[0].weight == 0.0

    def test_parallel_edges_kept(self, network, nodes):
        interactions = [
            make_interaction(1, nodes[1], nodes[2], type="predation"),
            make_interaction(2, nodes[1], nodes[2], type="competition"),
        ]

        result = materialize_network(network, interactions)

        assert result.edge_count == 2
        assert result.graph.number_of_edges(1, 2) == 2
        assert set(result.graph[1][2]) == {1, 2}
        assert result.edge_types() == {"predation": 1, "competition": 1}

    def test_duplicate_interaction_rejected(self, network, nodes):
        i = make_interaction(1, nodes[1], nodes[2])
        result = materialize_network(network, [i, i])
        assert result.edge_count == 1
        assert len(result.conversion_errors) == 1

    def test_graph_attributes(self, network, nodes):
        result = materialize_network(network, [
            make_interaction(1, nodes[1], nodes[2], attribute=BIOMASS, value=2.5, type="predation"),
        ])

        g = result.graph
        assert isinstance(g, nx.MultiDiGraph)
        assert g.graph["network_id"] == 42
        assert g.nodes[1]["name"] == "Species 1"
        assert g.edges[1, 2, 1]["weight"] == 2.5
        assert g.edges[1, 2, 1]["type"] == "predation"

    def test_matrix(self, network, nodes):
        interactions = [
            make_interaction(1, nodes[1], nodes[2], type="predation"),
            make_interaction(2, nodes[2], nodes[3], type="mutualism", direction="undirected"),
            make_interaction(3, nodes[1], nodes[2], type="competition"),
        ]
        result = materialize_network(network, interactions)

        order, matrix = result.to_matrix()
        assert order == [1, 2, 3]
        np.testing.assert_array_equal(matrix, np.array([
            [0.0, 2.0, 0.0],
            [0.0, 0.0, 1.0],
            [0.0, 1.0, 0.0],
        ]))

        _, predation = result.to_matrix(interaction_type="predation")
        assert predation.sum() == 1.0

    def test_empty_network(self, network):
        result = materialize_network(network, [])
        order, matrix = result.to_matrix()
        assert order == []
        assert matrix.shape == (0, 0)
        assert result.graph.number_of_nodes() == 0

    def test_to_dict(self, network, nodes):
        result = materialize_network(network, [make_interaction(1, nodes[1], nodes[2])])
        exported = result.to_dict()
        assert exported["networkId"] == 42
        assert exported["edgeCount"] == 1
        assert exported["nodes"] == [{"id": 1, "name": "Species 1"}, {"id": 2, "name": "Species 2"}]
