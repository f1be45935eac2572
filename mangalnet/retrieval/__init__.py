"""
Retrieval Module for mangalnet
==============================

Fetches ecological-interaction records from the paginated Mangal REST
database, hydrates them into typed, cross-referencing entities and
materializes networks (nodes + weighted, typed edges) for graph analysis.

Components
----------
    query:
        Ordered, pass-through filter pairs for listing requests.

    transport:
        requests-backed HTTP GET with timeout and error mapping.

    fetcher:
        Page walks sized from the server-side count; lazy, restartable,
        optionally parallel, cancellable between pages.

    entities:
        The seven entity kinds, their frozen dataclasses and the closed
        foreign-key hierarchy.

    cache:
        Keep-first session cache with at-most-once loads per (kind, id).

    resolver:
        Recursive hydration of foreign keys through the cache, with
        per-relation error capture.

    materialize:
        Interactions -> node set, edge list, NetworkX multigraph and
        adjacency matrix, with boolean / probabilistic / quantitative
        weights.

    counts:
        Global and parent-scoped totals, per-network summaries.

Usage Example
-------------
    from mangalnet.retrieval import (
        HttpTransport, PaginatedFetcher, ReferenceResolver, materialize_network
    )

    fetcher = PaginatedFetcher(HttpTransport(), page_size=200)
    resolver = ReferenceResolver(fetcher)
    network = resolver.resolve("network", 42)
    records = fetcher.iter_records("interaction", {"network_id": 42})
    batch = resolver.hydrate_all("interaction", records)
    result = materialize_network(network, batch.entities)

See Also
--------
    - mangalnet/client.py: MangalClient wires all of the above together
"""

from .query import (
    FilterPair,
    Query,
    build_query,
    search_query,
)
from .transport import (
    HttpTransport,
    TransportResponse,
    parse_content_range,
)
from .fetcher import (
    PaginatedFetcher,
    RecordStream,
    page_count,
)
from .entities import (
    EntityKind,
    StrengthKind,
    RelationField,
    Entity,
    Dataset,
    Reference,
    Network,
    Interaction,
    Attribute,
    Node,
    ReferenceTaxon,
    HIERARCHY,
    PARENT_FILTERS,
    relations_of,
    entity_class,
    hierarchy_depth,
    check_relation,
    validate_record,
)
from .cache import (
    EntityCache,
    CacheStats,
)
from .resolver import (
    ReferenceResolver,
    HydrationBatch,
)
from .materialize import (
    MaterializedNetwork,
    NetworkEdge,
    materialize_network,
    convert_interaction,
    infer_strength,
    edge_weight,
)
from .counts import (
    CountAggregator,
    NetworkCounts,
    INTERACTION_TYPES,
    parent_filter,
)
from .errors import (
    ErrorCode,
    MangalError,
    RetrievalError,
    RetrievalCancelled,
    HydrationError,
    ConversionError,
    SchemaError,
    Failure,
    failure_from_exception,
)
from .config import Config, reload_config
from .validation import (
    ValidationError,
    validate_positive_int,
    validate_page_size,
    validate_page_index,
    validate_entity_id,
    validate_kind,
    validate_max_workers,
)

__all__ = [
    # Query
    "FilterPair",
    "Query",
    "build_query",
    "search_query",
    # Transport
    "HttpTransport",
    "TransportResponse",
    "parse_content_range",
    # Fetcher
    "PaginatedFetcher",
    "RecordStream",
    "page_count",
    # Entities
    "EntityKind",
    "StrengthKind",
    "RelationField",
    "Entity",
    "Dataset",
    "Reference",
    "Network",
    "Interaction",
    "Attribute",
    "Node",
    "ReferenceTaxon",
    "HIERARCHY",
    "PARENT_FILTERS",
    "relations_of",
    "entity_class",
    "hierarchy_depth",
    "check_relation",
    "validate_record",
    # Cache
    "EntityCache",
    "CacheStats",
    # Resolver
    "ReferenceResolver",
    "HydrationBatch",
    # Materialize
    "MaterializedNetwork",
    "NetworkEdge",
    "materialize_network",
    "convert_interaction",
    "infer_strength",
    "edge_weight",
    # Counts
    "CountAggregator",
    "NetworkCounts",
    "INTERACTION_TYPES",
    "parent_filter",
    # Errors
    "ErrorCode",
    "MangalError",
    "RetrievalError",
    "RetrievalCancelled",
    "HydrationError",
    "ConversionError",
    "SchemaError",
    "Failure",
    "failure_from_exception",
    # Config
    "Config",
    "reload_config",
    # Validation
    "ValidationError",
    "validate_positive_int",
    "validate_page_size",
    "validate_page_index",
    "validate_entity_id",
    "validate_kind",
    "validate_max_workers",
]
