"""
Mangal Client - Consumer-facing retrieval API
==============================================

Wires transport, paginator, session cache, resolver, materializer and
counter together behind the three calls the analysis layer needs.

Public Methods
--------------
    fetch_entities(kind, filters)
        Lazy stream of hydrated entities; rejected records are collected
        on ``stream.failures``.

    fetch_network(network_id)
        MaterializedNetwork (node set + typed, weighted edges).

    count(kind, filters, parent=None)
        Server-side total, optionally scoped to a parent entity.

    fetch_networks(filters, progress=False)
        Bulk fetch-and-convert. Returns the materialized networks together
        with every (identifier, reason) failure.

Session Lifetime
----------------
    A client owns one session cache. Entities fetched through it are
    reused until the client is closed or ``clear_cache()`` is called.

Example
-------
    >>> with MangalClient() as client:
    ...     client.count("interaction", {"type": "predation"}, parent=("network", 42))
    ...     net = client.fetch_network(42)
    ...     nodes, matrix = net.to_matrix()
"""

import logging
import threading
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from tqdm import tqdm

from .retrieval.cache import EntityCache
from .retrieval.counts import CountAggregator, NetworkCounts, ParentRef
from .retrieval.entities import Entity, EntityKind, Network
from .retrieval.errors import Failure, conversion_error
from .retrieval.fetcher import PaginatedFetcher
from .retrieval.materialize import MaterializedNetwork, materialize_network
from .retrieval.query import FilterInput, Query, build_query, search_query
from .retrieval.resolver import ReferenceResolver
from .retrieval.transport import HttpTransport
from .retrieval.validation import validate_entity_id, validate_kind

logger = logging.getLogger("Mangal.Client")


class EntityStream:
    """
    Lazy, restartable stream of hydrated entities.

    Records are hydrated page by page as the stream is consumed. Records
    that fail schema validation are skipped and listed in ``failures``,
    which is reset at the start of every iteration.
    """

    def __init__(
        self,
        client: "MangalClient",
        kind: EntityKind,
        query: Query,
        page_size: Optional[int] = None,
    ):
        self.client = client
        self.kind = kind
        self.query = query
        self.page_size = page_size
        self.failures: List[Failure] = []

    def __iter__(self) -> Iterator[Entity]:
        self.failures = []
        pages = self.client.fetcher.iter_pages(self.kind, self.query, self.page_size)
        for _, records in pages:
            batch = self.client.resolver.hydrate_all(self.kind, records)
            self.failures.extend(batch.failures)
            yield from batch.entities

    @property
    def total(self) -> int:
        """Server-side record count (before any rejections)."""
        return self.client.fetcher.count(self.kind, self.query)

    def __repr__(self) -> str:
        return f"EntityStream(kind={self.kind.resource}, query='{self.query}')"


@dataclass
class BulkResult:
    """Outcome of a bulk fetch-and-convert."""
    networks: List[MaterializedNetwork] = field(default_factory=list)
    failures: List[Failure] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures

    def to_dict(self) -> Dict[str, Any]:
        return {
            "networkCount": len(self.networks),
            "networks": [n.network.id for n in self.networks],
            "failures": [f.to_dict() for f in self.failures],
        }


class MangalClient:
    """
    Retrieval session against the REST API.

    Attributes:
        transport: HTTP transport (or any object with the same ``get``)
        fetcher: PaginatedFetcher
        cache: Session EntityCache
        resolver: ReferenceResolver
        counts: CountAggregator
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        transport=None,
        page_size: Optional[int] = None,
        max_workers: Optional[int] = None,
        timeout: Optional[float] = None,
        cache: Optional[EntityCache] = None,
    ):
        self._owns_transport = transport is None
        self.transport = transport or HttpTransport(base_url=base_url, timeout=timeout)
        self.cancel_event = threading.Event()
        self.fetcher = PaginatedFetcher(
            self.transport,
            page_size=page_size,
            max_workers=max_workers,
            cancel_event=self.cancel_event,
        )
        self.cache = cache if cache is not None else EntityCache()
        self.resolver = ReferenceResolver(self.fetcher, self.cache)
        self.counts = CountAggregator(self.fetcher)

    # === CONSUMER API ===

    def fetch_entities(
        self,
        kind,
        filters: FilterInput = None,
        page_size: Optional[int] = None,
    ) -> EntityStream:
        """Lazy stream of hydrated ``kind`` entities matching ``filters``."""
        return EntityStream(self, validate_kind(kind), build_query(filters), page_size)

    def fetch_network(self, network_id: int) -> MaterializedNetwork:
        """
        Resolve one network and materialize its interactions.

        Raises:
            HydrationError: If the network itself does not exist
            RetrievalError: On transport failure
        """
        network_id = validate_entity_id(network_id, "network_id")
        network = self.resolver.resolve(EntityKind.NETWORK, network_id)
        return self._materialize(network)

    def count(
        self,
        kind,
        filters: FilterInput = None,
        parent: Optional[ParentRef] = None,
    ) -> int:
        return self.counts.count(kind, filters, parent=parent)

    def fetch_networks(
        self,
        filters: FilterInput = None,
        progress: bool = False,
    ) -> BulkResult:
        """
        Fetch and materialize every network matching ``filters``.

        Malformed networks and skipped interactions are reported in
        ``failures``; the caller decides whether that is acceptable.
        Transport failures still raise.
        """
        stream = self.fetch_entities(EntityKind.NETWORK, filters)
        total = stream.total if progress else None
        result = BulkResult()

        for network in tqdm(stream, total=total, desc="networks", disable=not progress):
            materialized = self._materialize(network)
            result.networks.append(materialized)
            result.failures.extend(
                Failure(
                    identifier=(EntityKind.INTERACTION.resource, e.interaction_id),
                    reason=e.message,
                    code=e.error_code.code,
                )
                for e in materialized.conversion_errors
            )

        result.failures.extend(
            Failure(identifier=(EntityKind.NETWORK.resource, f.identifier), reason=f.reason, code=f.code)
            for f in stream.failures
        )
        logger.info(
            f"fetched {len(result.networks)} networks, {len(result.failures)} failures"
        )
        return result

    # === CONVENIENCE ===

    def resolve(self, kind, entity_id: int) -> Entity:
        return self.resolver.resolve(kind, entity_id)

    def search(self, kind, text: str, filters: FilterInput = None) -> EntityStream:
        """Full-text search over one resource."""
        return EntityStream(self, validate_kind(kind), search_query(text, filters))

    def network_summary(self, network_id: int) -> NetworkCounts:
        return self.counts.network_summary(network_id)

    def cancel(self) -> None:
        """Stop in-flight walks before their next page request."""
        self.cancel_event.set()

    def reset_cancel(self) -> None:
        self.cancel_event.clear()

    def clear_cache(self) -> int:
        return self.cache.clear()

    def cache_info(self) -> Dict[str, Any]:
        return self.cache.get_info()

    def close(self) -> None:
        if self._owns_transport:
            self.transport.close()

    def __enter__(self) -> "MangalClient":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # === INTERNALS ===

    def _materialize(self, network: Network) -> MaterializedNetwork:
        scope = [("network_id", network.id)]
        interactions = []
        rejected = []
        for _, records in self.fetcher.iter_pages(EntityKind.INTERACTION, scope):
            batch = self.resolver.hydrate_all(EntityKind.INTERACTION, records)
            interactions.extend(batch.entities)
            rejected.extend(batch.failures)

        result = materialize_network(network, interactions)
        result.conversion_errors.extend(
            conversion_error(f.identifier, network.id, f.reason) for f in rejected
        )
        return result
