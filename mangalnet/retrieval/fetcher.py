"""
Paginated Fetcher - Page-by-page walks over listing endpoints
==============================================================

Issues successive page requests against a resource and exposes the raw
records as a lazy, restartable sequence.

Page Sizing
-----------
The number of pages is fixed up front from the server-side total:

    total = count(kind, filters)          # one request, count=1
    pages = ceil(total / page_size)       # page indices 0 .. pages-1

Exactly that many pages are requested, even when the last one is only
partially filled. Page indices are passed explicitly to every request;
there is no shared cursor.

Ordering
--------
Pages are yielded in index order and records in server order within a
page. With ``max_workers > 1`` pages are fetched on a bounded thread pool
but still yielded in index order.

Cancellation
------------
A ``threading.Event`` may be supplied; it is checked before every page
request. Once set, the walk raises RetrievalCancelled and any queued page
requests are dropped.

Example
-------
    >>> fetcher = PaginatedFetcher(HttpTransport(), page_size=100)
    >>> fetcher.count(EntityKind.NETWORK)
    1329
    >>> stream = fetcher.iter_records(EntityKind.NETWORK, {"public": True})
    >>> first = next(iter(stream))
    >>> records = list(stream)   # walks again from page 0
"""

import logging
import math
import threading
from collections import deque
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Deque, Dict, Iterator, List, Optional, Tuple

from .entities import EntityKind
from .errors import ErrorCode, RetrievalCancelled, RetrievalError, retrieval_error
from .query import FilterInput, Query, build_query
from .transport import parse_content_range
from .validation import (
    validate_entity_id,
    validate_kind,
    validate_max_workers,
    validate_page_index,
    validate_page_size,
)

logger = logging.getLogger("Mangal.Fetcher")

Record = Dict[str, Any]


def page_count(total: int, page_size: int) -> int:
    """Number of pages needed to hold ``total`` records."""
    if total <= 0:
        return 0
    return math.ceil(total / page_size)


def _header(headers, name: str) -> Optional[str]:
    if headers is None:
        return None
    value = headers.get(name)
    if value is None:
        lowered = name.lower()
        for key, val in headers.items():
            if key.lower() == lowered:
                return val
    return value


class RecordStream:
    """
    Lazy, restartable sequence of raw records.

    Every iteration re-counts and walks pages from index 0, so a stream can
    be consumed more than once.
    """

    def __init__(
        self,
        fetcher: "PaginatedFetcher",
        kind: EntityKind,
        query: Query,
        page_size: int,
    ):
        self.fetcher = fetcher
        self.kind = kind
        self.query = query
        self.page_size = page_size

    def __iter__(self) -> Iterator[Record]:
        for _, records in self.pages():
            yield from records

    def pages(self) -> Iterator[Tuple[int, List[Record]]]:
        """Iterate ``(page_index, records)`` pairs."""
        return self.fetcher.iter_pages(self.kind, self.query, self.page_size)

    @property
    def total(self) -> int:
        return self.fetcher.count(self.kind, self.query)

    def __repr__(self) -> str:
        return f"RecordStream(kind={self.kind.resource}, query='{self.query}', page_size={self.page_size})"


class PaginatedFetcher:
    """
    Page-walking reader over a transport.

    Attributes:
        transport: Object with ``get(path, params) -> TransportResponse``
        page_size: Default records per page
        max_workers: Concurrent page requests (1 = sequential)
        cancel_event: Optional event checked between page fetches
    """

    def __init__(
        self,
        transport,
        page_size: Optional[int] = None,
        max_workers: Optional[int] = None,
        cancel_event: Optional[threading.Event] = None,
    ):
        self.transport = transport
        self.page_size = validate_page_size(page_size)
        self.max_workers = validate_max_workers(max_workers)
        self.cancel_event = cancel_event

    # === REQUESTS ===

    def count(self, kind, filters: FilterInput = None) -> int:
        """
        Total number of records matching ``filters``.

        Only one record body is transferred; the total is read from the
        Content-Range header.

        Raises:
            RetrievalError: On transport failure or missing/invalid header
        """
        kind = validate_kind(kind)
        query = build_query(filters)
        params = [("count", "1"), ("page", "0")] + query.to_params()

        try:
            resp = self.transport.get(kind.resource, params)
        except RetrievalError as e:
            raise replace(e, kind=kind.resource, filters=tuple(query.to_params())) from e

        total = parse_content_range(_header(resp.headers, "Content-Range"))
        if total is None:
            raise retrieval_error(
                f"count of {kind.resource} returned no usable Content-Range header",
                kind=kind.resource,
                filters=query.to_params(),
            )
        logger.debug(f"count {kind.resource} [{query}] = {total}")
        return total

    def fetch_page(
        self,
        kind,
        page: int,
        filters: FilterInput = None,
        page_size: Optional[int] = None,
    ) -> List[Record]:
        """
        Fetch one page of raw records.

        Raises:
            RetrievalError: Carrying kind, filters and page index
        """
        kind = validate_kind(kind)
        page = validate_page_index(page)
        size = validate_page_size(page_size or self.page_size)
        query = build_query(filters)
        params = [("count", str(size)), ("page", str(page))] + query.to_params()

        try:
            resp = self.transport.get(kind.resource, params)
        except RetrievalError as e:
            raise replace(
                e,
                message=f"{kind.resource} page {page}: {e.message}",
                kind=kind.resource,
                filters=tuple(query.to_params()),
                page=page,
            ) from e

        if not isinstance(resp.payload, list):
            raise retrieval_error(
                f"{kind.resource} page {page}: expected a JSON array, got {type(resp.payload).__name__}",
                kind=kind.resource,
                filters=query.to_params(),
                page=page,
            )

        logger.debug(f"fetched {kind.resource} page {page}: {len(resp.payload)} records")
        return resp.payload

    def fetch_one(self, kind, entity_id: int) -> Any:
        """
        Fetch a single record by identifier.

        The payload is returned undecoded; shape checks are the caller's.

        Raises:
            RetrievalError: Carrying kind and id (status 404 if missing)
        """
        kind = validate_kind(kind)
        entity_id = validate_entity_id(entity_id)
        self._check_cancelled(kind, Query(), None)

        try:
            resp = self.transport.get(f"{kind.resource}/{entity_id}")
        except RetrievalError as e:
            raise replace(
                e,
                message=f"{kind.resource} {entity_id}: {e.message}",
                kind=kind.resource,
                entity_id=entity_id,
            ) from e

        logger.debug(f"fetched {kind.resource} {entity_id}")
        return resp.payload

    # === WALKS ===

    def iter_records(
        self,
        kind,
        filters: FilterInput = None,
        page_size: Optional[int] = None,
    ) -> RecordStream:
        """Lazy stream over every record matching ``filters``."""
        return RecordStream(
            self,
            validate_kind(kind),
            build_query(filters),
            validate_page_size(page_size or self.page_size),
        )

    def iter_pages(
        self,
        kind,
        filters: FilterInput = None,
        page_size: Optional[int] = None,
    ) -> Iterator[Tuple[int, List[Record]]]:
        """
        Yield ``(page_index, records)`` for every page, in index order.
        """
        kind = validate_kind(kind)
        query = build_query(filters)
        size = validate_page_size(page_size or self.page_size)

        total = self.count(kind, query)
        n_pages = page_count(total, size)
        logger.debug(
            f"walking {kind.resource} [{query}]: {total} records in {n_pages} pages of {size}"
        )

        if self.max_workers <= 1 or n_pages <= 1:
            for page in range(n_pages):
                self._check_cancelled(kind, query, page)
                yield page, self.fetch_page(kind, page, query, size)
            return

        yield from self._iter_pages_parallel(kind, query, size, n_pages)

    def _iter_pages_parallel(
        self,
        kind: EntityKind,
        query: Query,
        size: int,
        n_pages: int,
    ) -> Iterator[Tuple[int, List[Record]]]:
        """Sliding window of at most max_workers in-flight pages."""
        with ThreadPoolExecutor(
            max_workers=self.max_workers,
            thread_name_prefix=f"mangal-{kind.resource}",
        ) as pool:
            window: Deque = deque()
            next_page = 0
            try:
                while next_page < n_pages or window:
                    while next_page < n_pages and len(window) < self.max_workers:
                        self._check_cancelled(kind, query, next_page)
                        window.append((
                            next_page,
                            pool.submit(self.fetch_page, kind, next_page, query, size),
                        ))
                        next_page += 1
                    page, future = window.popleft()
                    yield page, future.result()
            finally:
                for _, future in window:
                    future.cancel()

    def _check_cancelled(self, kind: EntityKind, query: Query, page: Optional[int]) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            logger.info(f"retrieval of {kind.resource} cancelled before page {page}")
            raise RetrievalCancelled(
                ErrorCode.CANCELLED,
                f"retrieval of {kind.resource} cancelled",
                kind=kind.resource,
                filters=tuple(query.to_params()),
                page=page,
            )
