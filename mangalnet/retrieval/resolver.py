"""
Reference Resolver - Hydrate raw records into typed entities
=============================================================

Replaces every foreign-key field of a raw record with the entity it points
to, fetching related records on demand through the session cache.

Resolution Algorithm
--------------------
Given a raw record of kind K:

    1. Validate the record's shape against the hierarchy (SchemaError)
    2. For each relation field declared for K with a non-null id:
         resolve(relation kind, id)
           - cache hit: reuse the stored entity
           - miss: fetch the single record, validate it, hydrate it
             (recursively, at most three hops), store it
    3. Build the immutable entity; relations that failed are None and
       their HydrationErrors are attached to the entity

A failing relation never stops its siblings: an interaction whose
attribute is missing still gets its nodes and network.

Failure Policy
--------------
    Missing record (HTTP 404)   -> HydrationError(MISSING_RELATION), cached
    Malformed record            -> HydrationError(MALFORMED_PAYLOAD), cached
    Transport failure           -> RetrievalError, propagated, not cached
    Malformed top-level record  -> SchemaError from hydrate(); hydrate_all()
                                   reports it as a Failure instead

Example
-------
    >>> resolver = ReferenceResolver(fetcher)
    >>> node = resolver.resolve(EntityKind.NODE, 2011)
    >>> node.taxon.name
    'Salix alba'
    >>> interaction = resolver.hydrate(EntityKind.INTERACTION, raw_record)
    >>> interaction.source.id, interaction.target.id
    (2011, 2012)
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional, Union

from .cache import EntityCache
from .entities import Entity, EntityKind, entity_class, relations_of, validate_record
from .errors import (
    ErrorCode,
    Failure,
    HydrationError,
    RetrievalError,
    SchemaError,
    failure_from_exception,
)
from .fetcher import PaginatedFetcher
from .validation import validate_entity_id, validate_kind, validate_max_workers

logger = logging.getLogger("Mangal.Resolver")


@dataclass
class HydrationBatch:
    """Result of hydrating many records: entities in input order plus failures."""
    entities: List[Entity] = field(default_factory=list)
    failures: List[Failure] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entityCount": len(self.entities),
            "failures": [f.to_dict() for f in self.failures],
        }


class ReferenceResolver:
    """
    Cache-backed hydration of raw records.

    Attributes:
        fetcher: PaginatedFetcher used for single-record requests
        cache: Session cache keyed by (EntityKind, id)
        max_workers: Concurrent hydrations in hydrate_all()
    """

    def __init__(
        self,
        fetcher: PaginatedFetcher,
        cache: Optional[EntityCache] = None,
        max_workers: Optional[int] = None,
    ):
        self.fetcher = fetcher
        self.cache = cache if cache is not None else EntityCache()
        self.max_workers = validate_max_workers(max_workers or fetcher.max_workers)

    def resolve(self, kind, entity_id: int) -> Entity:
        """
        Return the hydrated entity for ``(kind, entity_id)``.

        Raises:
            HydrationError: Record missing or malformed upstream
            RetrievalError: Transport failure (retryable)
        """
        kind = validate_kind(kind)
        entity_id = validate_entity_id(entity_id)
        return self.cache.get_or_load(
            (kind, entity_id),
            lambda: self._load(kind, entity_id),
        )

    def hydrate(self, kind, record: Any) -> Entity:
        """
        Hydrate a raw record (typically from a listing page).

        If the cache already holds this entity, the cached one is returned
        and the record is not re-hydrated.

        Raises:
            SchemaError: Record shape violates the hierarchy
            RetrievalError: Transport failure while resolving a relation
        """
        kind = validate_kind(kind)
        entity_id = validate_record(kind, record)
        key = (kind, entity_id)

        existing = self.cache.peek(key)
        if existing is not None:
            return existing

        entity = self._build(kind, record)
        return self.cache.put(key, entity)

    def hydrate_all(self, kind, records: Iterable[Any]) -> HydrationBatch:
        """
        Hydrate a batch, collecting schema failures instead of raising.

        Entities keep the order of ``records``. Transport failures still
        propagate.
        """
        kind = validate_kind(kind)
        records = list(records)
        batch = HydrationBatch()

        if self.max_workers > 1 and len(records) > 1:
            with ThreadPoolExecutor(
                max_workers=self.max_workers,
                thread_name_prefix=f"mangal-hydrate-{kind.resource}",
            ) as pool:
                outcomes = list(pool.map(lambda r: self._hydrate_or_error(kind, r), records))
        else:
            outcomes = [self._hydrate_or_error(kind, r) for r in records]

        for record, outcome in zip(records, outcomes):
            if isinstance(outcome, SchemaError):
                identifier = record.get("id") if isinstance(record, dict) else None
                batch.failures.append(failure_from_exception(outcome, identifier=identifier))
            else:
                batch.entities.append(outcome)

        if batch.failures:
            logger.warning(
                f"hydrated {len(batch.entities)} {kind.resource} records, "
                f"{len(batch.failures)} rejected"
            )
        return batch

    def _hydrate_or_error(self, kind: EntityKind, record: Any) -> Union[Entity, SchemaError]:
        try:
            return self.hydrate(kind, record)
        except SchemaError as e:
            logger.warning(f"rejected record: {e}")
            return e

    def _load(self, kind: EntityKind, entity_id: int) -> Entity:
        """Fetch, validate and hydrate one record (cache miss path)."""
        try:
            record = self.fetcher.fetch_one(kind, entity_id)
        except RetrievalError as e:
            if e.status == 404:
                raise HydrationError(
                    ErrorCode.MISSING_RELATION,
                    f"{kind.resource} {entity_id} does not exist",
                    target_kind=kind.resource,
                    target_id=entity_id,
                ) from e
            raise

        try:
            found_id = validate_record(kind, record)
        except SchemaError as e:
            raise HydrationError(
                ErrorCode.MALFORMED_PAYLOAD,
                f"{kind.resource} {entity_id}: {e.message}",
                target_kind=kind.resource,
                target_id=entity_id,
            ) from e
        if found_id != entity_id:
            raise HydrationError(
                ErrorCode.MALFORMED_PAYLOAD,
                f"requested {kind.resource} {entity_id}, server returned id {found_id}",
                target_kind=kind.resource,
                target_id=entity_id,
            )

        return self._build(kind, record)

    def _build(self, kind: EntityKind, record: Dict[str, Any]) -> Entity:
        entity_id = record["id"]
        relations: Dict[str, Entity] = {}
        errors: List[HydrationError] = []

        for rel in relations_of(kind):
            target_id = record.get(rel.field)
            if target_id is None:
                continue
            try:
                relations[rel.attr] = self.resolve(rel.kind, target_id)
            except HydrationError as e:
                errors.append(HydrationError(
                    e.error_code,
                    f"{kind.resource} {entity_id}.{rel.field}: {e.message}",
                    owner_kind=kind.resource,
                    owner_id=entity_id,
                    field=rel.field,
                    target_kind=rel.kind.resource,
                    target_id=target_id,
                ))

        for err in errors:
            logger.warning(f"hydration error: {err.message}")

        return entity_class(kind).from_record(record, relations, tuple(errors))
