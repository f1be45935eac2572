"""
Query Builder
=============

Turns caller filters into the ordered list of query parameters sent with
every listing request.

Filters are dynamic: the remote API accepts any column name as a filter
(``type=predation``, ``network_id=42``, ``q=Salix``), so keys are never
checked against a schema. Order is preserved and keys may repeat.

Accepted Inputs
---------------
    None                              -> empty query
    {"type": "predation"}             -> mapping, insertion order kept
    [("type", "predation"), ...]      -> pairs, duplicates kept
    Query                             -> returned unchanged

Values are sent as strings: ``True`` -> ``"true"``, ``42`` -> ``"42"``.
Pairs whose value is ``None`` are dropped. The ``count`` and ``page`` keys
belong to the paginator and are rejected.

Example
-------
    >>> q = build_query([("type", "predation"), ("type", "herbivory")])
    >>> q.extend({"network_id": 42}).to_params()
    [('type', 'predation'), ('type', 'herbivory'), ('network_id', '42')]
"""

from dataclasses import dataclass
from typing import Any, Iterable, Iterator, List, Mapping, Optional, Tuple, Union

from .validation import ValidationError

# Keys the paginator controls; a filter must not override them
RESERVED_KEYS = frozenset({"count", "page"})

# Full-text search parameter understood by every listing endpoint
SEARCH_KEY = "q"


def _encode_value(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


@dataclass(frozen=True)
class FilterPair:
    """One key/value filter."""
    key: str
    value: str

    def as_tuple(self) -> Tuple[str, str]:
        return (self.key, self.value)


@dataclass(frozen=True)
class Query:
    """Canonical, order-preserving filter set."""

    pairs: Tuple[FilterPair, ...] = ()

    def __iter__(self) -> Iterator[FilterPair]:
        return iter(self.pairs)

    def __len__(self) -> int:
        return len(self.pairs)

    def __bool__(self) -> bool:
        return bool(self.pairs)

    def extend(self, filters: "FilterInput") -> "Query":
        """Return a new query with ``filters`` appended."""
        return Query(self.pairs + build_query(filters).pairs)

    def values(self, key: str) -> List[str]:
        """All values given for ``key``, in order."""
        return [p.value for p in self.pairs if p.key == key]

    def to_params(self) -> List[Tuple[str, str]]:
        """Pairs in the form accepted by ``requests`` ``params=``."""
        return [p.as_tuple() for p in self.pairs]

    def __str__(self) -> str:
        return "&".join(f"{p.key}={p.value}" for p in self.pairs)


FilterInput = Union[None, Query, Mapping[str, Any], Iterable[Tuple[str, Any]]]


def build_query(filters: FilterInput = None) -> Query:
    """
    Build a Query from any supported filter input.

    Raises:
        ValidationError: If a key is empty, not a string, or reserved
    """
    if filters is None:
        return Query()
    if isinstance(filters, Query):
        return filters

    if isinstance(filters, Mapping):
        items: Iterable = filters.items()
    else:
        items = filters

    pairs = []
    for item in items:
        try:
            key, value = item
        except (TypeError, ValueError):
            raise ValidationError("filters", "each filter must be a (key, value) pair", item)

        if not isinstance(key, str) or not key.strip():
            raise ValidationError("filters", "filter keys must be non-empty strings", key)
        key = key.strip()
        if key in RESERVED_KEYS:
            raise ValidationError("filters", f"'{key}' is reserved for pagination", key)

        if value is None:
            continue
        pairs.append(FilterPair(key, _encode_value(value)))

    return Query(tuple(pairs))


def search_query(text: str, filters: Optional[FilterInput] = None) -> Query:
    """Full-text search across a resource, optionally narrowed further."""
    if not isinstance(text, str) or not text.strip():
        raise ValidationError(SEARCH_KEY, "search text must be a non-empty string", text)
    return build_query([(SEARCH_KEY, text.strip())]).extend(filters)
