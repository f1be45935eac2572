"""
Error Handling for Retrieval
============================

Typed errors for every stage of retrieval, plus the per-item failure record
returned alongside partial results.

Error Codes
-----------
    TRANSPORT (retryable): Connection failed or server answered with an error
    TIMEOUT (retryable): Request exceeded its timeout
    CANCELLED: Retrieval stopped by the caller
    MISSING_RELATION: A referenced record does not exist remotely
    MALFORMED_PAYLOAD: A referenced record could not be parsed
    SCHEMA_VIOLATION: Record shape does not match the entity hierarchy
    CONVERSION_FAILED: Record cannot be placed in network form

Propagation
-----------
    RetrievalError propagates to the caller with enough context (kind,
    filters, page or id) to retry the same request verbatim.

    HydrationError, ConversionError and SchemaError are data-shape errors.
    Bulk operations capture them as Failure records and carry on.

Usage
-----
    from mangalnet.retrieval.errors import RetrievalError, failure_from_exception

    try:
        records = fetcher.fetch_page("network", page=3)
    except RetrievalError as e:
        if e.retryable:
            records = fetcher.fetch_page("network", page=e.page)

    failures.append(failure_from_exception(exc, identifier=record_id))
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple


class ErrorCode(Enum):
    """Standard error codes with retry semantics."""

    TRANSPORT = ("TRANSPORT", True, "Remote request failed")
    TIMEOUT = ("TIMEOUT", True, "Remote request timed out")
    CANCELLED = ("CANCELLED", False, "Retrieval was cancelled")
    MISSING_RELATION = ("MISSING_RELATION", False, "Referenced record not found")
    MALFORMED_PAYLOAD = ("MALFORMED_PAYLOAD", False, "Referenced record is malformed")
    SCHEMA_VIOLATION = ("SCHEMA_VIOLATION", False, "Record violates entity schema")
    CONVERSION_FAILED = ("CONVERSION_FAILED", False, "Record cannot be materialized")

    def __init__(self, code: str, retryable: bool, default_message: str):
        self.code = code
        self.retryable = retryable
        self.default_message = default_message


@dataclass(eq=False)
class MangalError(Exception):
    """Base exception with error code."""

    error_code: ErrorCode
    message: str

    def __post_init__(self):
        super().__init__(self.message)

    @property
    def retryable(self) -> bool:
        return self.error_code.retryable

    def __str__(self) -> str:
        return f"[{self.error_code.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.error_code.code,
            "message": self.message,
            "retryable": self.retryable,
        }


@dataclass(eq=False)
class RetrievalError(MangalError):
    """
    Transport or page-level failure.

    Requests are idempotent, so the same kind/filters/page (or id) can be
    re-issued as-is.
    """

    kind: Optional[str] = None
    filters: Tuple[Tuple[str, str], ...] = ()
    page: Optional[int] = None
    entity_id: Optional[int] = None
    status: Optional[int] = None
    cause: Optional[BaseException] = None

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({
            "kind": self.kind,
            "filters": [list(pair) for pair in self.filters],
            "page": self.page,
            "id": self.entity_id,
            "status": self.status,
        })
        return result


@dataclass(eq=False)
class RetrievalCancelled(RetrievalError):
    """Raised between fetches once the caller's cancel event is set."""


@dataclass(eq=False)
class HydrationError(MangalError):
    """A relation of an owning record could not be resolved."""

    owner_kind: Optional[str] = None
    owner_id: Optional[int] = None
    field: Optional[str] = None
    target_kind: Optional[str] = None
    target_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        result = super().to_dict()
        result.update({
            "ownerKind": self.owner_kind,
            "ownerId": self.owner_id,
            "field": self.field,
            "targetKind": self.target_kind,
            "targetId": self.target_id,
        })
        return result


@dataclass(eq=False)
class ConversionError(MangalError):
    """An interaction could not be converted to an edge."""

    interaction_id: Optional[int] = None
    network_id: Optional[int] = None

    def __str__(self) -> str:
        return f"[{self.error_code.code}] interaction {self.interaction_id}: {self.message}"


@dataclass(eq=False)
class SchemaError(MangalError):
    """A record's shape does not match its entity kind."""

    kind: Optional[str] = None
    entity_id: Optional[Any] = None

    def __str__(self) -> str:
        return f"[{self.error_code.code}] {self.kind} {self.entity_id}: {self.message}"


def retrieval_error(
    message: str,
    kind: Optional[str] = None,
    filters: Sequence[Tuple[str, str]] = (),
    page: Optional[int] = None,
    entity_id: Optional[int] = None,
    status: Optional[int] = None,
    cause: Optional[BaseException] = None,
    timeout: bool = False,
) -> RetrievalError:
    """Shorthand for retryable transport errors."""
    return RetrievalError(
        ErrorCode.TIMEOUT if timeout else ErrorCode.TRANSPORT,
        message,
        kind=kind,
        filters=tuple(filters),
        page=page,
        entity_id=entity_id,
        status=status,
        cause=cause,
    )


def schema_error(kind: str, entity_id: Any, reason: str) -> SchemaError:
    """Shorthand for schema violations."""
    return SchemaError(
        ErrorCode.SCHEMA_VIOLATION,
        reason,
        kind=kind,
        entity_id=entity_id,
    )


def conversion_error(
    interaction_id: Optional[int],
    network_id: Optional[int],
    reason: str,
) -> ConversionError:
    """Shorthand for skipped interactions."""
    return ConversionError(
        ErrorCode.CONVERSION_FAILED,
        reason,
        interaction_id=interaction_id,
        network_id=network_id,
    )


@dataclass
class Failure:
    """One item that could not be processed in a bulk operation."""

    identifier: Any
    reason: str
    code: str = ErrorCode.CONVERSION_FAILED.code

    def to_dict(self) -> Dict[str, Any]:
        return {
            "identifier": self.identifier,
            "reason": self.reason,
            "code": self.code,
        }


def failure_from_exception(exc: Exception, identifier: Any = None) -> Failure:
    """
    Build a Failure from an exception.

    If the exception is a MangalError, its error code is kept. Otherwise
    the failure is reported as a conversion failure with the exception text.
    """
    if isinstance(exc, MangalError):
        return Failure(identifier=identifier, reason=exc.message, code=exc.error_code.code)
    return Failure(identifier=identifier, reason=str(exc))
