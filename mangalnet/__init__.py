"""Retrieval and network materialization for the Mangal ecological-interaction database."""

from .client import BulkResult, EntityStream, MangalClient
from .retrieval import (
    EntityKind,
    MaterializedNetwork,
    RetrievalError,
    HydrationError,
    ConversionError,
    SchemaError,
)

__version__ = "0.3.0"

__all__ = [
    "MangalClient",
    "EntityStream",
    "BulkResult",
    "EntityKind",
    "MaterializedNetwork",
    "RetrievalError",
    "HydrationError",
    "ConversionError",
    "SchemaError",
]
