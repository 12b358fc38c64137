"""Document store port and adapters."""

from safecampus.infrastructure.documents.field_ops import (
    SERVER_TIMESTAMP,
    ArrayAppend,
    Filter,
)
from safecampus.infrastructure.documents.memory_store import InMemoryDocumentStore
from safecampus.infrastructure.documents.store import (
    DocumentExistsError,
    DocumentNotFoundError,
    DocumentStore,
    DocumentStoreError,
    Subscription,
    Transaction,
)

__all__ = [
    "DocumentStore",
    "DocumentStoreError",
    "DocumentExistsError",
    "DocumentNotFoundError",
    "Transaction",
    "Subscription",
    "InMemoryDocumentStore",
    "Filter",
    "ArrayAppend",
    "SERVER_TIMESTAMP",
]
