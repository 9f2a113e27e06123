"""Generic document store interface shared by the portal services."""

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Literal, Protocol

ACCESS_CODES = "access_codes"
CLIENTS = "clients"
CLIENT_EMAILS = "client_emails"
GALLERIES = "galleries"
GALLERY_MEDIA = "gallery_media"
GALLERY_ACCESS = "gallery_access"
SELECTION_FLAGS = "selection_flags"
SELECTION_PACKAGES = "selection_packages"

# Attempts made by optimistic read-then-batch writes before giving up.
MAX_BATCH_ATTEMPTS = 3


@dataclass(frozen=True)
class Filter:
    """Equality or membership filter on a document field."""

    field: str
    op: Literal["==", "in"]
    value: object


def where(field: str, value: object) -> Filter:
    return Filter(field=field, op="==", value=value)


@dataclass(frozen=True)
class Document:
    """A stored document with its id."""

    id: str
    data: dict[str, object]


@dataclass(frozen=True)
class SetOp:
    """Create or fully replace a document."""

    collection: str
    id: str
    fields: dict[str, object]


@dataclass(frozen=True)
class UpdateOp:
    """Merge fields into an existing document."""

    collection: str
    id: str
    fields: dict[str, object]


@dataclass(frozen=True)
class DeleteOp:
    collection: str
    id: str


@dataclass(frozen=True)
class IncrementOp:
    """Add ``delta`` to a numeric field of an existing document."""

    collection: str
    id: str
    field: str
    delta: int


@dataclass(frozen=True)
class AddToSetOp:
    """Append ``value`` to a list field unless it is already present."""

    collection: str
    id: str
    field: str
    value: object


@dataclass(frozen=True)
class RemoveFromSetOp:
    """Remove every occurrence of ``value`` from a list field."""

    collection: str
    id: str
    field: str
    value: object


BatchOperation = (
    SetOp | UpdateOp | DeleteOp | IncrementOp | AddToSetOp | RemoveFromSetOp
)


@dataclass(frozen=True)
class DocumentExists:
    """Holds when the document exists (or, with ``exists=False``, is absent)."""

    collection: str
    id: str
    exists: bool = True


@dataclass(frozen=True)
class FieldEquals:
    """Holds when the document exists and ``field`` equals ``value``."""

    collection: str
    id: str
    field: str
    value: object


@dataclass(frozen=True)
class CounterBelowLimit:
    """Holds when ``counter_field < limit_field`` or the limit is null."""

    collection: str
    id: str
    counter_field: str
    limit_field: str


Precondition = DocumentExists | FieldEquals | CounterBelowLimit


class DocumentStore(Protocol):
    """Persistence interface for schemaless documents grouped in collections.

    Implementations raise ``StoreUnavailableError`` when the backing store
    cannot be reached and ``NotFoundError`` when ``update`` or ``increment``
    target a missing document.
    """

    async def get(self, collection: str, doc_id: str) -> Document | None:
        """Return a document by id, if present."""

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]:
        """Return documents matching every filter."""

    async def set(
        self, collection: str, doc_id: str, fields: dict[str, object]
    ) -> None:
        """Create or replace a document."""

    async def update(
        self, collection: str, doc_id: str, fields: dict[str, object]
    ) -> None:
        """Merge fields into an existing document."""

    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document; deleting a missing document is a no-op."""

    async def increment(
        self, collection: str, doc_id: str, field: str, delta: int
    ) -> None:
        """Atomically add ``delta`` to a numeric field."""

    async def run_atomic_batch(
        self,
        operations: Sequence[BatchOperation],
        preconditions: Sequence[Precondition] = (),
    ) -> bool:
        """Apply all operations atomically.

        Returns False, without applying anything, when a precondition does not
        hold at commit time.
        """
