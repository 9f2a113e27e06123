"""Supabase-backed document store.

Documents live in a single ``documents(collection, id, data jsonb)`` table.
Plain reads and writes go through PostgREST; increments and atomic batches run
inside the Postgres functions defined in ``supabase/migrations``.
"""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient

from gallery_portal.errors import NotFoundError, StoreUnavailableError
from gallery_portal.services.documents import (
    AddToSetOp,
    BatchOperation,
    CounterBelowLimit,
    DeleteOp,
    Document,
    DocumentExists,
    DocumentStore,
    FieldEquals,
    Filter,
    IncrementOp,
    Precondition,
    RemoveFromSetOp,
    SetOp,
    UpdateOp,
)

logger = logging.getLogger(__name__)

TABLE = "documents"
# Raised by the migration functions when the target document is missing.
_MISSING_DOCUMENT_CODE = "P0002"


@dataclass
class SupabaseDocumentStore(DocumentStore):
    """Supabase implementation of the document store."""

    client: AsyncClient

    async def get(self, collection: str, doc_id: str) -> Document | None:
        """Return a document by id, if present."""
        response = await self._execute(
            self.client.table(TABLE)
            .select("id, data")
            .eq("collection", collection)
            .eq("id", doc_id)
            .limit(1)
        )
        if response.data:
            return _document(response.data[0])
        return None

    async def query(
        self,
        collection: str,
        filters: Sequence[Filter] = (),
        order_by: str | None = None,
        descending: bool = False,
    ) -> list[Document]:
        """Return documents matching every filter."""
        request = self.client.table(TABLE).select("id, data").eq(
            "collection", collection
        )
        for item in filters:
            column = f"data->>{item.field}"
            if item.op == "in":
                values = item.value if isinstance(item.value, list | tuple) else []
                request = request.in_(column, [_text(value) for value in values])
            else:
                request = request.eq(column, _text(item.value))
        if order_by:
            request = request.order(f"data->>{order_by}", desc=descending)
        response = await self._execute(request)
        return [_document(row) for row in response.data or []]

    async def set(
        self, collection: str, doc_id: str, fields: dict[str, object]
    ) -> None:
        """Create or replace a document."""
        await self._execute(
            self.client.table(TABLE).upsert(
                {"collection": collection, "id": doc_id, "data": fields},
                on_conflict="collection,id",
            )
        )

    async def update(
        self, collection: str, doc_id: str, fields: dict[str, object]
    ) -> None:
        """Merge fields into an existing document."""
        applied = await self.run_atomic_batch(
            [UpdateOp(collection, doc_id, fields)],
            [DocumentExists(collection, doc_id)],
        )
        if not applied:
            raise NotFoundError(
                "Document not found", {"collection": collection, "id": doc_id}
            )

    async def delete(self, collection: str, doc_id: str) -> None:
        """Delete a document; deleting a missing document is a no-op."""
        await self._execute(
            self.client.table(TABLE)
            .delete()
            .eq("collection", collection)
            .eq("id", doc_id)
        )

    async def increment(
        self, collection: str, doc_id: str, field: str, delta: int
    ) -> None:
        """Atomically add ``delta`` to a numeric field."""
        await self._execute(
            self.client.rpc(
                "increment_document_field",
                {
                    "target_collection": collection,
                    "target_id": doc_id,
                    "field_name": field,
                    "delta": delta,
                },
            ),
            context={"collection": collection, "id": doc_id},
        )

    async def run_atomic_batch(
        self,
        operations: Sequence[BatchOperation],
        preconditions: Sequence[Precondition] = (),
    ) -> bool:
        """Apply all operations in one Postgres transaction."""
        response = await self._execute(
            self.client.rpc(
                "apply_document_batch",
                {
                    "operations": [serialize_operation(op) for op in operations],
                    "preconditions": [
                        serialize_precondition(item) for item in preconditions
                    ],
                },
            )
        )
        return bool(response.data)

    async def _execute(self, request: Any, context: dict[str, Any] | None = None):
        try:
            return await request.execute()
        except APIError as exc:
            if exc.code == _MISSING_DOCUMENT_CODE:
                raise NotFoundError("Document not found", context) from exc
            logger.warning("Supabase request failed: %s", exc.message)
            raise StoreUnavailableError(
                "Document store request failed", {"code": exc.code}
            ) from exc
        except httpx.HTTPError as exc:
            logger.warning("Supabase is unreachable: %s", exc)
            raise StoreUnavailableError("Document store is unreachable") from exc


def serialize_operation(operation: BatchOperation) -> dict[str, object]:
    """Encode a batch operation for ``apply_document_batch``."""
    base: dict[str, object] = {"collection": operation.collection, "id": operation.id}
    if isinstance(operation, SetOp):
        return {**base, "op": "set", "fields": operation.fields}
    if isinstance(operation, UpdateOp):
        return {**base, "op": "update", "fields": operation.fields}
    if isinstance(operation, DeleteOp):
        return {**base, "op": "delete"}
    if isinstance(operation, IncrementOp):
        return {
            **base,
            "op": "increment",
            "field": operation.field,
            "delta": operation.delta,
        }
    if isinstance(operation, AddToSetOp):
        return {
            **base,
            "op": "add_to_set",
            "field": operation.field,
            "value": operation.value,
        }
    if isinstance(operation, RemoveFromSetOp):
        return {
            **base,
            "op": "remove_from_set",
            "field": operation.field,
            "value": operation.value,
        }
    raise TypeError(f"Unsupported batch operation: {operation!r}")


def serialize_precondition(precondition: Precondition) -> dict[str, object]:
    """Encode a batch precondition for ``apply_document_batch``."""
    base: dict[str, object] = {
        "collection": precondition.collection,
        "id": precondition.id,
    }
    if isinstance(precondition, DocumentExists):
        return {**base, "check": "exists", "exists": precondition.exists}
    if isinstance(precondition, FieldEquals):
        return {
            **base,
            "check": "field_equals",
            "field": precondition.field,
            "value": precondition.value,
        }
    if isinstance(precondition, CounterBelowLimit):
        return {
            **base,
            "check": "counter_below_limit",
            "counter_field": precondition.counter_field,
            "limit_field": precondition.limit_field,
        }
    raise TypeError(f"Unsupported precondition: {precondition!r}")


def _document(row: dict[str, Any]) -> Document:
    return Document(id=str(row["id"]), data=dict(row.get("data") or {}))


def _text(value: object) -> str:
    """Render a filter value the way ``->>`` renders jsonb scalars."""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)
