"""Tests for Supabase adapter implementations."""

import asyncio
from dataclasses import dataclass, field

import httpx
import pytest
from postgrest.exceptions import APIError

from gallery_portal.adapters.supabase_document_store import SupabaseDocumentStore
from gallery_portal.adapters.supabase_storage_signer import SupabaseStorageSigner
from gallery_portal.errors import NotFoundError, StoreUnavailableError
from gallery_portal.services.documents import (
    AddToSetOp,
    CounterBelowLimit,
    DocumentExists,
    FieldEquals,
    Filter,
    IncrementOp,
    SetOp,
    where,
)


@dataclass
class FakeResponse:
    data: object


@dataclass
class FakeRequest:
    """Records a PostgREST request builder chain."""

    name: str
    responses: list[object]
    calls: list[tuple[str, tuple, dict]] = field(default_factory=list)
    error: Exception | None = None

    def __getattr__(self, method: str):  # type: ignore[no-untyped-def]
        def record(*args, **kwargs):  # type: ignore[no-untyped-def]
            self.calls.append((method, args, kwargs))
            return self

        return record

    async def execute(self) -> FakeResponse:
        if self.error is not None:
            raise self.error
        return FakeResponse(self.responses.pop(0) if self.responses else [])


@dataclass
class FakeBucket:
    payload: dict[str, object]
    requests: list[tuple[str, int]] = field(default_factory=list)

    async def create_signed_url(self, path: str, expires_in: int) -> dict[str, object]:
        self.requests.append((path, expires_in))
        return self.payload


@dataclass
class FakeStorage:
    bucket: FakeBucket
    names: list[str] = field(default_factory=list)

    def from_(self, name: str) -> FakeBucket:
        self.names.append(name)
        return self.bucket


@dataclass
class FakeSupabaseClient:
    responses: list[object] = field(default_factory=list)
    error: Exception | None = None
    requests: list[FakeRequest] = field(default_factory=list)
    storage: FakeStorage | None = None

    def table(self, name: str) -> FakeRequest:
        request = FakeRequest(name, self.responses, error=self.error)
        self.requests.append(request)
        return request

    def rpc(self, name: str, params: dict[str, object]) -> FakeRequest:
        request = FakeRequest(name, self.responses, error=self.error)
        request.calls.append(("rpc", (name, params), {}))
        self.requests.append(request)
        return request


def test_get_returns_document() -> None:
    client = FakeSupabaseClient(responses=[[{"id": "c1", "data": {"name": "Ana"}}]])
    store = SupabaseDocumentStore(client)

    document = asyncio.run(store.get("clients", "c1"))

    assert document is not None
    assert document.id == "c1"
    assert document.data == {"name": "Ana"}
    calls = client.requests[0].calls
    assert ("eq", ("collection", "clients"), {}) in calls
    assert ("eq", ("id", "c1"), {}) in calls


def test_get_missing_document_returns_none() -> None:
    store = SupabaseDocumentStore(FakeSupabaseClient(responses=[[]]))

    assert asyncio.run(store.get("clients", "nope")) is None


def test_query_filters_on_json_fields_and_orders() -> None:
    client = FakeSupabaseClient(
        responses=[[{"id": "a", "data": {}}, {"id": "b", "data": {}}]]
    )
    store = SupabaseDocumentStore(client)

    documents = asyncio.run(
        store.query(
            "selection_flags",
            [
                where("clientId", "c1"),
                where("selected", True),
                Filter(field="mediaId", op="in", value=["m1", "m2"]),
            ],
            order_by="createdAt",
            descending=True,
        )
    )

    assert [document.id for document in documents] == ["a", "b"]
    calls = client.requests[0].calls
    assert ("eq", ("data->>clientId", "c1"), {}) in calls
    assert ("eq", ("data->>selected", "true"), {}) in calls
    assert ("in_", ("data->>mediaId", ["m1", "m2"]), {}) in calls
    assert ("order", ("data->>createdAt",), {"desc": True}) in calls


def test_set_upserts_document() -> None:
    client = FakeSupabaseClient()
    store = SupabaseDocumentStore(client)

    asyncio.run(store.set("galleries", "g1", {"title": "Wedding"}))

    method, args, kwargs = client.requests[0].calls[0]
    assert method == "upsert"
    assert args[0] == {
        "collection": "galleries",
        "id": "g1",
        "data": {"title": "Wedding"},
    }
    assert kwargs == {"on_conflict": "collection,id"}


def test_atomic_batch_serializes_operations_and_preconditions() -> None:
    client = FakeSupabaseClient(responses=[True])
    store = SupabaseDocumentStore(client)

    applied = asyncio.run(
        store.run_atomic_batch(
            [
                SetOp("selection_flags", "f1", {"selected": True}),
                IncrementOp("gallery_access", "g1:c1", "selectionCount", 1),
                AddToSetOp("clients", "c1", "galleries", "g1"),
            ],
            [
                DocumentExists("selection_flags", "f1", exists=False),
                FieldEquals("gallery_access", "g1:c1", "selectionVersion", 4),
                CounterBelowLimit(
                    "gallery_access", "g1:c1", "selectionCount", "maxSelections"
                ),
            ],
        )
    )

    assert applied is True
    _, (name, params), _ = client.requests[0].calls[0]
    assert name == "apply_document_batch"
    assert params["operations"] == [
        {
            "collection": "selection_flags",
            "id": "f1",
            "op": "set",
            "fields": {"selected": True},
        },
        {
            "collection": "gallery_access",
            "id": "g1:c1",
            "op": "increment",
            "field": "selectionCount",
            "delta": 1,
        },
        {
            "collection": "clients",
            "id": "c1",
            "op": "add_to_set",
            "field": "galleries",
            "value": "g1",
        },
    ]
    assert [item["check"] for item in params["preconditions"]] == [
        "exists",
        "field_equals",
        "counter_below_limit",
    ]
    assert params["preconditions"][0]["exists"] is False


def test_update_of_missing_document_raises_not_found() -> None:
    store = SupabaseDocumentStore(FakeSupabaseClient(responses=[False]))

    with pytest.raises(NotFoundError):
        asyncio.run(store.update("clients", "nope", {"name": "x"}))


def test_increment_maps_missing_document_error() -> None:
    error = APIError({"message": "document not found", "code": "P0002"})
    store = SupabaseDocumentStore(FakeSupabaseClient(error=error))

    with pytest.raises(NotFoundError):
        asyncio.run(store.increment("gallery_media", "m1", "downloadCount", 1))


def test_api_and_transport_errors_become_store_unavailable() -> None:
    api_error = APIError({"message": "boom", "code": "XX000"})
    transport_error = httpx.ConnectError("connection refused")

    for error in (api_error, transport_error):
        store = SupabaseDocumentStore(FakeSupabaseClient(error=error))
        with pytest.raises(StoreUnavailableError):
            asyncio.run(store.query("clients"))


def test_storage_signer_strips_public_url_prefix() -> None:
    bucket = FakeBucket(payload={"signedURL": "https://signed.example/a.jpg?token=t"})
    client = FakeSupabaseClient(storage=FakeStorage(bucket))
    signer = SupabaseStorageSigner(client, "gallery-originals")

    url = asyncio.run(
        signer.sign_url(
            "https://x.supabase.co/storage/v1/object/public/gallery-originals/g1/a.jpg",
            48,
        )
    )

    assert url == "https://signed.example/a.jpg?token=t"
    assert bucket.requests == [("g1/a.jpg", 48 * 3600)]
    assert client.storage.names == ["gallery-originals"]


def test_storage_signer_raises_without_url() -> None:
    client = FakeSupabaseClient(storage=FakeStorage(FakeBucket(payload={})))
    signer = SupabaseStorageSigner(client, "gallery-originals")

    with pytest.raises(RuntimeError):
        asyncio.run(signer.sign_url("g1/a.jpg", 1))
