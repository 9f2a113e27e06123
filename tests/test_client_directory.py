"""Tests for the client directory."""

import asyncio

import pytest

from gallery_portal.domain.access import AccessType, GrantSettings
from gallery_portal.errors import (
    ClientHasActivePackagesError,
    EmailInUseError,
    NotFoundError,
)
from gallery_portal.services.documents import (
    ACCESS_CODES,
    CLIENT_EMAILS,
    CLIENTS,
    GALLERY_ACCESS,
    SELECTION_FLAGS,
)
from tests.conftest import register_client, seed_gallery


def test_create_or_get_by_email_normalizes_and_reuses(container, store) -> None:
    clients = container.clients

    async def run():  # type: ignore[no-untyped-def]
        first = await clients.create_or_get_by_email(" Ana@Example.COM ", name="Ana")
        second = await clients.create_or_get_by_email("ana@example.com")
        return first, second

    first, second = asyncio.run(run())

    assert first.id == second.id
    assert first.email == "ana@example.com"
    assert store.ids(CLIENTS) == {first.id}
    assert store.peek(CLIENT_EMAILS, "ana@example.com") == {"clientId": first.id}


def test_concurrent_registration_creates_one_client(container, store) -> None:
    clients = container.clients

    async def run():  # type: ignore[no-untyped-def]
        return await asyncio.gather(
            *[clients.create_or_get_by_email("ben@example.com") for _ in range(4)]
        )

    results = asyncio.run(run())

    assert len({client.id for client in results}) == 1
    assert len(store.ids(CLIENTS)) == 1


def test_blank_email_is_rejected(container) -> None:
    with pytest.raises(ValueError):
        asyncio.run(container.clients.create_or_get_by_email("   "))


def test_update_changes_email_and_keeps_it_unique(container, store) -> None:
    clients = container.clients

    async def run():  # type: ignore[no-untyped-def]
        ana = await clients.create_or_get_by_email("ana@example.com", name="Ana")
        await clients.create_or_get_by_email("ben@example.com", name="Ben")
        updated = await clients.update(
            ana.id, name="Ana Smith", email="ana.smith@example.com"
        )
        return ana, updated

    ana, updated = asyncio.run(run())

    assert updated.name == "Ana Smith"
    assert updated.email == "ana.smith@example.com"
    assert store.peek(CLIENT_EMAILS, "ana@example.com") is None
    assert store.peek(CLIENT_EMAILS, "ana.smith@example.com") == {"clientId": ana.id}

    with pytest.raises(EmailInUseError):
        asyncio.run(clients.update(ana.id, email="BEN@example.com"))
    assert store.peek(CLIENTS, ana.id)["email"] == "ana.smith@example.com"


def test_require_unknown_client_fails(container) -> None:
    with pytest.raises(NotFoundError):
        asyncio.run(container.clients.require("missing"))


def test_delete_cascades_to_grants_and_flags(container, store) -> None:
    seed_gallery(store, "g1", ["m1"])
    seed_gallery(store, "g2", ["m2"])
    settings = GrantSettings(access_type=AccessType.SELECT)
    client_id = register_client(container, "g1", settings=settings)

    async def run() -> None:
        await container.access.grant("g2", client_id, settings)
        await container.ledger.toggle(client_id, "g1", "m1", True)
        await container.ledger.toggle(client_id, "g2", "m2", True)
        await container.clients.delete(client_id)

    asyncio.run(run())

    assert not store.ids(CLIENTS)
    assert not store.ids(CLIENT_EMAILS)
    assert not store.ids(GALLERY_ACCESS)
    assert not store.ids(ACCESS_CODES)
    assert not store.ids(SELECTION_FLAGS)


def test_delete_refused_while_packages_are_active(container, store) -> None:
    seed_gallery(store, "g1", ["m1"])
    client_id = register_client(
        container, "g1", settings=GrantSettings(access_type=AccessType.SELECT)
    )

    async def run() -> None:
        await container.ledger.toggle(client_id, "g1", "m1", True)
        await container.packages.create("g1", client_id, submit=True)
        await container.clients.delete(client_id)

    with pytest.raises(ClientHasActivePackagesError):
        asyncio.run(run())
    assert store.ids(CLIENTS) == {client_id}


def test_list_clients_newest_first(container) -> None:
    clients = container.clients

    async def run():  # type: ignore[no-untyped-def]
        first = await clients.create_or_get_by_email("ana@example.com")
        await asyncio.sleep(0.01)
        second = await clients.create_or_get_by_email("ben@example.com")
        return first, second, await clients.list_clients()

    first, second, listed = asyncio.run(run())

    assert [client.id for client in listed] == [second.id, first.id]
