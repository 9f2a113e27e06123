"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass

from supabase import AsyncClient

from gallery_portal.adapters.email_client import EmailClient, HttpxEmailClient
from gallery_portal.adapters.supabase_document_store import SupabaseDocumentStore
from gallery_portal.adapters.supabase_storage_signer import (
    SupabaseStorageSigner,
    UrlSigner,
)
from gallery_portal.config import Settings
from gallery_portal.services.access import AccessRegistry
from gallery_portal.services.clients import ClientDirectory
from gallery_portal.services.documents import DocumentStore
from gallery_portal.services.galleries import GalleryCatalog
from gallery_portal.services.notifications import NotificationService
from gallery_portal.services.packages import PackageLifecycle
from gallery_portal.services.selections import SelectionLedger


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    store: DocumentStore
    email_client: EmailClient
    catalog: GalleryCatalog
    clients: ClientDirectory
    access: AccessRegistry
    ledger: SelectionLedger
    notifications: NotificationService
    packages: PackageLifecycle
    close_resources: Callable[[], Awaitable[None]]


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = AsyncClient(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    store = SupabaseDocumentStore(supabase_client)
    signer = SupabaseStorageSigner(supabase_client, resolved_settings.storage_bucket)
    email_client = HttpxEmailClient.create(
        function_url=resolved_settings.email_function_url,
        api_key=resolved_settings.email_api_key,
        sender=resolved_settings.email_from,
    )

    async def close_resources() -> None:
        await email_client.close()

    return wire_services(
        resolved_settings,
        store=store,
        email_client=email_client,
        signer=signer,
        close_resources=close_resources,
    )


def wire_services(
    settings: Settings,
    store: DocumentStore,
    email_client: EmailClient,
    signer: UrlSigner,
    close_resources: Callable[[], Awaitable[None]],
) -> AppContainer:
    """Assemble the services around already-built adapters."""
    catalog = GalleryCatalog(store)
    clients = ClientDirectory(store)
    access = AccessRegistry(store, clients, catalog)
    ledger = SelectionLedger(store, access, catalog)
    notifications = NotificationService(
        email_client=email_client,
        clients=clients,
        catalog=catalog,
        photographer_email=settings.photographer_email,
    )
    packages = PackageLifecycle(
        store=store,
        ledger=ledger,
        catalog=catalog,
        signer=signer,
        notifications=notifications,
        default_download_hours=settings.default_download_hours,
    )
    return AppContainer(
        settings=settings,
        store=store,
        email_client=email_client,
        catalog=catalog,
        clients=clients,
        access=access,
        ledger=ledger,
        notifications=notifications,
        packages=packages,
        close_resources=close_resources,
    )
