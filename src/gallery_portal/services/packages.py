"""Selection package lifecycle: snapshots, review transitions and delivery."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from uuid import uuid4

from gallery_portal.adapters.supabase_storage_signer import UrlSigner
from gallery_portal.domain.fields import format_timestamp
from gallery_portal.domain.packages import (
    DEFAULT_PACKAGE_NAME,
    DOWNLOADABLE_STATUSES,
    NOTIFYING_STATUSES,
    STATUS_TIMESTAMP_FIELDS,
    DownloadLink,
    PackageStatus,
    SelectionPackage,
    next_status,
    package_from_document,
    package_to_document,
)
from gallery_portal.errors import (
    EmptySelectionError,
    InvalidTransitionError,
    NotFoundError,
    PackageNotApprovedError,
    StoreUnavailableError,
)
from gallery_portal.services.documents import (
    CLIENTS,
    MAX_BATCH_ATTEMPTS,
    SELECTION_PACKAGES,
    BatchOperation,
    DocumentExists,
    DocumentStore,
    FieldEquals,
    IncrementOp,
    SetOp,
    UpdateOp,
    where,
)
from gallery_portal.services.galleries import GalleryCatalog
from gallery_portal.services.notifications import NotificationService
from gallery_portal.services.selections import SelectionLedger

logger = logging.getLogger(__name__)

DEFAULT_DOWNLOAD_HOURS = 48


@dataclass
class PackageLifecycle:
    """Application service for selection packages.

    A package freezes the ledger at creation time: later toggles never change
    its ``selection_ids``. Status only moves forward one step at a time and
    every status timestamp is stamped exactly once.
    """

    store: DocumentStore
    ledger: SelectionLedger
    catalog: GalleryCatalog
    signer: UrlSigner
    notifications: NotificationService
    default_download_hours: int = DEFAULT_DOWNLOAD_HOURS

    async def create(
        self,
        gallery_id: str,
        client_id: str,
        name: str | None = None,
        comments: str = "",
        submit: bool = False,
    ) -> SelectionPackage:
        """Snapshot the client's current selection into a new package."""
        selections = await self.ledger.current_selections(client_id, gallery_id)
        if not selections:
            raise EmptySelectionError(
                "No images selected",
                {"gallery_id": gallery_id, "client_id": client_id},
            )
        now = datetime.now(tz=UTC)
        package = SelectionPackage(
            id=uuid4().hex,
            gallery_id=gallery_id,
            client_id=client_id,
            name=(name or "").strip() or DEFAULT_PACKAGE_NAME,
            status=PackageStatus.SUBMITTED if submit else PackageStatus.DRAFT,
            selection_ids=tuple(selection.id for selection in selections),
            submitted_at=now if submit else None,
            approved_at=None,
            delivered_at=None,
            comments=comments,
            created_at=now,
            updated_at=now,
        )
        created = await self.store.run_atomic_batch(
            [
                SetOp(SELECTION_PACKAGES, package.id, package_to_document(package)),
                IncrementOp(CLIENTS, client_id, "activePackageCount", 1),
            ],
            preconditions=[
                DocumentExists(CLIENTS, client_id),
                DocumentExists(SELECTION_PACKAGES, package.id, exists=False),
            ],
        )
        if not created:
            raise NotFoundError("Client not found", {"client_id": client_id})
        logger.info(
            "Created %s package %s with %d items for client %s",
            package.status.value,
            package.id,
            len(package.selection_ids),
            client_id,
        )
        return package

    async def submit_selection(
        self,
        client_id: str,
        gallery_id: str,
        media_ids: Sequence[str],
        name: str | None = None,
        comment: str = "",
    ) -> SelectionPackage:
        """Replace the selection, package it as submitted and tell the studio.

        An empty submission is refused before the ledger is touched.
        """
        if not media_ids:
            raise EmptySelectionError(
                "Select at least one image before submitting",
                {"client_id": client_id, "gallery_id": gallery_id},
            )
        await self.ledger.bulk_replace(client_id, gallery_id, media_ids, comment)
        package = await self.create(
            gallery_id, client_id, name=name, comments=comment, submit=True
        )
        await self.notifications.selections_submitted(
            client_id, gallery_id, len(package.selection_ids), comment
        )
        return package

    async def get_package(self, package_id: str) -> SelectionPackage | None:
        document = await self.store.get(SELECTION_PACKAGES, package_id)
        if document is None:
            return None
        return package_from_document(document.id, document.data)

    async def require_package(self, package_id: str) -> SelectionPackage:
        package = await self.get_package(package_id)
        if package is None:
            raise NotFoundError("Package not found", {"package_id": package_id})
        return package

    async def list_packages(
        self, client_id: str, gallery_id: str
    ) -> list[SelectionPackage]:
        """Return the client's packages for a gallery, newest first."""
        documents = await self.store.query(
            SELECTION_PACKAGES,
            [where("clientId", client_id), where("galleryId", gallery_id)],
            order_by="createdAt",
            descending=True,
        )
        return [
            package_from_document(document.id, document.data)
            for document in documents
        ]

    async def transition(
        self,
        package_id: str,
        new_status: PackageStatus,
        comments: str | None = None,
    ) -> SelectionPackage:
        """Move a package to its immediate successor status.

        Requesting the current status returns the package unchanged.
        """
        for _ in range(MAX_BATCH_ATTEMPTS):
            package = await self.require_package(package_id)
            if package.status == new_status:
                return package
            if next_status(package.status) != new_status:
                raise InvalidTransitionError(
                    f"Cannot move package from {package.status.value} "
                    f"to {new_status.value}",
                    {"package_id": package_id},
                )
            now = datetime.now(tz=UTC)
            patch: dict[str, object] = {
                "status": new_status.value,
                "updatedAt": format_timestamp(now),
            }
            timestamp_field = STATUS_TIMESTAMP_FIELDS.get(new_status)
            if timestamp_field is not None:
                patch[timestamp_field] = format_timestamp(now)
            if comments is not None:
                patch["comments"] = comments
            operations: list[BatchOperation] = [
                UpdateOp(SELECTION_PACKAGES, package_id, patch)
            ]
            if new_status == PackageStatus.DELIVERED:
                operations.append(
                    IncrementOp(CLIENTS, package.client_id, "activePackageCount", -1)
                )
            applied = await self.store.run_atomic_batch(
                operations,
                preconditions=[
                    FieldEquals(
                        SELECTION_PACKAGES, package_id, "status", package.status.value
                    )
                ],
            )
            if not applied:
                continue
            updated = _apply_transition(package, new_status, now, comments)
            logger.info(
                "Package %s moved from %s to %s",
                package_id,
                package.status.value,
                new_status.value,
            )
            if new_status in NOTIFYING_STATUSES:
                await self.notifications.package_status_changed(updated)
            return updated
        raise StoreUnavailableError(
            "Package changed concurrently, please retry", {"package_id": package_id}
        )

    async def generate_download_links(
        self, package_id: str, expiration_hours: int | None = None
    ) -> list[DownloadLink]:
        """Sign download URLs for every deliverable item and mark delivery.

        Items whose media is gone or whose URL cannot be signed are left out
        of the result.
        """
        hours = expiration_hours or self.default_download_hours
        package = await self.require_package(package_id)
        if package.status not in DOWNLOADABLE_STATUSES:
            raise PackageNotApprovedError(
                "Selection package must be approved before downloading",
                {"package_id": package_id, "status": package.status.value},
            )
        expires_at = datetime.now(tz=UTC) + timedelta(hours=hours)
        links = []
        for media_id in package.selection_ids:
            media = await self.catalog.get_media(package.gallery_id, media_id)
            if media is None:
                logger.warning(
                    "Skipping missing media %s in package %s", media_id, package_id
                )
                continue
            try:
                url = await self.signer.sign_url(media.resource_ref, hours)
            except Exception:
                logger.exception(
                    "Failed to sign download URL for media %s in package %s",
                    media_id,
                    package_id,
                )
                continue
            await self.catalog.record_download(package.gallery_id, media_id)
            links.append(DownloadLink(item_id=media_id, url=url, expires_at=expires_at))
        await self.transition(package_id, PackageStatus.DELIVERED)
        return links


def _apply_transition(
    package: SelectionPackage,
    status: PackageStatus,
    now: datetime,
    comments: str | None,
) -> SelectionPackage:
    stamps: dict[str, datetime] = {}
    if status == PackageStatus.SUBMITTED:
        stamps["submitted_at"] = now
    elif status == PackageStatus.APPROVED:
        stamps["approved_at"] = now
    elif status == PackageStatus.DELIVERED:
        stamps["delivered_at"] = now
    return replace(
        package,
        status=status,
        comments=package.comments if comments is None else comments,
        updated_at=now,
        **stamps,
    )
