"""Access registry: which clients may view, select and download a gallery."""

import logging
import random
from dataclasses import dataclass
from datetime import UTC, datetime

from gallery_portal.domain.access import (
    ACCESS_CODE_ALPHABET,
    ACCESS_CODE_LENGTH,
    AccessGrant,
    AccessType,
    ClientGallerySummary,
    GrantSettings,
    access_code_document_id,
    generate_access_code,
    grant_document_id,
    grant_from_document,
    grant_to_document,
    normalize_access_code,
    provided_or,
)
from gallery_portal.domain.clients import ClientRecord
from gallery_portal.domain.fields import format_timestamp
from gallery_portal.errors import (
    CapacityExceededError,
    DeadlineExpiredError,
    NotAuthorizedError,
    NotFoundError,
    StoreUnavailableError,
)
from gallery_portal.services.clients import ClientDirectory
from gallery_portal.services.documents import (
    ACCESS_CODES,
    CLIENTS,
    GALLERY_ACCESS,
    MAX_BATCH_ATTEMPTS,
    SELECTION_FLAGS,
    AddToSetOp,
    BatchOperation,
    DeleteOp,
    DocumentExists,
    DocumentStore,
    FieldEquals,
    Precondition,
    RemoveFromSetOp,
    SetOp,
    UpdateOp,
    where,
)
from gallery_portal.services.galleries import GalleryCatalog

logger = logging.getLogger(__name__)

_ACCESS_CODE_ATTEMPTS = 10


def has_deadline_passed(deadline: datetime | None, now: datetime | None = None) -> bool:
    """Return True when a selection deadline is set and already behind us."""
    if deadline is None:
        return False
    return deadline < (now or datetime.now(tz=UTC))


@dataclass
class AccessRegistry:
    """Application service owning gallery access grants."""

    store: DocumentStore
    clients: ClientDirectory
    catalog: GalleryCatalog
    rng: random.Random | None = None

    async def get_grant(self, gallery_id: str, client_id: str) -> AccessGrant | None:
        """Return the grant for a (gallery, client) pair, if present."""
        document = await self.store.get(
            GALLERY_ACCESS, grant_document_id(gallery_id, client_id)
        )
        if document is None:
            return None
        return grant_from_document(document.id, document.data)

    async def grant(
        self,
        gallery_id: str,
        client_id: str,
        settings: GrantSettings | None = None,
    ) -> str:
        """Create or merge-update a grant and return its id.

        A new grant is written in the same batch that adds the gallery to the
        client's gallery set, so neither can exist without the other.
        """
        settings = settings or GrantSettings()
        if isinstance(settings.max_selections, int) and settings.max_selections < 0:
            raise ValueError("max_selections must not be negative")
        for _ in range(MAX_BATCH_ATTEMPTS):
            existing = await self.get_grant(gallery_id, client_id)
            if existing is not None:
                if await self._merge_settings(existing, settings):
                    return existing.id
                continue
            if await self.clients.get_by_id(client_id) is None:
                raise NotFoundError("Client not found", {"client_id": client_id})
            if await self._create_grant(gallery_id, client_id, settings):
                return grant_document_id(gallery_id, client_id)
        raise StoreUnavailableError(
            "Gallery access changed concurrently, please retry",
            {"gallery_id": gallery_id, "client_id": client_id},
        )

    async def _merge_settings(
        self, existing: AccessGrant, settings: GrantSettings
    ) -> bool:
        patch = settings.provided()
        if not patch:
            return True
        preconditions: list[Precondition] = [
            DocumentExists(GALLERY_ACCESS, existing.id)
        ]
        new_cap = patch.get("maxSelections")
        if isinstance(new_cap, int):
            if existing.selection_count > new_cap:
                raise CapacityExceededError(
                    f"Client already selected {existing.selection_count} images; "
                    f"the limit cannot be lowered to {new_cap}",
                    max_selections=new_cap,
                    excess=existing.selection_count - new_cap,
                    context={"grant_id": existing.id},
                )
            preconditions.append(
                FieldEquals(
                    GALLERY_ACCESS,
                    existing.id,
                    "selectionVersion",
                    existing.selection_version,
                )
            )
        patch["updatedAt"] = format_timestamp(datetime.now(tz=UTC))
        updated = await self.store.run_atomic_batch(
            [UpdateOp(GALLERY_ACCESS, existing.id, patch)], preconditions
        )
        if updated:
            logger.info("Updated gallery access %s", existing.id)
        return updated

    async def _create_grant(
        self, gallery_id: str, client_id: str, settings: GrantSettings
    ) -> bool:
        now = datetime.now(tz=UTC)
        grant = AccessGrant(
            id=grant_document_id(gallery_id, client_id),
            gallery_id=gallery_id,
            client_id=client_id,
            access_type=AccessType(
                provided_or(settings.access_type, AccessType.VIEW)
            ),
            expiry_date=provided_or(settings.expiry_date, None),
            selection_deadline=provided_or(settings.selection_deadline, None),
            max_selections=provided_or(settings.max_selections, None),
            selection_count=0,
            selection_version=0,
            last_accessed=None,
            access_code=await self._unique_access_code(gallery_id),
            created_at=now,
            updated_at=now,
        )
        code_id = access_code_document_id(gallery_id, grant.access_code)
        created = await self.store.run_atomic_batch(
            [
                SetOp(GALLERY_ACCESS, grant.id, grant_to_document(grant)),
                SetOp(
                    ACCESS_CODES,
                    code_id,
                    {
                        "galleryId": gallery_id,
                        "clientId": client_id,
                        "grantId": grant.id,
                        "createdAt": format_timestamp(now),
                    },
                ),
                AddToSetOp(CLIENTS, client_id, "galleries", gallery_id),
                UpdateOp(CLIENTS, client_id, {"updatedAt": format_timestamp(now)}),
            ],
            preconditions=[
                DocumentExists(GALLERY_ACCESS, grant.id, exists=False),
                DocumentExists(ACCESS_CODES, code_id, exists=False),
                DocumentExists(CLIENTS, client_id),
            ],
        )
        if created:
            logger.info(
                "Granted %s access on gallery %s to client %s",
                grant.access_type.value,
                gallery_id,
                client_id,
            )
        return created

    async def _unique_access_code(self, gallery_id: str) -> str:
        # The creation batch makes the reservation; this skips codes in use.
        for _ in range(_ACCESS_CODE_ATTEMPTS):
            code = generate_access_code(self.rng)
            reserved = await self.store.get(
                ACCESS_CODES, access_code_document_id(gallery_id, code)
            )
            if reserved is None:
                return code
        raise StoreUnavailableError(
            "Could not allocate a unique access code", {"gallery_id": gallery_id}
        )

    async def revoke(self, gallery_id: str, client_id: str) -> None:
        """Remove a client's access to a gallery; a no-op without a grant.

        The pair's selection flags go with the grant so that a later grant
        starts from a ledger that matches its zero counter. Packages stay.
        """
        for _ in range(MAX_BATCH_ATTEMPTS):
            grant = await self.get_grant(gallery_id, client_id)
            if grant is None:
                return
            flags = await self.store.query(
                SELECTION_FLAGS,
                [where("clientId", client_id), where("galleryId", gallery_id)],
            )
            operations: list[BatchOperation] = [DeleteOp(GALLERY_ACCESS, grant.id)]
            if grant.access_code:
                operations.append(
                    DeleteOp(
                        ACCESS_CODES,
                        access_code_document_id(gallery_id, grant.access_code),
                    )
                )
            operations += [DeleteOp(SELECTION_FLAGS, flag.id) for flag in flags]
            preconditions: list[Precondition] = [
                FieldEquals(
                    GALLERY_ACCESS,
                    grant.id,
                    "selectionVersion",
                    grant.selection_version,
                )
            ]
            if await self.clients.get_by_id(client_id) is not None:
                operations.append(
                    RemoveFromSetOp(CLIENTS, client_id, "galleries", gallery_id)
                )
                preconditions.append(DocumentExists(CLIENTS, client_id))
            if await self.store.run_atomic_batch(operations, preconditions):
                logger.info(
                    "Revoked access on gallery %s for client %s", gallery_id, client_id
                )
                return
        raise StoreUnavailableError(
            "Gallery access changed concurrently, please retry",
            {"gallery_id": gallery_id, "client_id": client_id},
        )

    async def check_selection_allowed(
        self, gallery_id: str, client_id: str, intending_to_add: bool
    ) -> AccessGrant:
        """Validate that the client may change its selection right now."""
        grant = await self.get_grant(gallery_id, client_id)
        if grant is None or grant.access_type == AccessType.VIEW:
            raise NotAuthorizedError(
                "You do not have permission to select images in this gallery",
                {"gallery_id": gallery_id, "client_id": client_id},
            )
        if has_deadline_passed(grant.selection_deadline):
            raise DeadlineExpiredError(
                "The selection deadline for this gallery has passed",
                {"gallery_id": gallery_id, "deadline": str(grant.selection_deadline)},
            )
        if intending_to_add and grant.at_capacity():
            raise CapacityExceededError(
                f"Maximum selections ({grant.max_selections}) reached",
                max_selections=grant.max_selections or 0,
                context={"gallery_id": gallery_id, "client_id": client_id},
            )
        return grant

    async def redeem_access_code(self, gallery_id: str, code: str) -> str | None:
        """Return the client id owning an access code, if valid and unexpired.

        Expired codes are reported exactly like unknown codes.
        """
        normalized = normalize_access_code(code)
        if len(normalized) != ACCESS_CODE_LENGTH or any(
            char not in ACCESS_CODE_ALPHABET for char in normalized
        ):
            return None
        reservation = await self.store.get(
            ACCESS_CODES, access_code_document_id(gallery_id, normalized)
        )
        if reservation is None:
            return None
        document = await self.store.get(
            GALLERY_ACCESS, str(reservation.data.get("grantId", ""))
        )
        if document is None:
            return None
        grant = grant_from_document(document.id, document.data)
        if grant.access_code != normalized:
            return None
        now = datetime.now(tz=UTC)
        if grant.is_expired(now):
            return None
        try:
            await self.store.update(
                GALLERY_ACCESS, grant.id, {"lastAccessed": format_timestamp(now)}
            )
        except NotFoundError:
            return None
        return grant.client_id

    async def list_gallery_clients(self, gallery_id: str) -> list[ClientRecord]:
        """Return clients holding a grant on the gallery."""
        documents = await self.store.query(
            GALLERY_ACCESS, [where("galleryId", gallery_id)]
        )
        clients = []
        for document in documents:
            grant = grant_from_document(document.id, document.data)
            client = await self.clients.get_by_id(grant.client_id)
            if client is not None:
                clients.append(client)
        return clients

    async def list_client_galleries(self, client_id: str) -> list[ClientGallerySummary]:
        """Return dashboard summaries for every unexpired grant of a client."""
        documents = await self.store.query(
            GALLERY_ACCESS, [where("clientId", client_id)]
        )
        now = datetime.now(tz=UTC)
        summaries = []
        for document in documents:
            grant = grant_from_document(document.id, document.data)
            if grant.is_expired(now):
                continue
            gallery = await self.catalog.get_gallery(grant.gallery_id)
            if gallery is None:
                continue
            summaries.append(
                ClientGallerySummary(
                    gallery_id=gallery.id,
                    title=gallery.title,
                    slug=gallery.slug,
                    media_count=await self.catalog.count_media(gallery.id),
                    selection_count=grant.selection_count,
                    max_selections=grant.max_selections,
                    selection_deadline=grant.selection_deadline,
                    expiry_date=grant.expiry_date,
                    access_type=grant.access_type,
                    status="completed" if grant.at_capacity() else "active",
                )
            )
        return summaries
