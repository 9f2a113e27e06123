"""Client directory: identity records for gallery clients."""

import logging
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from uuid import uuid4

from gallery_portal.domain.access import access_code_document_id
from gallery_portal.domain.clients import (
    ClientRecord,
    client_from_document,
    client_to_document,
    normalize_email,
)
from gallery_portal.domain.fields import format_timestamp
from gallery_portal.errors import (
    ClientHasActivePackagesError,
    EmailInUseError,
    NotFoundError,
    StoreUnavailableError,
)
from gallery_portal.services.documents import (
    ACCESS_CODES,
    CLIENT_EMAILS,
    CLIENTS,
    GALLERY_ACCESS,
    MAX_BATCH_ATTEMPTS,
    SELECTION_FLAGS,
    BatchOperation,
    DeleteOp,
    DocumentExists,
    DocumentStore,
    FieldEquals,
    Precondition,
    SetOp,
    UpdateOp,
    where,
)

logger = logging.getLogger(__name__)


@dataclass
class ClientDirectory:
    """Application service for client lookup and lifecycle.

    Email uniqueness is enforced with a claim document per normalized address
    in ``client_emails``, written in the same batch as the client itself.
    """

    store: DocumentStore

    async def create_or_get_by_email(
        self, email: str, name: str = "", phone: str | None = None
    ) -> ClientRecord:
        """Return the client registered with the email, creating it if needed."""
        normalized = normalize_email(email)
        if not normalized:
            raise ValueError("email is required")
        for _ in range(MAX_BATCH_ATTEMPTS):
            existing = await self.get_by_email(normalized)
            if existing is not None:
                return existing
            now = datetime.now(tz=UTC)
            client = ClientRecord(
                id=uuid4().hex,
                email=normalized,
                name=name.strip(),
                phone=phone or None,
                gallery_ids=(),
                active_package_count=0,
                created_at=now,
                updated_at=now,
            )
            created = await self.store.run_atomic_batch(
                [
                    SetOp(CLIENTS, client.id, client_to_document(client)),
                    SetOp(CLIENT_EMAILS, normalized, {"clientId": client.id}),
                ],
                preconditions=[
                    DocumentExists(CLIENT_EMAILS, normalized, exists=False)
                ],
            )
            if created:
                logger.info("Registered client %s", client.id)
                return client
        raise StoreUnavailableError(
            "Client registration kept conflicting, please retry",
            {"email": normalized},
        )

    async def get_by_id(self, client_id: str) -> ClientRecord | None:
        """Return a client by id, if present."""
        document = await self.store.get(CLIENTS, client_id)
        if document is None:
            return None
        return client_from_document(document.id, document.data)

    async def get_by_email(self, email: str) -> ClientRecord | None:
        """Return the client registered with an email, if present."""
        claim = await self.store.get(CLIENT_EMAILS, normalize_email(email))
        if claim is None:
            return None
        return await self.get_by_id(str(claim.data.get("clientId", "")))

    async def require(self, client_id: str) -> ClientRecord:
        client = await self.get_by_id(client_id)
        if client is None:
            raise NotFoundError("Client not found", {"client_id": client_id})
        return client

    async def list_clients(self) -> list[ClientRecord]:
        """Return all clients, newest first."""
        documents = await self.store.query(
            CLIENTS, order_by="createdAt", descending=True
        )
        return [client_from_document(doc.id, doc.data) for doc in documents]

    async def update(
        self,
        client_id: str,
        name: str | None = None,
        phone: str | None = None,
        email: str | None = None,
    ) -> ClientRecord:
        """Update contact details; a changed email must remain unique."""
        client = await self.require(client_id)
        now = datetime.now(tz=UTC)
        patch: dict[str, object] = {"updatedAt": format_timestamp(now)}
        updated = replace(client, updated_at=now)
        if name is not None:
            patch["name"] = name.strip()
            updated = replace(updated, name=name.strip())
        if phone is not None:
            patch["phone"] = phone or None
            updated = replace(updated, phone=phone or None)

        operations: list[BatchOperation] = [UpdateOp(CLIENTS, client_id, patch)]
        preconditions: list[Precondition] = [DocumentExists(CLIENTS, client_id)]
        if email is not None and normalize_email(email) != client.email:
            new_email = normalize_email(email)
            patch["email"] = new_email
            updated = replace(updated, email=new_email)
            operations += [
                DeleteOp(CLIENT_EMAILS, client.email),
                SetOp(CLIENT_EMAILS, new_email, {"clientId": client_id}),
            ]
            preconditions.append(
                DocumentExists(CLIENT_EMAILS, new_email, exists=False)
            )

        if not await self.store.run_atomic_batch(operations, preconditions):
            if await self.get_by_id(client_id) is None:
                raise NotFoundError("Client not found", {"client_id": client_id})
            raise EmailInUseError(
                "Another client already uses this email address",
                {"client_id": client_id},
            )
        return updated

    async def delete(self, client_id: str) -> None:
        """Delete a client together with its access grants and selection flags.

        Refused while the client has packages that have not been delivered.
        The batch is preconditioned on the gallery set and every grant's
        selection version, so a concurrent grant or toggle forces a re-read
        instead of leaving orphaned documents behind.
        """
        for _ in range(MAX_BATCH_ATTEMPTS):
            client = await self.require(client_id)
            if client.active_package_count > 0:
                raise ClientHasActivePackagesError(
                    "Client has selection packages that are still in review",
                    {"client_id": client_id, "active": client.active_package_count},
                )
            grants = await self.store.query(
                GALLERY_ACCESS, [where("clientId", client_id)]
            )
            flags = await self.store.query(
                SELECTION_FLAGS, [where("clientId", client_id)]
            )

            operations: list[BatchOperation] = [
                DeleteOp(CLIENTS, client_id),
                DeleteOp(CLIENT_EMAILS, client.email),
            ]
            operations += [DeleteOp(GALLERY_ACCESS, grant.id) for grant in grants]
            operations += [
                DeleteOp(
                    ACCESS_CODES,
                    access_code_document_id(
                        str(grant.data["galleryId"]), str(grant.data["accessCode"])
                    ),
                )
                for grant in grants
                if grant.data.get("accessCode")
            ]
            operations += [DeleteOp(SELECTION_FLAGS, flag.id) for flag in flags]
            preconditions: list[Precondition] = [
                FieldEquals(CLIENTS, client_id, "galleries", list(client.gallery_ids)),
                FieldEquals(CLIENTS, client_id, "activePackageCount", 0),
            ]
            preconditions += [
                FieldEquals(
                    GALLERY_ACCESS,
                    grant.id,
                    "selectionVersion",
                    grant.data.get("selectionVersion", 0),
                )
                for grant in grants
            ]
            if await self.store.run_atomic_batch(operations, preconditions):
                logger.info(
                    "Deleted client %s with %d grants and %d flags",
                    client_id,
                    len(grants),
                    len(flags),
                )
                return
        raise StoreUnavailableError(
            "Client changed while being deleted, please retry",
            {"client_id": client_id},
        )
