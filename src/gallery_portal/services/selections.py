"""Selection ledger: per-client, per-media selection flags."""

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import UTC, datetime

from gallery_portal.domain.access import AccessType
from gallery_portal.domain.fields import format_timestamp
from gallery_portal.domain.selections import (
    SelectedMedia,
    SelectionFlag,
    flag_document_id,
    flag_from_document,
    flag_to_document,
)
from gallery_portal.errors import (
    CapacityExceededError,
    DeadlineExpiredError,
    NotAuthorizedError,
    NotFoundError,
    StoreUnavailableError,
)
from gallery_portal.services.access import AccessRegistry, has_deadline_passed
from gallery_portal.services.documents import (
    GALLERY_ACCESS,
    MAX_BATCH_ATTEMPTS,
    SELECTION_FLAGS,
    BatchOperation,
    CounterBelowLimit,
    DeleteOp,
    DocumentExists,
    DocumentStore,
    FieldEquals,
    IncrementOp,
    SetOp,
    UpdateOp,
    where,
)
from gallery_portal.services.galleries import GalleryCatalog

logger = logging.getLogger(__name__)


@dataclass
class SelectionLedger:
    """Application service for client image selections.

    The grant's ``selectionCount`` always equals the number of flags for the
    pair: every flag insert or delete is committed in the same atomic batch as
    the matching counter adjustment, conditioned on the flag's prior
    existence. ``selectionVersion`` is bumped by every ledger write so that
    read-then-write paths can detect interleaved toggles.
    """

    store: DocumentStore
    access: AccessRegistry
    catalog: GalleryCatalog

    async def toggle(
        self,
        client_id: str,
        gallery_id: str,
        media_id: str,
        selected: bool,
        comment: str = "",
    ) -> bool:
        """Select or unselect a media item.

        Returns True when the selection count changed. Re-selecting a chosen
        item only refreshes its comment; unselecting an item that is not
        chosen is a no-op.
        """
        flag_id = flag_document_id(client_id, gallery_id, media_id)
        for _ in range(MAX_BATCH_ATTEMPTS):
            grant = await self.access.check_selection_allowed(
                gallery_id, client_id, intending_to_add=selected
            )
            if not selected:
                return await self.store.run_atomic_batch(
                    [
                        DeleteOp(SELECTION_FLAGS, flag_id),
                        IncrementOp(GALLERY_ACCESS, grant.id, "selectionCount", -1),
                        IncrementOp(GALLERY_ACCESS, grant.id, "selectionVersion", 1),
                    ],
                    preconditions=[
                        DocumentExists(SELECTION_FLAGS, flag_id),
                        DocumentExists(GALLERY_ACCESS, grant.id),
                    ],
                )

            if await self.catalog.get_media(gallery_id, media_id) is None:
                raise NotFoundError(
                    "Image not found in this gallery",
                    {"gallery_id": gallery_id, "media_id": media_id},
                )
            now = datetime.now(tz=UTC)
            flag = SelectionFlag(
                client_id=client_id,
                gallery_id=gallery_id,
                media_id=media_id,
                comment=comment,
                selection_date=now,
                position=_position(now),
            )
            added = await self.store.run_atomic_batch(
                [
                    SetOp(SELECTION_FLAGS, flag_id, flag_to_document(flag)),
                    IncrementOp(GALLERY_ACCESS, grant.id, "selectionCount", 1),
                    IncrementOp(GALLERY_ACCESS, grant.id, "selectionVersion", 1),
                ],
                preconditions=[
                    DocumentExists(SELECTION_FLAGS, flag_id, exists=False),
                    DocumentExists(GALLERY_ACCESS, grant.id),
                    CounterBelowLimit(
                        GALLERY_ACCESS, grant.id, "selectionCount", "maxSelections"
                    ),
                ],
            )
            if added:
                return True
            refreshed = await self.store.run_atomic_batch(
                [
                    UpdateOp(
                        SELECTION_FLAGS,
                        flag_id,
                        {"comment": comment, "selectionDate": format_timestamp(now)},
                    )
                ],
                preconditions=[
                    DocumentExists(SELECTION_FLAGS, flag_id),
                    DocumentExists(GALLERY_ACCESS, grant.id),
                ],
            )
            if refreshed:
                return False
            # Lost a race for the last slot or against a revoke; the fresh
            # check on the next pass reports which.
        raise StoreUnavailableError(
            "Selection changed concurrently, please retry",
            {"gallery_id": gallery_id, "client_id": client_id, "media_id": media_id},
        )

    async def current_selections(
        self, client_id: str, gallery_id: str
    ) -> list[SelectedMedia]:
        """Return the selected media items in selection order.

        Flags pointing at media that no longer exists are skipped.
        """
        documents = await self.store.query(
            SELECTION_FLAGS,
            [
                where("clientId", client_id),
                where("galleryId", gallery_id),
                where("selected", True),
            ],
        )
        flags = sorted(
            (flag_from_document(document.data) for document in documents),
            key=lambda flag: (flag.position, flag.media_id),
        )
        selections = []
        for flag in flags:
            media = await self.catalog.get_media(gallery_id, flag.media_id)
            if media is None:
                continue
            selections.append(
                SelectedMedia(
                    media=media,
                    comment=flag.comment,
                    selection_date=flag.selection_date,
                )
            )
        return selections

    async def bulk_replace(
        self,
        client_id: str,
        gallery_id: str,
        media_ids: Sequence[str],
        comment: str = "",
    ) -> list[str]:
        """Replace the client's whole selection with ``media_ids``.

        Duplicate ids are collapsed. The counter is set to the number of
        stored flags rather than adjusted. Returns the stored ids in order.
        """
        unique_ids = list(dict.fromkeys(media_ids))
        for _ in range(MAX_BATCH_ATTEMPTS):
            grant = await self.access.get_grant(gallery_id, client_id)
            if grant is None or grant.access_type != AccessType.SELECT:
                raise NotAuthorizedError(
                    "You do not have permission to submit selections for this gallery",
                    {"gallery_id": gallery_id, "client_id": client_id},
                )
            if has_deadline_passed(grant.selection_deadline):
                raise DeadlineExpiredError(
                    "The selection deadline for this gallery has passed",
                    {"gallery_id": gallery_id},
                )
            cap = grant.max_selections
            if cap is not None and len(unique_ids) > cap:
                excess = len(unique_ids) - cap
                raise CapacityExceededError(
                    f"Maximum number of selections ({grant.max_selections}) exceeded "
                    f"by {excess}",
                    max_selections=grant.max_selections,
                    excess=excess,
                    context={"gallery_id": gallery_id, "client_id": client_id},
                )
            for media_id in unique_ids:
                if await self.catalog.get_media(gallery_id, media_id) is None:
                    raise NotFoundError(
                        "Image not found in this gallery",
                        {"gallery_id": gallery_id, "media_id": media_id},
                    )

            existing = await self.store.query(
                SELECTION_FLAGS,
                [where("clientId", client_id), where("galleryId", gallery_id)],
            )
            now = datetime.now(tz=UTC)
            new_flags = [
                SelectionFlag(
                    client_id=client_id,
                    gallery_id=gallery_id,
                    media_id=media_id,
                    comment=comment,
                    selection_date=now,
                    position=_position(now, index),
                )
                for index, media_id in enumerate(unique_ids)
            ]
            keep = {flag.id for flag in new_flags}
            operations: list[BatchOperation] = [
                DeleteOp(SELECTION_FLAGS, document.id)
                for document in existing
                if document.id not in keep
            ]
            operations += [
                SetOp(SELECTION_FLAGS, flag.id, flag_to_document(flag))
                for flag in new_flags
            ]
            operations += [
                UpdateOp(
                    GALLERY_ACCESS,
                    grant.id,
                    {
                        "selectionCount": len(new_flags),
                        "updatedAt": format_timestamp(now),
                    },
                ),
                IncrementOp(GALLERY_ACCESS, grant.id, "selectionVersion", 1),
            ]
            replaced = await self.store.run_atomic_batch(
                operations,
                preconditions=[
                    FieldEquals(
                        GALLERY_ACCESS,
                        grant.id,
                        "selectionVersion",
                        grant.selection_version,
                    )
                ],
            )
            if replaced:
                logger.info(
                    "Client %s submitted %d selections for gallery %s",
                    client_id,
                    len(unique_ids),
                    gallery_id,
                )
                return unique_ids
        raise StoreUnavailableError(
            "Selection changed while submitting, please retry",
            {"gallery_id": gallery_id, "client_id": client_id},
        )


def _position(now: datetime, index: int = 0) -> int:
    """Sort key for flags: microseconds since the epoch plus batch index."""
    return int(now.timestamp() * 1_000_000) + index
