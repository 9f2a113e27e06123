"""Domain models for gallery access grants."""

import random
import secrets
from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import TypeVar

from gallery_portal.domain.fields import (
    format_timestamp,
    optional_int,
    optional_str,
    parse_enum,
    parse_timestamp,
    require_str,
)

# Uppercase letters and digits without the look-alikes 0/O and 1/I.
ACCESS_CODE_ALPHABET = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"
ACCESS_CODE_LENGTH = 6


class AccessType(StrEnum):
    """Rights a client holds on a gallery."""

    VIEW = "view"
    SELECT = "select"
    DOWNLOAD = "download"


@dataclass(frozen=True)
class AccessGrant:
    """Authorization record linking a client to a gallery."""

    id: str
    gallery_id: str
    client_id: str
    access_type: AccessType
    expiry_date: datetime | None
    selection_deadline: datetime | None
    max_selections: int | None
    selection_count: int
    selection_version: int
    last_accessed: datetime | None
    access_code: str
    created_at: datetime | None = None
    updated_at: datetime | None = None

    def is_expired(self, now: datetime) -> bool:
        return self.expiry_date is not None and self.expiry_date < now

    def deadline_passed(self, now: datetime) -> bool:
        return self.selection_deadline is not None and self.selection_deadline < now

    def at_capacity(self) -> bool:
        return (
            self.max_selections is not None
            and self.selection_count >= self.max_selections
        )


class _Unset:
    def __repr__(self) -> str:
        return "UNSET"


UNSET = _Unset()

T = TypeVar("T")


def provided_or(value: T | _Unset, default: T) -> T:
    """Return ``value`` unless it was left unset."""
    return default if isinstance(value, _Unset) else value


@dataclass(frozen=True)
class GrantSettings:
    """Grant fields to apply; fields left as ``UNSET`` are not touched.

    ``None`` is a meaningful value for the nullable fields: it clears an
    expiry, a deadline or a cap.
    """

    access_type: AccessType | _Unset = UNSET
    expiry_date: datetime | None | _Unset = UNSET
    selection_deadline: datetime | None | _Unset = UNSET
    max_selections: int | None | _Unset = UNSET

    def provided(self) -> dict[str, object]:
        """Return the provided fields as a document patch."""
        patch: dict[str, object] = {}
        if not isinstance(self.access_type, _Unset):
            patch["accessType"] = AccessType(self.access_type).value
        if not isinstance(self.expiry_date, _Unset):
            patch["expiryDate"] = format_timestamp(self.expiry_date)
        if not isinstance(self.selection_deadline, _Unset):
            patch["selectionDeadline"] = format_timestamp(self.selection_deadline)
        if not isinstance(self.max_selections, _Unset):
            patch["maxSelections"] = self.max_selections
        return patch


@dataclass(frozen=True)
class ClientGallerySummary:
    """A gallery as seen from a client's dashboard."""

    gallery_id: str
    title: str
    slug: str
    media_count: int
    selection_count: int
    max_selections: int | None
    selection_deadline: datetime | None
    expiry_date: datetime | None
    access_type: AccessType
    status: str


def grant_document_id(gallery_id: str, client_id: str) -> str:
    """Return the document id that keeps grants unique per pair."""
    return f"{gallery_id}:{client_id}"


def access_code_document_id(gallery_id: str, code: str) -> str:
    """Return the id of the document reserving a code within a gallery."""
    return f"{gallery_id}:{code}"


def generate_access_code(rng: random.Random | None = None) -> str:
    """Generate a short access code from an unambiguous alphabet."""
    source = rng or secrets.SystemRandom()
    return "".join(
        source.choice(ACCESS_CODE_ALPHABET) for _ in range(ACCESS_CODE_LENGTH)
    )


def normalize_access_code(raw: str) -> str:
    return raw.strip().upper()


def grant_from_document(doc_id: str, data: dict[str, object]) -> AccessGrant:
    """Parse an access grant document into a domain model."""
    return AccessGrant(
        id=doc_id,
        gallery_id=require_str(data, "galleryId", "gallery_access"),
        client_id=require_str(data, "clientId", "gallery_access"),
        access_type=parse_enum(
            AccessType, data.get("accessType", AccessType.VIEW), "accessType"
        ),
        expiry_date=parse_timestamp(data.get("expiryDate")),
        selection_deadline=parse_timestamp(data.get("selectionDeadline")),
        max_selections=optional_int(data, "maxSelections"),
        selection_count=optional_int(data, "selectionCount") or 0,
        selection_version=optional_int(data, "selectionVersion") or 0,
        last_accessed=parse_timestamp(data.get("lastAccessed")),
        access_code=optional_str(data, "accessCode", "") or "",
        created_at=parse_timestamp(data.get("createdAt")),
        updated_at=parse_timestamp(data.get("updatedAt")),
    )


def grant_to_document(grant: AccessGrant) -> dict[str, object]:
    return {
        "galleryId": grant.gallery_id,
        "clientId": grant.client_id,
        "accessType": grant.access_type.value,
        "expiryDate": format_timestamp(grant.expiry_date),
        "selectionDeadline": format_timestamp(grant.selection_deadline),
        "maxSelections": grant.max_selections,
        "selectionCount": grant.selection_count,
        "selectionVersion": grant.selection_version,
        "lastAccessed": format_timestamp(grant.last_accessed),
        "accessCode": grant.access_code,
        "createdAt": format_timestamp(grant.created_at),
        "updatedAt": format_timestamp(grant.updated_at),
    }
