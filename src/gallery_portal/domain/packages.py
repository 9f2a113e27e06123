"""Domain models for selection packages."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum

from gallery_portal.domain.fields import (
    format_timestamp,
    optional_str,
    parse_enum,
    parse_timestamp,
    require_str,
    string_list,
)

DEFAULT_PACKAGE_NAME = "Selection Package"


class PackageStatus(StrEnum):
    """Review lifecycle of a selection package."""

    DRAFT = "draft"
    SUBMITTED = "submitted"
    APPROVED = "approved"
    DELIVERED = "delivered"


_LIFECYCLE = (
    PackageStatus.DRAFT,
    PackageStatus.SUBMITTED,
    PackageStatus.APPROVED,
    PackageStatus.DELIVERED,
)

# Document field stamped when a package enters the status.
STATUS_TIMESTAMP_FIELDS = {
    PackageStatus.SUBMITTED: "submittedAt",
    PackageStatus.APPROVED: "approvedAt",
    PackageStatus.DELIVERED: "deliveredAt",
}

NOTIFYING_STATUSES = frozenset({PackageStatus.APPROVED, PackageStatus.DELIVERED})
DOWNLOADABLE_STATUSES = frozenset({PackageStatus.APPROVED, PackageStatus.DELIVERED})


def next_status(status: PackageStatus) -> PackageStatus | None:
    """Return the immediate successor of a status, if any."""
    index = _LIFECYCLE.index(status)
    if index + 1 < len(_LIFECYCLE):
        return _LIFECYCLE[index + 1]
    return None


@dataclass(frozen=True)
class SelectionPackage:
    """Immutable snapshot of a client's finalized selection."""

    id: str
    gallery_id: str
    client_id: str
    name: str
    status: PackageStatus
    selection_ids: tuple[str, ...]
    submitted_at: datetime | None
    approved_at: datetime | None
    delivered_at: datetime | None
    comments: str
    created_at: datetime | None
    updated_at: datetime | None


@dataclass(frozen=True)
class DownloadLink:
    """A time-boxed signed URL for one delivered item."""

    item_id: str
    url: str
    expires_at: datetime


def package_from_document(doc_id: str, data: dict[str, object]) -> SelectionPackage:
    """Parse a selection package document into a domain model."""
    return SelectionPackage(
        id=doc_id,
        gallery_id=require_str(data, "galleryId", "selection_packages"),
        client_id=require_str(data, "clientId", "selection_packages"),
        name=optional_str(data, "name", DEFAULT_PACKAGE_NAME) or DEFAULT_PACKAGE_NAME,
        status=parse_enum(PackageStatus, data.get("status"), "status"),
        selection_ids=string_list(data, "selectionIds"),
        submitted_at=parse_timestamp(data.get("submittedAt")),
        approved_at=parse_timestamp(data.get("approvedAt")),
        delivered_at=parse_timestamp(data.get("deliveredAt")),
        comments=optional_str(data, "comments", "") or "",
        created_at=parse_timestamp(data.get("createdAt")),
        updated_at=parse_timestamp(data.get("updatedAt")),
    )


def package_to_document(package: SelectionPackage) -> dict[str, object]:
    return {
        "galleryId": package.gallery_id,
        "clientId": package.client_id,
        "name": package.name,
        "status": package.status.value,
        "selectionIds": list(package.selection_ids),
        "submittedAt": format_timestamp(package.submitted_at),
        "approvedAt": format_timestamp(package.approved_at),
        "deliveredAt": format_timestamp(package.delivered_at),
        "comments": package.comments,
        "createdAt": format_timestamp(package.created_at),
        "updatedAt": format_timestamp(package.updated_at),
    }
