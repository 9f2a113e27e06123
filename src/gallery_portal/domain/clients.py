"""Domain models for studio clients."""

from dataclasses import dataclass
from datetime import datetime

from gallery_portal.domain.fields import (
    format_timestamp,
    optional_int,
    optional_str,
    parse_timestamp,
    require_str,
    string_list,
)


@dataclass(frozen=True)
class ClientRecord:
    """Represents a client stored in the directory."""

    id: str
    email: str
    name: str
    phone: str | None
    gallery_ids: tuple[str, ...]
    active_package_count: int
    created_at: datetime | None
    updated_at: datetime | None


def normalize_email(raw: str) -> str:
    """Normalize an email address for storage and lookups."""
    return raw.strip().lower()


def client_from_document(doc_id: str, data: dict[str, object]) -> ClientRecord:
    """Parse a client document into a domain model."""
    return ClientRecord(
        id=doc_id,
        email=require_str(data, "email", "clients"),
        name=optional_str(data, "name", "") or "",
        phone=optional_str(data, "phone") or None,
        gallery_ids=string_list(data, "galleries"),
        active_package_count=optional_int(data, "activePackageCount") or 0,
        created_at=parse_timestamp(data.get("createdAt")),
        updated_at=parse_timestamp(data.get("updatedAt")),
    )


def client_to_document(client: ClientRecord) -> dict[str, object]:
    return {
        "email": client.email,
        "name": client.name,
        "phone": client.phone,
        "galleries": list(client.gallery_ids),
        "activePackageCount": client.active_package_count,
        "createdAt": format_timestamp(client.created_at),
        "updatedAt": format_timestamp(client.updated_at),
    }
