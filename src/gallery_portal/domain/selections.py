"""Domain models for client selection flags."""

from dataclasses import dataclass
from datetime import datetime

from gallery_portal.domain.fields import (
    format_timestamp,
    optional_int,
    optional_str,
    parse_timestamp,
    require_str,
)
from gallery_portal.domain.galleries import GalleryMedia


@dataclass(frozen=True)
class SelectionFlag:
    """Marks a media item as chosen by a client within a gallery."""

    client_id: str
    gallery_id: str
    media_id: str
    comment: str
    selection_date: datetime | None
    position: int = 0

    @property
    def id(self) -> str:
        return flag_document_id(self.client_id, self.gallery_id, self.media_id)


@dataclass(frozen=True)
class SelectedMedia:
    """A gallery media item decorated with the client's selection comment."""

    media: GalleryMedia
    comment: str
    selection_date: datetime | None

    @property
    def id(self) -> str:
        return self.media.id


def flag_document_id(client_id: str, gallery_id: str, media_id: str) -> str:
    """Return the document id of a selection flag."""
    return f"{client_id}:{gallery_id}:{media_id}"


def flag_from_document(data: dict[str, object]) -> SelectionFlag:
    """Parse a selection flag document into a domain model."""
    return SelectionFlag(
        client_id=require_str(data, "clientId", "selection_flags"),
        gallery_id=require_str(data, "galleryId", "selection_flags"),
        media_id=require_str(data, "mediaId", "selection_flags"),
        comment=optional_str(data, "comment", "") or "",
        selection_date=parse_timestamp(data.get("selectionDate")),
        position=optional_int(data, "position") or 0,
    )


def flag_to_document(flag: SelectionFlag) -> dict[str, object]:
    return {
        "clientId": flag.client_id,
        "galleryId": flag.gallery_id,
        "mediaId": flag.media_id,
        "selected": True,
        "comment": flag.comment,
        "selectionDate": format_timestamp(flag.selection_date),
        "position": flag.position,
    }
