"""Domain models for galleries and their media."""

from dataclasses import dataclass
from datetime import datetime

from gallery_portal.domain.fields import (
    optional_int,
    optional_str,
    parse_timestamp,
    require_str,
)


@dataclass(frozen=True)
class Gallery:
    """A client gallery."""

    id: str
    title: str
    slug: str


@dataclass(frozen=True)
class GalleryMedia:
    """A media item that belongs to a gallery."""

    id: str
    gallery_id: str
    url: str
    storage_path: str | None
    filename: str | None
    download_count: int
    last_downloaded: datetime | None

    @property
    def resource_ref(self) -> str:
        """Reference handed to the URL signer for the original file."""
        return self.storage_path or self.url


def gallery_from_document(doc_id: str, data: dict[str, object]) -> Gallery:
    return Gallery(
        id=doc_id,
        title=optional_str(data, "title", "") or "",
        slug=optional_str(data, "slug") or doc_id,
    )


def media_from_document(doc_id: str, data: dict[str, object]) -> GalleryMedia:
    """Parse a gallery media document into a domain model."""
    return GalleryMedia(
        id=doc_id,
        gallery_id=require_str(data, "galleryId", "gallery_media"),
        url=optional_str(data, "url", "") or "",
        storage_path=optional_str(data, "storagePath"),
        filename=optional_str(data, "filename"),
        download_count=optional_int(data, "downloadCount") or 0,
        last_downloaded=parse_timestamp(data.get("lastDownloaded")),
    )
