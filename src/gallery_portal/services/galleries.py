"""Read access to galleries and media, plus download tracking."""

from dataclasses import dataclass
from datetime import UTC, datetime

from gallery_portal.domain.fields import format_timestamp
from gallery_portal.domain.galleries import (
    Gallery,
    GalleryMedia,
    gallery_from_document,
    media_from_document,
)
from gallery_portal.services.documents import (
    GALLERIES,
    GALLERY_MEDIA,
    DocumentStore,
    FieldEquals,
    IncrementOp,
    UpdateOp,
    where,
)


@dataclass
class GalleryCatalog:
    """Service for gallery and media lookups."""

    store: DocumentStore

    async def get_gallery(self, gallery_id: str) -> Gallery | None:
        """Return a gallery by id, if present."""
        document = await self.store.get(GALLERIES, gallery_id)
        if document is None:
            return None
        return gallery_from_document(document.id, document.data)

    async def get_media(self, gallery_id: str, media_id: str) -> GalleryMedia | None:
        """Return a media item if it exists and belongs to the gallery."""
        document = await self.store.get(GALLERY_MEDIA, media_id)
        if document is None:
            return None
        media = media_from_document(document.id, document.data)
        if media.gallery_id != gallery_id:
            return None
        return media

    async def count_media(self, gallery_id: str) -> int:
        documents = await self.store.query(
            GALLERY_MEDIA, [where("galleryId", gallery_id)]
        )
        return len(documents)

    async def record_download(self, gallery_id: str, media_id: str) -> None:
        """Increment the download counter of a media item."""
        await self.store.run_atomic_batch(
            [
                IncrementOp(GALLERY_MEDIA, media_id, "downloadCount", 1),
                UpdateOp(
                    GALLERY_MEDIA,
                    media_id,
                    {"lastDownloaded": format_timestamp(datetime.now(tz=UTC))},
                ),
            ],
            preconditions=[
                FieldEquals(GALLERY_MEDIA, media_id, "galleryId", gallery_id)
            ],
        )
