"""Best-effort notifications about selection progress."""

import logging
from dataclasses import dataclass

from gallery_portal.adapters.email_client import EmailClient
from gallery_portal.domain.packages import PackageStatus, SelectionPackage
from gallery_portal.services.clients import ClientDirectory
from gallery_portal.services.galleries import GalleryCatalog

logger = logging.getLogger(__name__)


@dataclass
class NotificationService:
    """Composes and sends emails after durable state changes.

    Every public method swallows and logs its own failures: callers invoke
    these only after their write has committed, and a failed email must not
    turn a committed change into an error.
    """

    email_client: EmailClient
    clients: ClientDirectory
    catalog: GalleryCatalog
    photographer_email: str | None = None

    async def package_status_changed(self, package: SelectionPackage) -> bool:
        """Tell the client their package was approved or delivered."""
        try:
            client = await self.clients.get_by_id(package.client_id)
            if client is None or not client.email:
                logger.warning(
                    "No email address for client %s of package %s",
                    package.client_id,
                    package.id,
                )
                return False
            gallery_title = await self._gallery_title(package.gallery_id)
            subject, body = _status_message(
                client.name or "there", gallery_title, package.status
            )
            await self.email_client.send(client.email, subject, body)
        except Exception:
            logger.exception(
                "Failed to notify client about package %s (%s)",
                package.id,
                package.status.value,
            )
            return False
        return True

    async def selections_submitted(
        self,
        client_id: str,
        gallery_id: str,
        selection_count: int,
        comment: str,
    ) -> bool:
        """Tell the photographer a client submitted a selection."""
        if not self.photographer_email:
            return False
        try:
            client = await self.clients.get_by_id(client_id)
            display_name = (client.name or client.email) if client else client_id
            client_label = f"{display_name} ({client.email})" if client else client_id
            gallery_title = await self._gallery_title(gallery_id)
            subject = (
                f"New Selections: {display_name} "
                f"has selected {selection_count} photos"
            )
            body = "\n".join(
                [
                    f"Client: {client_label}",
                    f"Gallery: {gallery_title}",
                    f"Selections: {selection_count}",
                    "",
                    f"Client message: {comment}" if comment else "No comment provided.",
                    "",
                    "You can review these selections in the admin dashboard.",
                ]
            )
            await self.email_client.send(self.photographer_email, subject, body)
        except Exception:
            logger.exception(
                "Failed to notify photographer about selections for gallery %s",
                gallery_id,
            )
            return False
        return True

    async def _gallery_title(self, gallery_id: str) -> str:
        gallery = await self.catalog.get_gallery(gallery_id)
        if gallery is None or not gallery.title:
            return "your gallery"
        return gallery.title


def _status_message(
    name: str, gallery_title: str, status: PackageStatus
) -> tuple[str, str]:
    if status == PackageStatus.APPROVED:
        return (
            f"Your selections for {gallery_title} have been approved!",
            f"Hi {name},\n\n"
            f'Your selections for the gallery "{gallery_title}" have been approved. '
            "You'll receive another email when your photos are ready for download."
            "\n\nThank you!",
        )
    return (
        f"Your photos from {gallery_title} are ready for download!",
        f"Hi {name},\n\n"
        f'Your photos from the gallery "{gallery_title}" are now ready for '
        "download. Please log in to your client area to access them."
        "\n\nThank you!",
    )
