"""Error kinds raised by the gallery portal core.

Every error carries a user-facing ``message`` and an optional ``context`` dict
with identifiers that are useful in logs but are not rendered to clients.
"""

from typing import Any


class GalleryPortalError(Exception):
    """Base class for all gallery portal errors."""

    kind = "gallery_portal_error"

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        self.message = message
        self.context = context or {}
        super().__init__(message)


class NotAuthorizedError(GalleryPortalError):
    """Caller lacks the access level required for the operation."""

    kind = "not_authorized"


class DeadlineExpiredError(GalleryPortalError):
    """The selection deadline of the grant has passed."""

    kind = "deadline_expired"


class CapacityExceededError(GalleryPortalError):
    """The requested selections do not fit under the grant's cap."""

    kind = "capacity_exceeded"

    def __init__(
        self,
        message: str,
        max_selections: int,
        excess: int = 1,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.max_selections = max_selections
        self.excess = excess
        super().__init__(message, context)


class EmptySelectionError(GalleryPortalError):
    """A package was requested while the client has nothing selected."""

    kind = "empty_selection"


class InvalidTransitionError(GalleryPortalError):
    """A package status change that is not the immediate successor."""

    kind = "invalid_transition"


class PackageNotApprovedError(GalleryPortalError):
    """Download links were requested before the package was approved."""

    kind = "package_not_approved"


class NotFoundError(GalleryPortalError):
    """A referenced gallery, client, grant, package or media item is missing."""

    kind = "not_found"


class StoreUnavailableError(GalleryPortalError):
    """The document store call failed or timed out. Safe to retry."""

    kind = "store_unavailable"


class EmailInUseError(GalleryPortalError):
    """Another client is already registered with the email address."""

    kind = "email_in_use"


class ClientHasActivePackagesError(GalleryPortalError):
    """The client still has selection packages that are not delivered."""

    kind = "client_has_active_packages"


class MalformedDocumentError(GalleryPortalError):
    """A stored document does not have the expected shape."""

    kind = "malformed_document"
