"""FastAPI application factory."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from gallery_portal.api.admin import router as admin_router
from gallery_portal.api.portal import router as portal_router
from gallery_portal.app_logging import configure_logging
from gallery_portal.containers import AppContainer
from gallery_portal.errors import (
    CapacityExceededError,
    ClientHasActivePackagesError,
    DeadlineExpiredError,
    EmailInUseError,
    EmptySelectionError,
    GalleryPortalError,
    InvalidTransitionError,
    MalformedDocumentError,
    NotAuthorizedError,
    NotFoundError,
    PackageNotApprovedError,
    StoreUnavailableError,
)

ERROR_STATUS_CODES: dict[type[GalleryPortalError], int] = {
    NotAuthorizedError: status.HTTP_403_FORBIDDEN,
    DeadlineExpiredError: status.HTTP_409_CONFLICT,
    CapacityExceededError: status.HTTP_409_CONFLICT,
    EmptySelectionError: 422,
    InvalidTransitionError: status.HTTP_409_CONFLICT,
    PackageNotApprovedError: status.HTTP_409_CONFLICT,
    NotFoundError: status.HTTP_404_NOT_FOUND,
    StoreUnavailableError: status.HTTP_503_SERVICE_UNAVAILABLE,
    EmailInUseError: status.HTTP_409_CONFLICT,
    ClientHasActivePackagesError: status.HTTP_409_CONFLICT,
    MalformedDocumentError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def create_app(container: AppContainer) -> FastAPI:
    """Create a FastAPI app configured with dependencies."""
    configure_logging(container.settings.log_level)
    logger = logging.getLogger(__name__)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.container.close_resources()

    app = FastAPI(lifespan=lifespan)
    app.state.container = container

    app.include_router(portal_router)
    app.include_router(admin_router)

    @app.exception_handler(GalleryPortalError)
    async def handle_portal_error(
        request: Request, exc: GalleryPortalError
    ) -> JSONResponse:
        status_code = ERROR_STATUS_CODES.get(
            type(exc), status.HTTP_500_INTERNAL_SERVER_ERROR
        )
        if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
            logger.error(
                "%s on %s %s: %s",
                exc.kind,
                request.method,
                request.url.path,
                exc.message,
                extra={"context": exc.context},
            )
        body: dict[str, object] = {"error": exc.kind, "message": exc.message}
        if isinstance(exc, CapacityExceededError):
            body["max_selections"] = exc.max_selections
            body["excess"] = exc.excess
        return JSONResponse(status_code=status_code, content=body)

    @app.get("/health")
    async def health() -> dict[str, str]:
        """Simple health check endpoint."""
        return {"status": "ok"}

    return app
