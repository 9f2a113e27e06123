"""Client portal endpoints authenticated by gallery access codes."""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, Request

from gallery_portal.api.models import (
    AccessCodeRequest,
    CreatePackageRequest,
    SelectionRequest,
    SubmitSelectionRequest,
)
from gallery_portal.errors import NotAuthorizedError

if TYPE_CHECKING:
    from gallery_portal.containers import AppContainer
    from gallery_portal.domain.selections import SelectedMedia

router = APIRouter(prefix="/galleries/{gallery_id}", tags=["portal"])

_INVALID_CODE = "Invalid or expired access code"


async def require_client(
    gallery_id: str,
    client_id: str,
    request: Request,
    x_access_code: str | None = Header(default=None),
) -> None:
    """Ensure the access code belongs to the client named in the path."""
    container: AppContainer = request.app.state.container
    if not x_access_code:
        raise NotAuthorizedError(_INVALID_CODE, {"gallery_id": gallery_id})
    owner = await container.access.redeem_access_code(gallery_id, x_access_code)
    if owner is None or owner != client_id:
        raise NotAuthorizedError(_INVALID_CODE, {"gallery_id": gallery_id})


@router.post("/access-code")
async def redeem_access_code(
    gallery_id: str, payload: AccessCodeRequest, request: Request
) -> dict[str, object]:
    """Exchange an access code for the id of the client it was issued to."""
    container: AppContainer = request.app.state.container
    client_id = await container.access.redeem_access_code(gallery_id, payload.code)
    if client_id is None:
        raise NotAuthorizedError(_INVALID_CODE, {"gallery_id": gallery_id})
    return {"client_id": client_id, "gallery_id": gallery_id}


@router.get(
    "/clients/{client_id}/selections", dependencies=[Depends(require_client)]
)
async def list_selections(
    gallery_id: str, client_id: str, request: Request
) -> dict[str, object]:
    """Return the client's current selection in selection order."""
    container: AppContainer = request.app.state.container
    selections = await container.ledger.current_selections(client_id, gallery_id)
    return {"selections": [_selection_payload(item) for item in selections]}


@router.put(
    "/clients/{client_id}/selections/{media_id}",
    dependencies=[Depends(require_client)],
)
async def select_media(
    gallery_id: str,
    client_id: str,
    media_id: str,
    request: Request,
    payload: SelectionRequest | None = None,
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    comment = payload.comment if payload else ""
    changed = await container.ledger.toggle(
        client_id, gallery_id, media_id, selected=True, comment=comment
    )
    return {"media_id": media_id, "selected": True, "changed": changed}


@router.delete(
    "/clients/{client_id}/selections/{media_id}",
    dependencies=[Depends(require_client)],
)
async def unselect_media(
    gallery_id: str, client_id: str, media_id: str, request: Request
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    changed = await container.ledger.toggle(
        client_id, gallery_id, media_id, selected=False
    )
    return {"media_id": media_id, "selected": False, "changed": changed}


@router.post(
    "/clients/{client_id}/selections/submit",
    dependencies=[Depends(require_client)],
)
async def submit_selection(
    gallery_id: str,
    client_id: str,
    payload: SubmitSelectionRequest,
    request: Request,
) -> dict[str, object]:
    """Replace the selection and submit it as a package for review."""
    container: AppContainer = request.app.state.container
    package = await container.packages.submit_selection(
        client_id,
        gallery_id,
        payload.media_ids,
        name=payload.name,
        comment=payload.comment,
    )
    return {"package": asdict(package)}


@router.get("/clients/{client_id}/packages", dependencies=[Depends(require_client)])
async def list_packages(
    gallery_id: str, client_id: str, request: Request
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    packages = await container.packages.list_packages(client_id, gallery_id)
    return {"packages": [asdict(package) for package in packages]}


@router.post("/clients/{client_id}/packages", dependencies=[Depends(require_client)])
async def create_package(
    gallery_id: str,
    client_id: str,
    payload: CreatePackageRequest,
    request: Request,
) -> dict[str, object]:
    """Snapshot the current selection into a new package."""
    container: AppContainer = request.app.state.container
    package = await container.packages.create(
        gallery_id,
        client_id,
        name=payload.name,
        comments=payload.comments,
        submit=payload.submit,
    )
    return {"package": asdict(package)}


def _selection_payload(item: SelectedMedia) -> dict[str, object]:
    return {
        "media_id": item.media.id,
        "url": item.media.url,
        "filename": item.media.filename,
        "comment": item.comment,
        "selection_date": item.selection_date,
    }
