"""Admin API endpoints with simple token auth."""

from __future__ import annotations

from dataclasses import asdict
from typing import TYPE_CHECKING

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status

from gallery_portal.api.models import (
    ClientCreateRequest,
    ClientUpdateRequest,
    DownloadLinksRequest,
    GrantRequest,
    TransitionRequest,
)

if TYPE_CHECKING:
    from gallery_portal.containers import AppContainer


def _get_admin_token(request: Request) -> str:
    container: AppContainer = request.app.state.container
    return container.settings.admin_token


async def require_admin(
    x_admin_token: str | None = Header(default=None),
    admin_token: str = Depends(_get_admin_token),
) -> None:
    """Ensure requests include a valid admin token."""
    if not x_admin_token or x_admin_token != admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)


router = APIRouter(
    prefix="/admin", tags=["admin"], dependencies=[Depends(require_admin)]
)


@router.get("/health")
async def admin_health() -> dict[str, str]:
    """Admin health check endpoint."""
    return {"status": "ok"}


@router.get("/clients")
async def list_clients(request: Request) -> dict[str, object]:
    """Return all clients, newest first."""
    container: AppContainer = request.app.state.container
    clients = await container.clients.list_clients()
    return {"clients": [asdict(client) for client in clients]}


@router.post("/clients", status_code=status.HTTP_201_CREATED)
async def create_client(
    payload: ClientCreateRequest, request: Request
) -> dict[str, object]:
    """Register a client, or return the one already using the email."""
    container: AppContainer = request.app.state.container
    client = await container.clients.create_or_get_by_email(
        payload.email, name=payload.name, phone=payload.phone
    )
    return {"client": asdict(client)}


@router.get("/clients/{client_id}")
async def client_detail(client_id: str, request: Request) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    client = await container.clients.require(client_id)
    return {"client": asdict(client)}


@router.patch("/clients/{client_id}")
async def update_client(
    client_id: str, payload: ClientUpdateRequest, request: Request
) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    client = await container.clients.update(
        client_id, name=payload.name, phone=payload.phone, email=payload.email
    )
    return {"client": asdict(client)}


@router.delete("/clients/{client_id}")
async def delete_client(client_id: str, request: Request) -> dict[str, str]:
    """Delete a client with its grants and selections."""
    container: AppContainer = request.app.state.container
    await container.clients.delete(client_id)
    return {"status": "deleted"}


@router.get("/clients/{client_id}/galleries")
async def client_galleries(client_id: str, request: Request) -> dict[str, object]:
    """Return dashboard summaries of the client's unexpired galleries."""
    container: AppContainer = request.app.state.container
    await container.clients.require(client_id)
    summaries = await container.access.list_client_galleries(client_id)
    return {"galleries": [asdict(summary) for summary in summaries]}


@router.get("/galleries/{gallery_id}/clients")
async def gallery_clients(gallery_id: str, request: Request) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    clients = await container.access.list_gallery_clients(gallery_id)
    return {"clients": [asdict(client) for client in clients]}


@router.put("/galleries/{gallery_id}/clients/{client_id}/access")
async def grant_access(
    gallery_id: str, client_id: str, payload: GrantRequest, request: Request
) -> dict[str, object]:
    """Create a grant or update the provided settings of an existing one."""
    container: AppContainer = request.app.state.container
    await container.access.grant(gallery_id, client_id, payload.to_settings())
    grant = await container.access.get_grant(gallery_id, client_id)
    return {"grant": asdict(grant) if grant else None}


@router.delete("/galleries/{gallery_id}/clients/{client_id}/access")
async def revoke_access(
    gallery_id: str, client_id: str, request: Request
) -> dict[str, str]:
    container: AppContainer = request.app.state.container
    await container.access.revoke(gallery_id, client_id)
    return {"status": "revoked"}


@router.get("/packages/{package_id}")
async def package_detail(package_id: str, request: Request) -> dict[str, object]:
    container: AppContainer = request.app.state.container
    package = await container.packages.require_package(package_id)
    return {"package": asdict(package)}


@router.post("/packages/{package_id}/transition")
async def transition_package(
    package_id: str, payload: TransitionRequest, request: Request
) -> dict[str, object]:
    """Move a package one step forward in its review lifecycle."""
    container: AppContainer = request.app.state.container
    package = await container.packages.transition(
        package_id, payload.status, comments=payload.comments
    )
    return {"package": asdict(package)}


@router.post("/packages/{package_id}/download-links")
async def download_links(
    package_id: str, request: Request, payload: DownloadLinksRequest | None = None
) -> dict[str, object]:
    """Issue signed download links and mark the package delivered."""
    container: AppContainer = request.app.state.container
    hours = payload.expiration_hours if payload else None
    links = await container.packages.generate_download_links(package_id, hours)
    return {"links": [asdict(link) for link in links]}
