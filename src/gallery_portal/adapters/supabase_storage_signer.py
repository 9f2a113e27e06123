"""Supabase Storage adapter issuing signed download URLs."""

from dataclasses import dataclass
from typing import Protocol

from supabase import AsyncClient


class UrlSigner(Protocol):
    """Interface for issuing time-boxed URLs to stored originals."""

    async def sign_url(self, resource_ref: str, expiration_hours: int) -> str:
        """Return a signed URL for a stored resource."""


@dataclass
class SupabaseStorageSigner(UrlSigner):
    """Signs object paths in a Supabase Storage bucket."""

    client: AsyncClient
    bucket: str

    async def sign_url(self, resource_ref: str, expiration_hours: int) -> str:
        """Return a signed URL valid for ``expiration_hours``."""
        path = _object_path(resource_ref, self.bucket)
        response = await self.client.storage.from_(self.bucket).create_signed_url(
            path, expiration_hours * 3600
        )
        url = response.get("signedURL") or response.get("signedUrl")
        if not url:
            raise RuntimeError(f"Supabase did not return a signed URL for {path}")
        return str(url)


def _object_path(resource_ref: str, bucket: str) -> str:
    """Strip a public-URL prefix so only the object path remains."""
    marker = f"/object/public/{bucket}/"
    if marker in resource_ref:
        return resource_ref.split(marker, 1)[1]
    return resource_ref.lstrip("/")
