"""Email delivery adapter for client and photographer notifications."""

from dataclasses import dataclass
from typing import Protocol

import httpx


class EmailClient(Protocol):
    """Interface for one-way email delivery."""

    async def send(self, address: str, subject: str, body: str) -> None:
        """Send a plain-text message; raises when delivery is rejected."""


@dataclass
class HttpxEmailClient:
    """Email client that posts messages to the studio's send-email function."""

    function_url: str
    api_key: str
    sender: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(
        cls, function_url: str, api_key: str, sender: str
    ) -> "HttpxEmailClient":
        """Create an email client with a managed httpx session."""
        return cls(
            function_url=function_url,
            api_key=api_key,
            sender=sender,
            http_client=httpx.AsyncClient(),
        )

    async def send(self, address: str, subject: str, body: str) -> None:
        """Send a message through the email function."""
        response = await self.http_client.post(
            self.function_url,
            headers={"Authorization": f"Bearer {self.api_key}"},
            json={
                "from": self.sender,
                "to": address,
                "subject": subject,
                "text": body,
            },
            timeout=10,
        )
        response.raise_for_status()

    async def close(self) -> None:
        """Close the underlying HTTP client session."""
        await self.http_client.aclose()
