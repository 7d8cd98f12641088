"""Discord webhook sender — posts under a custom display name."""

import logging

import httpx

from ..errors import ConfigurationError, TransportError
from .discord import split_message

logger = logging.getLogger("ircbridge.webhook")

WEBHOOK_URL = "https://discord.com/api/v10/webhooks/{id}/{token}"
_MAX_USERNAME = 80


class WebhookSender:
    """One configured webhook identity ('<webhook id> <webhook token>')."""

    def __init__(self, credential: str, http: httpx.AsyncClient):
        parts = credential.split()
        if len(parts) != 2:
            raise ConfigurationError("Webhook credential must be '<id> <token>'")
        self.webhook_id, self._token = parts
        self._http = http

    @property
    def url(self) -> str:
        return WEBHOOK_URL.format(id=self.webhook_id, token=self._token)

    async def send(self, text: str, username: str):
        """Execute the webhook once per chunk. No response body is awaited (wait=false)."""
        for chunk in split_message(text):
            await self._execute(chunk, username)

    async def _execute(self, text: str, username: str):
        try:
            resp = await self._http.post(self.url, json={
                "content": text,
                "username": username[:_MAX_USERNAME],
                "allowed_mentions": {"parse": ["users"]},
            })
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise TransportError(
                f"Webhook {self.webhook_id} failed: HTTP {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise TransportError(f"Webhook {self.webhook_id} failed: {e}") from e
        logger.debug(f"Webhook {self.webhook_id} sent as {username!r}")
