"""
Webhook event sink.

Forwards events at or above a minimum severity to an HTTP endpoint so an
operator can alert on failed cycles and low balances.
"""

from __future__ import annotations

import logging
from typing import Optional

import httpx

from .models import BotEvent, Severity

logger = logging.getLogger(__name__)


class WebhookEventSink:
    """POSTs events as JSON to a configured URL."""

    timeout_s: float = 10.0

    def __init__(
        self,
        url: str,
        min_severity: Severity = Severity.WARNING,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.url = url
        self.min_severity = min_severity
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout_s)
        return self._client

    async def __call__(self, event: BotEvent) -> None:
        if not event.severity.at_least(self.min_severity):
            return

        try:
            response = await self._get_client().post(self.url, json=event.to_dict())
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning("Webhook delivery of %s to %s failed: %s", event.type.value, self.url, exc)

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None
