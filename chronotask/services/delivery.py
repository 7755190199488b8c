"""
Delivery Providers.

The scheduler only decides when a summary goes out; a provider decides how.
"""

import abc
import logging
from typing import Any, Dict, Optional

import httpx

from chronotask.config import DELIVERY_TIMEOUT_SECONDS, DELIVERY_WEBHOOK_URL

logger = logging.getLogger(__name__)


class DeliveryProvider(abc.ABC):
    """Abstract base class for summary delivery channels."""

    @abc.abstractmethod
    async def send(self, profile_id: str, payload: Dict[str, Any]) -> bool:
        """
        Deliver a payload to a profile.

        Args:
            profile_id: Recipient profile
            payload: JSON-serialisable summary

        Returns:
            True on success, False on failure
        """

    async def close(self) -> None:
        """Clean up resources (e.g., close connections)."""


class LoggingDeliveryProvider(DeliveryProvider):
    """Development mode provider: logs the summary instead of sending it."""

    async def send(self, profile_id: str, payload: Dict[str, Any]) -> bool:
        logger.info(f"[DEV MODE] Would deliver task summary to profile {profile_id}: {payload}")
        return True


class WebhookDeliveryProvider(DeliveryProvider):
    """POSTs the summary as JSON to a webhook (chat bridge, push gateway, ...)."""

    def __init__(self, url: str, timeout: float = DELIVERY_TIMEOUT_SECONDS,
                 client: Optional[httpx.AsyncClient] = None):
        self.url = url
        self.timeout = timeout
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.timeout)
        return self._client

    async def send(self, profile_id: str, payload: Dict[str, Any]) -> bool:
        try:
            response = await self._get_client().post(self.url, json={"profile_id": profile_id, "summary": payload})
        except httpx.HTTPError as e:
            logger.error(f"Webhook delivery to {self.url} failed for profile {profile_id}: {str(e)}")
            return False

        if response.is_success:
            return True
        logger.error(f"Webhook delivery for profile {profile_id} returned HTTP {response.status_code}")
        return False

    async def close(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None


def build_delivery_provider(url: Optional[str] = None) -> DeliveryProvider:
    """Webhook provider when a URL is configured, logging provider otherwise."""
    target = DELIVERY_WEBHOOK_URL if url is None else url
    if target:
        return WebhookDeliveryProvider(target)
    logger.warning("No delivery webhook configured. Running in development mode (summaries are logged).")
    return LoggingDeliveryProvider()
