"""
LemonSqueezy client - checkout creation over the LemonSqueezy JSON:API.
"""

import logging
from typing import Optional

import httpx

from app.core.config import settings
from app.core.exceptions import ProviderError

logger = logging.getLogger(__name__)

JSON_API = "application/vnd.api+json"


class CheckoutSession:
    def __init__(self, checkout_id: str, url: str):
        self.checkout_id = checkout_id
        self.url = url


class LemonSqueezyClient:
    """
    Thin async wrapper around the LemonSqueezy REST API.

    Only checkout creation is needed server-side; subscription state arrives
    through webhooks.
    """

    def __init__(
        self,
        api_key: Optional[str],
        store_id: Optional[str],
        api_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key
        self.store_id = store_id
        self.api_url = api_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict:
        return {
            "Accept": JSON_API,
            "Content-Type": JSON_API,
            "Authorization": f"Bearer {self.api_key}",
        }

    async def create_checkout(
        self,
        variant_id: str,
        user_id: str,
        email: Optional[str] = None,
        redirect_url: Optional[str] = None,
    ) -> CheckoutSession:
        """
        Create a hosted checkout for a variant.

        `user_id` travels in checkout_data.custom so that webhooks for the
        resulting subscription carry it back as meta.custom_data.user_id.
        """
        if not self.api_key or not self.store_id:
            logger.error("LemonSqueezy API key or store id is not set. Cannot create checkout.")
            raise ProviderError("Payment provider is not configured")

        checkout_data = {"custom": {"user_id": user_id}}
        if email:
            checkout_data["email"] = email

        attributes = {"checkout_data": checkout_data}
        if redirect_url:
            attributes["product_options"] = {"redirect_url": redirect_url}

        payload = {
            "data": {
                "type": "checkouts",
                "attributes": attributes,
                "relationships": {
                    "store": {"data": {"type": "stores", "id": str(self.store_id)}},
                    "variant": {"data": {"type": "variants", "id": str(variant_id)}},
                },
            }
        }

        try:
            async with httpx.AsyncClient(transport=self.transport) as client:
                res = await client.post(
                    f"{self.api_url}/checkouts",
                    headers=self._headers(),
                    json=payload,
                    timeout=self.timeout,
                )
        except httpx.RequestError as e:
            logger.error(f"LemonSqueezy request failed: {e}")
            raise ProviderError("Failed to create checkout") from e

        if not res.is_success:
            logger.error(f"LemonSqueezy returned {res.status_code}: {res.text}")
            raise ProviderError("Failed to create checkout")

        data = res.json().get("data") or {}
        url = (data.get("attributes") or {}).get("url")
        if not data.get("id") or not url:
            logger.error(f"LemonSqueezy checkout response missing id or url: {data}")
            raise ProviderError("Failed to create checkout")

        logger.info(f"Created LemonSqueezy checkout {data['id']} for user {user_id}")
        return CheckoutSession(checkout_id=str(data["id"]), url=url)


def get_lemonsqueezy_client() -> LemonSqueezyClient:
    return LemonSqueezyClient(
        api_key=settings.LEMON_SQUEEZY_API_KEY,
        store_id=settings.LEMON_SQUEEZY_STORE_ID,
        api_url=settings.LEMON_SQUEEZY_API_URL,
    )
