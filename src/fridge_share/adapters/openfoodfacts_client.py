"""Open Food Facts product API client."""

from dataclasses import dataclass
from typing import Protocol

import httpx

_PRODUCT_FIELDS = "product_name,generic_name,brands,product_quantity_unit"


class ProductLookupClient(Protocol):
    """Interface for barcode product lookups."""

    async def get_product(self, barcode: str) -> dict[str, object]:
        """Return raw product data, or an empty dict for unknown barcodes."""


@dataclass
class HttpxOpenFoodFactsClient(ProductLookupClient):
    """HTTPX-backed Open Food Facts client."""

    base_url: str
    http_client: httpx.AsyncClient

    @classmethod
    def create(cls, base_url: str, user_agent: str) -> "HttpxOpenFoodFactsClient":
        """Create a client with a managed httpx session."""
        return cls(
            base_url=base_url.rstrip("/"),
            http_client=httpx.AsyncClient(headers={"User-Agent": user_agent}),
        )

    async def get_product(self, barcode: str) -> dict[str, object]:
        url = f"{self.base_url}/api/v2/product/{barcode}.json"
        response = await self.http_client.get(
            url, params={"fields": _PRODUCT_FIELDS}, timeout=10
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            return {}
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, dict) or payload.get("status") != 1:
            return {}
        product = payload.get("product")
        return product if isinstance(product, dict) else {}

    async def close(self) -> None:
        """Close the underlying HTTP session."""
        await self.http_client.aclose()
