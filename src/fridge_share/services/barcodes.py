"""Barcode prefill lookups."""

import logging
from dataclasses import dataclass

import httpx

from fridge_share.adapters.openfoodfacts_client import ProductLookupClient
from fridge_share.domain.barcodes import BarcodePrefill
from fridge_share.domain.errors import InvalidInputError, TransientError
from fridge_share.services.cache import Cache
from fridge_share.services.documents import barcode_path
from fridge_share.services.store import DocumentStore

_logger = logging.getLogger(__name__)

# Cached marker for barcodes the product API does not know.
_UNKNOWN = "unknown"


@dataclass
class BarcodeService:
    """Resolves scanned barcodes to form defaults.

    Records written when stock was added with a barcode win over the public
    product database, so a household's own naming sticks.
    """

    store: DocumentStore
    product_client: ProductLookupClient | None
    cache: Cache
    cache_ttl_seconds: int = 86400

    async def lookup(self, barcode: str) -> BarcodePrefill | None:
        code = (barcode or "").strip()
        if not code:
            raise InvalidInputError("Barcode is required.")

        doc = await self.store.get(barcode_path(code))
        if doc is not None:
            name = doc.data.get("name")
            unit = doc.data.get("unit")
            if isinstance(name, str) and name.strip():
                return BarcodePrefill(
                    barcode=code,
                    name=name.strip(),
                    unit=unit if isinstance(unit, str) and unit else None,
                    source="fridge",
                )

        if self.product_client is None:
            return None
        cache_key = f"off:product:{code}"
        cached = self.cache.get(cache_key)
        if isinstance(cached, BarcodePrefill):
            return cached
        if cached == _UNKNOWN:
            return None

        try:
            product = await self.product_client.get_product(code)
        except httpx.HTTPError as exc:
            _logger.warning("Product lookup for %s failed: %s", code, exc)
            raise TransientError("Product lookup is unavailable right now.") from exc

        prefill = _prefill_from_product(code, product)
        self.cache.set(
            cache_key, prefill or _UNKNOWN, ttl_seconds=self.cache_ttl_seconds
        )
        _logger.info("Product lookup for %s: %s", code, "hit" if prefill else "miss")
        return prefill


def _prefill_from_product(
    barcode: str, product: dict[str, object]
) -> BarcodePrefill | None:
    name = ""
    for key in ("product_name", "generic_name"):
        value = product.get(key)
        if isinstance(value, str) and value.strip():
            name = value.strip()
            break
    if not name:
        return None
    brands = product.get("brands")
    if isinstance(brands, str) and brands.strip():
        brand = brands.split(",")[0].strip()
        if brand and brand.lower() not in name.lower():
            name = f"{brand} {name}"
    unit = product.get("product_quantity_unit")
    return BarcodePrefill(
        barcode=barcode,
        name=name,
        unit=unit.strip() if isinstance(unit, str) and unit.strip() else None,
        source="openfoodfacts",
    )
