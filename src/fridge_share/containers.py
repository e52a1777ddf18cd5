"""Dependency container wiring for the application."""

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import timedelta

from supabase import AsyncClient

from fridge_share.adapters.openfoodfacts_client import HttpxOpenFoodFactsClient
from fridge_share.adapters.supabase_auth_client import AuthClient, SupabaseAuthClient
from fridge_share.adapters.supabase_document_store import SupabaseDocumentStore
from fridge_share.config import Settings
from fridge_share.services.barcodes import BarcodeService
from fridge_share.services.cache import InMemoryCache
from fridge_share.services.fridges import FridgeRegistry
from fridge_share.services.inventory import InventoryService
from fridge_share.services.memberships import MembershipLedger
from fridge_share.services.profiles import ProfileService
from fridge_share.services.shopping import ShoppingService
from fridge_share.services.store import DocumentStore


@dataclass
class AppContainer:
    """Holds application-wide dependencies."""

    settings: Settings
    store: DocumentStore
    auth_client: AuthClient
    profile_service: ProfileService
    fridge_registry: FridgeRegistry
    membership_ledger: MembershipLedger
    inventory_service: InventoryService
    shopping_service: ShoppingService
    barcode_service: BarcodeService
    close_resources: Callable[[], Awaitable[None]]


def build_services(
    settings: Settings,
    store: DocumentStore,
    auth_client: AuthClient,
    barcode_service: BarcodeService,
    close_resources: Callable[[], Awaitable[None]],
) -> AppContainer:
    """Wire the application services on top of the given adapters."""
    soon_window = timedelta(days=settings.expiring_soon_days)
    profile_service = ProfileService(store)
    fridge_registry = FridgeRegistry(
        store,
        code_length=settings.invite_code_length,
        max_code_attempts=settings.invite_code_attempts,
        default_name=settings.default_fridge_name,
    )
    membership_ledger = MembershipLedger(store, fridge_registry)
    inventory_service = InventoryService(
        store,
        membership_ledger,
        profile_service,
        soon_window=soon_window,
        default_unit=settings.default_unit,
    )
    shopping_service = ShoppingService(
        store,
        membership_ledger,
        fridge_registry,
        inventory_service,
        profile_service,
        soon_window=soon_window,
    )
    return AppContainer(
        settings=settings,
        store=store,
        auth_client=auth_client,
        profile_service=profile_service,
        fridge_registry=fridge_registry,
        membership_ledger=membership_ledger,
        inventory_service=inventory_service,
        shopping_service=shopping_service,
        barcode_service=barcode_service,
        close_resources=close_resources,
    )


def build_container(settings: Settings | None = None) -> AppContainer:
    """Create the default dependency container."""
    resolved_settings = settings or Settings()
    supabase_client = AsyncClient(
        resolved_settings.supabase_url, resolved_settings.supabase_service_key
    )
    store = SupabaseDocumentStore(supabase_client)
    product_client = (
        HttpxOpenFoodFactsClient.create(
            base_url=resolved_settings.openfoodfacts_base_url,
            user_agent=resolved_settings.openfoodfacts_user_agent,
        )
        if resolved_settings.barcode_lookup_enabled
        else None
    )
    barcode_service = BarcodeService(
        store=store,
        product_client=product_client,
        cache=InMemoryCache(),
        cache_ttl_seconds=resolved_settings.barcode_cache_ttl_seconds,
    )

    async def close_resources() -> None:
        if product_client is not None:
            await product_client.close()
        for channel in supabase_client.get_channels():
            await supabase_client.remove_channel(channel)

    return build_services(
        resolved_settings,
        store,
        SupabaseAuthClient(supabase_client),
        barcode_service,
        close_resources,
    )
