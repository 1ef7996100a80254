"""Wiring of stores and services for one storefront process."""

import time
from dataclasses import dataclass
from typing import Callable

from .assets import AssetStore, LocalAssetStore
from .cache import TTLCache
from .catalog import ProductRepository
from .categories import CategoryMetadataStore
from .config import Settings
from .fallback import FallbackCatalog
from .orders import OrderService
from .sizes import SizeConfigurationStore
from .store import JsonTableStore, TableStore


@dataclass
class Services:
    """Everything a request handler or CLI command needs."""

    settings: Settings
    store: TableStore
    cache: TTLCache
    assets: AssetStore
    sizes: SizeConfigurationStore
    catalog: ProductRepository
    categories: CategoryMetadataStore
    orders: OrderService


def build_services(
    settings: Settings | None = None,
    store: TableStore | None = None,
    assets: AssetStore | None = None,
    fallback: FallbackCatalog | None = None,
    clock: Callable[[], float] = time.monotonic,
) -> Services:
    """
    Build the services for one process.

    Args:
        settings: Settings (read from the environment if omitted).
        store: Table store (a JsonTableStore in settings.data_dir if omitted).
        assets: Asset store (a LocalAssetStore if omitted).
        fallback: Fallback catalog (settings.fallback_catalog or the
            built-in seed if omitted).
        clock: Clock for the read cache.
    """
    settings = settings or Settings.from_env()
    if store is None:
        store = JsonTableStore(settings.data_dir, timeout=settings.store_timeout)
    if assets is None:
        assets = LocalAssetStore(settings.assets_root, settings.asset_base_url)
    if fallback is None:
        if settings.fallback_catalog:
            fallback = FallbackCatalog.from_file(settings.fallback_catalog)
        else:
            fallback = FallbackCatalog.builtin()

    cache = TTLCache(ttl=settings.cache_ttl, clock=clock)
    sizes = SizeConfigurationStore(store, cache)
    catalog = ProductRepository(
        store,
        fallback,
        sizes=sizes,
        min_products=settings.min_products,
        required_categories=settings.required_categories,
    )
    return Services(
        settings=settings,
        store=store,
        cache=cache,
        assets=assets,
        sizes=sizes,
        catalog=catalog,
        categories=CategoryMetadataStore(store, cache),
        orders=OrderService(store, assets, sizes=sizes),
    )
