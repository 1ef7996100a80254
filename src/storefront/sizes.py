"""Size charts and size-based pricing."""

import logging
from typing import Any, Iterable, Protocol

from .cache import TTLCache
from .errors import MalformedRecordError, StoreUnavailableError, ValidationError
from .models import PricedSize, SizeVariant
from .store import TableStore

logger = logging.getLogger(__name__)

TABLE = "size_configurations"
CACHE_KEY = "size_configurations"

SizeConfigurations = dict[str, list[SizeVariant]]


class Sized(Protocol):
    """Anything with the fields used to look up a size chart."""

    name: str
    subcategory: str | None


def resolve_price(base_price: float, variant: SizeVariant) -> float:
    """Price of a product in the given size: base price plus the size's modifier."""
    return base_price + variant.price_modifier


def size_key_for(product: Sized) -> str:
    """
    Get the size-chart key for a product.

    The subcategory wins whenever it is non-empty, even if a size chart
    exists under the product's name.
    """
    subcategory = (product.subcategory or "").strip()
    if subcategory:
        return product.subcategory
    return product.name


def validate_configurations(
    configurations: SizeConfigurations, products: Iterable[Any] = ()
) -> None:
    """
    Check a full size-chart mapping before it is persisted.

    Args:
        configurations: Category key -> size variants.
        products: Products whose resolved prices must stay non-negative.

    Raises:
        ValidationError: Listing every offending field.
    """
    errors: list[str] = []
    for key, variants in configurations.items():
        if not key or not key.strip():
            errors.append("categoryKey")
            continue
        seen: set[str] = set()
        for i, variant in enumerate(variants):
            if not variant.id:
                errors.append(f"{key}[{i}].id")
            elif variant.id in seen:
                errors.append(f"{key}[{i}].id (duplicate '{variant.id}')")
            seen.add(variant.id)
            if not variant.label:
                errors.append(f"{key}[{i}].label")

    for product in products:
        for variant in configurations.get(size_key_for(product), []):
            if resolve_price(product.price, variant) < 0:
                errors.append(f"{size_key_for(product)}.{variant.id} (negative price for {product.id})")

    if errors:
        raise ValidationError(f"Invalid size configurations: {', '.join(errors)}", errors)


def parse_configurations(data: dict[str, Any]) -> SizeConfigurations:
    """Parse ``{key: [{id, label, dimensions, priceModifier}, ...]}``."""
    if not isinstance(data, dict):
        raise ValidationError("Size configurations must be an object", ["sizeConfigurations"])
    result: SizeConfigurations = {}
    for key, variants in data.items():
        if not isinstance(variants, list):
            raise ValidationError(f"Sizes for '{key}' must be a list", [key])
        result[key] = [SizeVariant.from_dict(v) for v in variants]
    return result


class SizeConfigurationStore:
    """Reads and replaces the size charts, keyed by category key."""

    def __init__(self, store: TableStore, cache: TTLCache):
        self.store = store
        self.cache = cache

    def _load(self) -> SizeConfigurations:
        decoded = []
        for row in self.store.select(TABLE):
            try:
                variant = SizeVariant.from_row(row)
            except MalformedRecordError as e:
                logger.warning(
                    "Skipping size row %s/%s: %s", row.get("category_name"), row.get("size_id"), e
                )
                continue
            decoded.append((row["category_name"], int(float(row.get("position") or 0)), variant))
        decoded.sort(key=lambda d: (d[2].price_modifier, d[1]))
        grouped: SizeConfigurations = {}
        for category, _, variant in decoded:
            grouped.setdefault(category, []).append(variant)
        return dict(sorted(grouped.items()))

    def get(self) -> SizeConfigurations:
        """
        Get all size charts.

        Variants are ordered by price modifier, then insertion order. Returns
        an empty mapping when the store is unavailable.
        """
        try:
            return self.cache.get_or_load(CACHE_KEY, self._load)
        except StoreUnavailableError as e:
            logger.warning("Size configurations unavailable, using none: %s", e)
            return {}

    def replace_all(
        self,
        configurations: SizeConfigurations,
        products: Iterable[Any] = (),
        timeout: float | None = None,
    ) -> None:
        """
        Replace every size chart with the given mapping.

        Not a merge: keys absent from configurations are removed. The delete
        and insert commit together.

        Raises:
            ValidationError: If any variant is invalid (nothing is written).
            StoreUnavailableError: If the store write fails.
        """
        validate_configurations(configurations, products)
        rows = []
        for key, variants in configurations.items():
            rows.extend(v.to_row(key, position) for position, v in enumerate(variants))

        with self.store.transaction(timeout) as txn:
            txn.delete(TABLE)
            if rows:
                txn.insert(TABLE, rows)
        self.cache.invalidate(CACHE_KEY)
        logger.info(
            "Replaced size configurations: %d categories, %d sizes", len(configurations), len(rows)
        )

    def sizes_for(self, product: Sized) -> list[SizeVariant] | None:
        """Get the size chart for a product, or None if it has none."""
        return self.get().get(size_key_for(product))

    def has_sizes(self, product: Sized) -> bool:
        return bool(self.sizes_for(product))

    def priced_sizes(self, product: Any) -> list[PricedSize]:
        """Get each size of a product with its resolved price."""
        return [
            PricedSize(variant=v, total_price=resolve_price(product.price, v))
            for v in self.sizes_for(product) or []
        ]
