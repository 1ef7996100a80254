"""Product catalog repository."""

import logging
from typing import Any, Callable

from .errors import (
    DuplicateKeyError,
    MalformedRecordError,
    ProductNotFoundError,
    StoreUnavailableError,
    ValidationError,
)
from .fallback import FallbackCatalog
from .models import PRODUCT_KEYS, Product, _utc_now, generate_product_id
from .sizes import SizeConfigurationStore, resolve_price, size_key_for
from .store import ILike, TableStore

logger = logging.getLogger(__name__)

TABLE = "products"
STANDARD_CATEGORIES = ("Wedding", "Jewellery", "Home Decor", "Furniture")
MIN_PRODUCTS = 10
ID_ATTEMPTS = 5

REQUIRED_FIELDS = ("name", "description", "price", "image", "category")
IMMUTABLE_FIELDS = {"id", "created_at", "updated_at"}
NUMERIC_FIELDS = {"price", "original_price", "discount"}
TEXT_FIELDS = {"name", "description", "image", "category", "subcategory", "catalog_id", "catalog_name"}


def _number(name: str, value: Any) -> float:
    if isinstance(value, bool):
        raise ValidationError(f"{name} must be a number", [name])
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be a number", [name])
    if number < 0:
        raise ValidationError(f"{name} must not be negative", [name])
    return number


def _normalize_fields(data: dict[str, Any]) -> dict[str, Any]:
    """Map camelCase or snake_case product fields to column names."""
    unknown = [k for k in data if k not in PRODUCT_KEYS]
    if unknown:
        raise ValidationError(f"Unknown product fields: {', '.join(unknown)}", unknown)
    result = {PRODUCT_KEYS[k]: v for k, v in data.items()}
    for name in NUMERIC_FIELDS & set(result):
        if result[name] is not None:
            result[name] = _number(name, result[name])
    for name in TEXT_FIELDS & set(result):
        if result[name] is not None and not isinstance(result[name], str):
            raise ValidationError(f"{name} must be a string", [name])
    images = result.get("images")
    if images is not None and (not isinstance(images, list) or not all(isinstance(i, str) for i in images)):
        raise ValidationError("images must be a list of strings", ["images"])
    if result.get("stock") is not None:
        result["stock"] = int(_number("stock", result["stock"]))
    return result


class ProductRepository:
    """CRUD over products with a fallback merge policy for reads."""

    def __init__(
        self,
        store: TableStore,
        fallback: FallbackCatalog,
        sizes: SizeConfigurationStore | None = None,
        min_products: int = MIN_PRODUCTS,
        required_categories: tuple[str, ...] = STANDARD_CATEGORIES,
        id_factory: Callable[[], str] = generate_product_id,
    ):
        """
        Initialize ProductRepository.

        Args:
            store: Table store holding the products table.
            fallback: Products merged in when the store is incomplete.
            sizes: Size charts, used to reject prices that would go negative.
            min_products: Below this many stored products the fallback is merged.
            required_categories: Categories that must all be present, else merge.
            id_factory: Product ID generator.
        """
        self.store = store
        self.fallback = fallback
        self.sizes = sizes
        self.min_products = min_products
        self.required_categories = tuple(required_categories)
        self._new_id = id_factory

    # --- Reads ---

    def _decode(self, rows: list[dict[str, Any]]) -> list[Product]:
        products = []
        for row in rows:
            try:
                products.append(Product.from_row(row))
            except MalformedRecordError as e:
                logger.warning("Skipping product row %s: %s", row.get("id"), e)
        return products

    def _is_incomplete(self, products: list[Product]) -> bool:
        if len(products) < self.min_products:
            return True
        present = {p.category for p in products}
        return not all(c in present for c in self.required_categories)

    def get_all_products(self) -> list[Product]:
        """
        Get all products, newest first.

        Never raises. If the store is unavailable the fallback catalog is
        returned. If the store has fewer than min_products or is missing a
        required category, fallback products with IDs not in the store are
        appended.
        """
        try:
            rows = self.store.select(TABLE, order_by="created_at", descending=True)
        except StoreUnavailableError as e:
            logger.warning("Product store unavailable, using fallback catalog: %s", e)
            return list(self.fallback.products)

        products = self._decode(rows)
        if self._is_incomplete(products):
            logger.info(
                "Store has incomplete product data (%d products), merging fallback catalog",
                len(products),
            )
            known = {p.id for p in products}
            products.extend(p for p in self.fallback.products if p.id not in known)
        return products

    def get_product(self, product_id: str) -> Product:
        """
        Get a product by ID (store or fallback).

        Raises:
            ProductNotFoundError: If no product has this ID.
        """
        for product in self.get_all_products():
            if product.id == product_id:
                return product
        raise ProductNotFoundError(product_id)

    def products_by_category(self, category: str) -> list[Product]:
        return [p for p in self.get_all_products() if p.category == category]

    def products_by_catalog(self, catalog_id: str) -> list[Product]:
        return [p for p in self.get_all_products() if p.catalog_id == catalog_id]

    def all_categories(self) -> list[str]:
        """Standard categories first, then any others in first-seen order."""
        categories = list(self.required_categories)
        for product in self.get_all_products():
            if product.category and product.category not in categories:
                categories.append(product.category)
        return categories

    # --- Writes ---

    def _check_size_prices(self, product: Product) -> None:
        if self.sizes is None:
            return
        for variant in self.sizes.sizes_for(product) or []:
            if resolve_price(product.price, variant) < 0:
                raise ValidationError(
                    f"Price {product.price:g} is negative in size '{variant.id}' "
                    f"of '{size_key_for(product)}'",
                    ["price"],
                )

    def create_product(self, data: dict[str, Any], timeout: float | None = None) -> Product:
        """
        Create a product with a freshly generated ID.

        Raises:
            ValidationError: If required fields are missing or invalid.
            StoreUnavailableError: If the store write fails.
        """
        missing = [
            f for f in REQUIRED_FIELDS
            if data.get(f) is None or (isinstance(data.get(f), str) and not data[f].strip())
        ]
        if missing:
            raise ValidationError.missing(missing)
        fields = _normalize_fields(data)
        if IMMUTABLE_FIELDS & set(fields):
            bad = sorted(IMMUTABLE_FIELDS & set(fields))
            raise ValidationError(f"Fields can't be set: {', '.join(bad)}", bad)

        now = _utc_now()
        for _ in range(ID_ATTEMPTS):
            product = Product.from_row(
                {**fields, "id": self._new_id(), "created_at": now, "updated_at": now}
            )
            self._check_size_prices(product)
            try:
                self.store.insert(TABLE, product.to_row(), timeout=timeout)
            except DuplicateKeyError:
                logger.warning("Product ID collision on %s, retrying", product.id)
                continue
            logger.info("Created product %s (%s)", product.id, product.name)
            return product
        raise DuplicateKeyError(TABLE, "could not generate a unique product ID")

    def update_product(
        self, product_id: str, changes: dict[str, Any], timeout: float | None = None
    ) -> Product:
        """
        Apply a partial update to a stored product.

        Raises:
            ProductNotFoundError: If the product isn't in the store.
            ValidationError: If a field is unknown, immutable or invalid.
        """
        fields = _normalize_fields(changes)
        bad = sorted(IMMUTABLE_FIELDS & set(fields))
        if bad:
            raise ValidationError(f"Fields can't be changed: {', '.join(bad)}", bad)
        for name in ("name", "category", "price"):
            if name in fields and fields[name] in (None, ""):
                raise ValidationError.missing([name])

        with self.store.transaction(timeout) as txn:
            rows = txn.select(TABLE, {"id": product_id})
            if not rows:
                raise ProductNotFoundError(product_id)
            fields["updated_at"] = _utc_now()
            product = Product.from_row({**rows[0], **fields})
            self._check_size_prices(product)
            txn.update(TABLE, fields, {"id": product_id})
        return product

    def delete_product(self, product_id: str, timeout: float | None = None) -> None:
        if not self.store.delete(TABLE, {"id": product_id}, timeout=timeout):
            raise ProductNotFoundError(product_id)
        logger.info("Deleted product %s", product_id)

    def _bulk_update(self, updates: list[tuple[str, dict[str, Any]]], timeout: float | None) -> int:
        now = _utc_now()
        with self.store.transaction(timeout) as txn:
            for product_id, values in updates:
                if not txn.update(TABLE, {**values, "updated_at": now}, {"id": product_id}):
                    raise ProductNotFoundError(product_id)
        return len(updates)

    def bulk_update_prices(self, updates: list[dict[str, Any]], timeout: float | None = None) -> int:
        """
        Update prices for many products at once.

        Each update is ``{productId, price, originalPrice?, discount?}``. All
        updates commit together; an unknown ID aborts the whole batch.
        """
        batch = []
        for update in updates:
            product_id = update.get("productId") or update.get("product_id")
            if not product_id or update.get("price") is None:
                raise ValidationError.missing(["productId", "price"])
            values = {"price": _number("price", update["price"])}
            for key, column in (("originalPrice", "original_price"), ("discount", "discount")):
                value = update.get(key, update.get(column))
                if value is not None:
                    values[column] = _number(column, value)
            batch.append((product_id, values))
        return self._bulk_update(batch, timeout)

    def bulk_update_inventory(
        self, updates: list[dict[str, Any]], timeout: float | None = None
    ) -> int:
        """
        Update stock for many products at once.

        Each update is ``{productId, inStock, stock?}``. All-or-nothing.
        """
        batch = []
        for update in updates:
            product_id = update.get("productId") or update.get("product_id")
            in_stock = update.get("inStock", update.get("in_stock"))
            if not product_id or in_stock is None:
                raise ValidationError.missing(["productId", "inStock"])
            values: dict[str, Any] = {"in_stock": bool(in_stock)}
            if update.get("stock") is not None:
                values["stock"] = int(_number("stock", update["stock"]))
            batch.append((product_id, values))
        return self._bulk_update(batch, timeout)

    def rename_category(self, old: str, new: str, timeout: float | None = None) -> int:
        """
        Move every product in category old to category new.

        Size charts are keyed by subcategory or product name, so they are
        not touched. Returns the number of products renamed.
        """
        missing = [
            name
            for name, value in (("oldCategory", old), ("newCategory", new))
            if not value or not value.strip()
        ]
        if missing:
            raise ValidationError.missing(missing)
        if old == new:
            raise ValidationError("Old and new category names cannot be the same", ["newCategory"])
        count = self.store.update(
            TABLE, {"category": new, "updated_at": _utc_now()}, {"category": old}, timeout=timeout
        )
        logger.info("Renamed category %r to %r on %d products", old, new, count)
        return count

    def delete_category(self, category: str, timeout: float | None = None) -> int:
        """
        Delete every product in a category (case-insensitive match).

        Destructive and irreversible; callers must confirm first. Returns the
        number of products deleted.
        """
        if not category or not category.strip():
            raise ValidationError.missing(["category"])
        count = self.store.delete(TABLE, {"category": ILike(category)}, timeout=timeout)
        logger.warning("Deleted category %r: %d products removed", category, count)
        return count
