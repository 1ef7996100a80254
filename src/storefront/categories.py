"""Category and subcategory display metadata."""

import logging

from .cache import TTLCache
from .errors import MalformedRecordError, StoreUnavailableError, ValidationError
from .models import CategoriesMetadata
from .store import TableStore

logger = logging.getLogger(__name__)

TABLE = "categories_metadata"
CACHE_KEY = "categories_metadata"


class CategoryMetadataStore:
    """Manages category images shown on navigation and listing pages."""

    def __init__(self, store: TableStore, cache: TTLCache):
        self.store = store
        self.cache = cache

    def get(self) -> CategoriesMetadata:
        """Get all metadata. Empty when the store is unavailable."""
        try:
            rows = self.cache.get_or_load(CACHE_KEY, lambda: self.store.select(TABLE))
        except StoreUnavailableError as e:
            logger.warning("Categories metadata unavailable: %s", e)
            return CategoriesMetadata()
        metadata = CategoriesMetadata()
        for row in rows:
            try:
                metadata.add_row(row)
            except MalformedRecordError as e:
                logger.warning("Skipping categories metadata row %s: %s", row.get("category_name"), e)
        return metadata

    def save(self, metadata: CategoriesMetadata, timeout: float | None = None) -> None:
        """Replace all metadata in one transaction."""
        rows = metadata.to_rows()
        with self.store.transaction(timeout) as txn:
            txn.delete(TABLE)
            if rows:
                txn.insert(TABLE, rows)
        self.cache.invalidate(CACHE_KEY)

    def _upsert_image(
        self,
        category_name: str,
        subcategory_name: str | None,
        image: str | None,
        timeout: float | None,
    ) -> None:
        where = {"category_name": category_name, "subcategory_name": subcategory_name}
        with self.store.transaction(timeout) as txn:
            if not txn.update(TABLE, {"image": image}, where):
                txn.insert(TABLE, {**where, "image": image})
        self.cache.invalidate(CACHE_KEY)

    def set_category_image(
        self, category_name: str, image: str | None, timeout: float | None = None
    ) -> None:
        """Set (or clear, with None) a category's image."""
        if not category_name:
            raise ValidationError.missing(["categoryName"])
        self._upsert_image(category_name, None, image, timeout)

    def set_subcategory_image(
        self,
        category_name: str,
        subcategory_name: str,
        image: str | None,
        timeout: float | None = None,
    ) -> None:
        """Set (or clear, with None) a subcategory's image."""
        if not category_name or not subcategory_name:
            raise ValidationError.missing(["categoryName", "subcategoryName"])
        self._upsert_image(category_name, subcategory_name, image, timeout)
