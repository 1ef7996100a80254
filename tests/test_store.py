"""Tests for the table stores."""

import json
import threading

import pytest

from storefront.errors import DuplicateKeyError, StoreTimeoutError, StoreUnavailableError
from storefront.fallback import FallbackCatalog
from storefront.services import build_services
from storefront.store import ILike, JsonTableStore, MemoryTableStore


@pytest.fixture(params=["memory", "json"])
def any_store(request, temp_dir):
    if request.param == "memory":
        return MemoryTableStore(timeout=1.0)
    return JsonTableStore(temp_dir / "data", timeout=1.0)


class TestTableStore:
    def test_insert_and_select(self, any_store):
        any_store.insert("products", {"id": "p1", "name": "Clock"})
        assert any_store.select("products") == [{"id": "p1", "name": "Clock"}]

    def test_select_where(self, any_store):
        any_store.insert("products", [{"id": "p1", "category": "A"}, {"id": "p2", "category": "B"}])
        assert [r["id"] for r in any_store.select("products", {"category": "B"})] == ["p2"]

    def test_ilike(self, any_store):
        any_store.insert("products", [{"id": "p1", "category": "Home Decor"}])
        assert any_store.select("products", {"category": ILike("home decor")})
        assert not any_store.select("products", {"category": ILike("home")})

    def test_order_by_descending_puts_missing_last(self, any_store):
        any_store.insert(
            "products",
            [
                {"id": "a", "created_at": "2024-01-01T00:00:00Z"},
                {"id": "b", "created_at": None},
                {"id": "c", "created_at": "2024-06-01T00:00:00Z"},
            ],
        )
        rows = any_store.select("products", order_by="created_at", descending=True)
        assert [r["id"] for r in rows][:2] == ["c", "a"]

    def test_duplicate_primary_key(self, any_store):
        any_store.insert("products", {"id": "p1"})
        with pytest.raises(DuplicateKeyError):
            any_store.insert("products", {"id": "p1"})
        assert len(any_store.select("products")) == 1

    def test_tables_without_key_allow_duplicates(self, any_store):
        row = {"category_name": "A", "size_id": "s", "size_label": "S", "price_modifier": 0}
        any_store.insert("size_configurations", [row, row])
        assert len(any_store.select("size_configurations")) == 2

    def test_update_returns_count(self, any_store):
        any_store.insert("products", [{"id": "p1", "category": "A"}, {"id": "p2", "category": "A"}])
        assert any_store.update("products", {"category": "B"}, {"category": "A"}) == 2
        assert any_store.update("products", {"category": "C"}, {"category": "Z"}) == 0

    def test_delete(self, any_store):
        any_store.insert("products", [{"id": "p1"}, {"id": "p2"}])
        assert any_store.delete("products", {"id": "p1"}) == 1
        assert any_store.delete("products") == 1
        assert any_store.select("products") == []

    def test_select_returns_copies(self, any_store):
        any_store.insert("products", {"id": "p1", "images": ["a"]})
        any_store.select("products")[0]["images"].append("b")
        assert any_store.select("products")[0]["images"] == ["a"]

    def test_unknown_table(self, any_store):
        with pytest.raises(KeyError):
            any_store.select("customers")

    def test_transaction_commits_together(self, any_store):
        with any_store.transaction() as txn:
            txn.insert("products", {"id": "p1"})
            txn.insert("orders", {"id": "o1"})
        assert len(any_store.select("products")) == 1
        assert len(any_store.select("orders")) == 1

    def test_transaction_rolls_back_on_error(self, any_store):
        any_store.insert("products", {"id": "p1", "price": 10})
        with pytest.raises(DuplicateKeyError):
            with any_store.transaction() as txn:
                txn.update("products", {"price": 20}, {"id": "p1"})
                txn.insert("products", {"id": "p1"})
        assert any_store.select("products")[0]["price"] == 10


class TestMemoryTableStore:
    def test_lock_timeout(self):
        store = MemoryTableStore(timeout=0.05)
        entered = threading.Event()
        release = threading.Event()

        def hold():
            with store.transaction():
                entered.set()
                release.wait(2)

        thread = threading.Thread(target=hold)
        thread.start()
        try:
            entered.wait(2)
            with pytest.raises(StoreTimeoutError):
                store.select("products")
        finally:
            release.set()
            thread.join()

    def test_timeout_is_unavailable(self):
        assert issubclass(StoreTimeoutError, StoreUnavailableError)


class TestJsonTableStore:
    def test_persists_across_instances(self, temp_dir):
        JsonTableStore(temp_dir).insert("orders", {"id": "o1"})
        assert JsonTableStore(temp_dir).select("orders") == [{"id": "o1"}]

    def test_file_format(self, temp_dir):
        JsonTableStore(temp_dir).insert("products", {"id": "p1"})
        data = json.loads((temp_dir / "store.json").read_text())
        assert data["schema_version"] == 1
        assert data["tables"]["products"] == [{"id": "p1"}]

    def test_missing_file_is_empty(self, temp_dir):
        assert JsonTableStore(temp_dir / "new").select("products") == []

    def test_corrupt_file_is_unavailable(self, temp_dir):
        (temp_dir / "store.json").write_text("{not json")
        with pytest.raises(StoreUnavailableError):
            JsonTableStore(temp_dir).select("products")

    def test_unknown_schema_version(self, temp_dir):
        (temp_dir / "store.json").write_text(json.dumps({"schema_version": 99, "tables": {}}))
        with pytest.raises(StoreUnavailableError):
            JsonTableStore(temp_dir).select("products")

    def test_read_only_select_does_not_create_file(self, temp_dir):
        JsonTableStore(temp_dir).select("products")
        assert not (temp_dir / "store.json").exists()

    @pytest.mark.parametrize(
        "document",
        [
            [],
            "tables",
            {"schema_version": 1, "tables": []},
            {"schema_version": 1, "tables": {"products": {"id": "p1"}}},
            {"schema_version": 1, "tables": {"products": ["p1"]}},
        ],
    )
    def test_wrong_shape_is_unavailable(self, temp_dir, document):
        (temp_dir / "store.json").write_text(json.dumps(document))
        with pytest.raises(StoreUnavailableError):
            JsonTableStore(temp_dir).select("products")

    def test_wrong_shape_serves_fallback_catalog(self, temp_dir, settings, assets):
        data_dir = temp_dir / "data"
        data_dir.mkdir()
        (data_dir / "store.json").write_text("[]")
        services = build_services(
            settings, store=JsonTableStore(data_dir), assets=assets, fallback=FallbackCatalog.builtin()
        )
        products = services.catalog.get_all_products()
        assert products == FallbackCatalog.builtin().products
