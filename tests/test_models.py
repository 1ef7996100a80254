"""Tests for record models and their storage schema checks."""

import pytest

from storefront.errors import MalformedRecordError
from storefront.models import (
    CartLine,
    Order,
    Product,
    ProductSnapshot,
    SizeVariant,
    generate_order_number,
    generate_product_id,
)


@pytest.fixture
def order_row(customer):
    line = CartLine(
        product=ProductSnapshot(id="p1", name="Clock", price=999.0, image="/c.jpg"),
        quantity=2,
        size=SizeVariant(id="m", label="M", dimensions="35x35 cm", price_modifier=300),
    )
    order = Order(
        id="order-1",
        order_number="ORD-1-ABCDEFGHI",
        customer=customer,
        items=[line],
        subtotal=2598.0,
        discount=0.0,
        total_amount=2598.0,
    )
    return order.to_row()


class TestIds:
    def test_product_ids_are_unique(self):
        assert len({generate_product_id() for _ in range(200)}) == 200

    def test_order_number_format(self):
        prefix, millis, suffix = generate_order_number().split("-")
        assert prefix == "ORD"
        assert millis.isdigit()
        assert len(suffix) == 9 and suffix.upper() == suffix


class TestProduct:
    def test_to_dict_is_camel_case_and_skips_none(self):
        product = Product(
            id="p1", name="Clock", description="", price=999.0, image="", category="Home Decor",
            original_price=1299.0,
        )
        data = product.to_dict()
        assert data["originalPrice"] == 1299.0
        assert data["inStock"] is True
        assert "subcategory" not in data
        assert "original_price" not in data

    def test_from_dict_accepts_both_key_styles(self):
        product = Product.from_dict(
            {"id": "p1", "name": "Clock", "price": "999", "category": "A", "in_stock": False, "catalogId": "c1"}
        )
        assert product.price == 999.0
        assert product.in_stock is False
        assert product.catalog_id == "c1"

    def test_from_row_rejects_unknown_column(self):
        with pytest.raises(MalformedRecordError):
            Product.from_row({"id": "p1", "name": "Clock", "price": 1, "category": "A", "colour": "red"})

    def test_from_row_rejects_bad_price(self):
        with pytest.raises(MalformedRecordError):
            Product.from_row({"id": "p1", "name": "Clock", "price": "cheap", "category": "A"})

    @pytest.mark.parametrize(
        "column,value",
        [("stock", "many"), ("stock", True), ("stock", 1.5), ("images", "a.jpg"), ("images", [1]), ("image", 3)],
    )
    def test_from_row_rejects_bad_field_type(self, column, value):
        with pytest.raises(MalformedRecordError):
            Product.from_row({"id": "p1", "name": "Clock", "price": 1, "category": "A", column: value})

    def test_from_row_accepts_integral_stock(self):
        product = Product.from_row({"id": "p1", "name": "Clock", "price": 1, "category": "A", "stock": 4.0})
        assert product.stock == 4


class TestCartLine:
    def test_unit_price_includes_size(self, order_row):
        line = Order.from_row(order_row).items[0]
        assert line.unit_price == 1299
        assert line.line_total == 2598

    def test_to_dict(self, order_row):
        item = order_row["items"][0]
        assert item["productId"] == "p1"
        assert item["unitPrice"] == 1299
        assert item["size"]["priceModifier"] == 300


class TestOrder:
    def test_from_row(self, order_row):
        order = Order.from_row(order_row)
        assert order.customer.address.city == "Pune"
        assert order.to_row() == order_row

    def test_to_dict_omits_unset_optionals(self, order_row):
        data = Order.from_row(order_row).to_dict()
        assert data["orderNumber"] == "ORD-1-ABCDEFGHI"
        assert "utrNumber" not in data
        assert "verifiedAmount" not in data

    def test_unknown_payment_status(self, order_row):
        order_row["payment_status"] = "refunded"
        with pytest.raises(MalformedRecordError):
            Order.from_row(order_row)

    def test_bad_items(self, order_row):
        order_row["items"] = [{"quantity": 1}]
        with pytest.raises(MalformedRecordError):
            Order.from_row(order_row)

    def test_missing_column(self, order_row):
        del order_row["order_number"]
        with pytest.raises(MalformedRecordError):
            Order.from_row(order_row)
