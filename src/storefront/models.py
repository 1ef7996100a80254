"""Data models for storefront."""

import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any

from .errors import MalformedRecordError, ValidationError

PAYMENT_STATUSES = ("pending", "pending_verification", "paid", "partial", "failed")
VERIFICATION_RESULTS = ("paid", "partial", "failed")
ORDER_STATUSES = ("pending", "confirmed", "shipped", "delivered", "cancelled")

_BASE36 = string.digits + string.ascii_lowercase


def _utc_now() -> str:
    """Return current UTC time as ISO 8601 string."""
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def _random_suffix(length: int) -> str:
    return "".join(random.choice(_BASE36) for _ in range(length))


def generate_product_id() -> str:
    """Generate a product ID like ``prod-1718000000000-k3j9x0a``."""
    return f"prod-{int(time.time() * 1000)}-{_random_suffix(7)}"


def generate_order_id() -> str:
    """Generate an internal order ID like ``order-1718000000000-k3j9x0a``."""
    return f"order-{int(time.time() * 1000)}-{_random_suffix(7)}"


def generate_order_number() -> str:
    """Generate the human-facing order number, e.g. ``ORD-1718000000000-K3J9X0A2B``."""
    return f"ORD-{int(time.time() * 1000)}-{_random_suffix(9).upper()}"


def _check_columns(
    table: str, row: dict[str, Any], required: set[str], optional: set[str]
) -> None:
    """Reject rows with unknown or missing columns."""
    unknown = set(row) - required - optional
    if unknown:
        raise MalformedRecordError(table, f"unknown columns: {', '.join(sorted(unknown))}")
    missing = [c for c in sorted(required) if row.get(c) is None]
    if missing:
        raise MalformedRecordError(table, f"missing columns: {', '.join(missing)}")


def _to_float(table: str, name: str, value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        raise MalformedRecordError(table, f"{name} is not a number: {value!r}")


def _optional_float(table: str, name: str, value: Any) -> float | None:
    if value is None:
        return None
    return _to_float(table, name, value)


def _optional_int(table: str, name: str, value: Any) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool):
        raise MalformedRecordError(table, f"{name} is not an integer: {value!r}")
    number = _to_float(table, name, value)
    if not number.is_integer():
        raise MalformedRecordError(table, f"{name} is not an integer: {value!r}")
    return int(number)


def _to_text(table: str, name: str, value: Any) -> str:
    if not isinstance(value, str):
        raise MalformedRecordError(table, f"{name} is not a string: {value!r}")
    return value


def _optional_text(table: str, name: str, value: Any) -> str | None:
    if value is None or value == "":
        return None
    return _to_text(table, name, value)


def _text_list(table: str, name: str, value: Any) -> list[str]:
    if value is None:
        return []
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise MalformedRecordError(table, f"{name} is not a list of strings: {value!r}")
    return list(value)


@dataclass(frozen=True)
class SizeVariant:
    """One selectable size with its own price delta."""

    id: str  # short code, e.g. "s"
    label: str
    dimensions: str = ""  # free text, commonly "25x25 cm"
    price_modifier: float = 0.0  # signed, added to the base price

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "label": self.label,
            "dimensions": self.dimensions,
            "priceModifier": self.price_modifier,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SizeVariant":
        modifier = data.get("priceModifier", data.get("price_modifier", 0))
        try:
            modifier = float(modifier)
        except (TypeError, ValueError):
            raise ValidationError(f"priceModifier is not a number: {modifier!r}", ["priceModifier"])
        return cls(
            id=str(data.get("id") or "").strip(),
            label=str(data.get("label") or "").strip(),
            dimensions=str(data.get("dimensions") or ""),
            price_modifier=modifier,
        )

    def to_row(self, category_name: str, position: int) -> dict[str, Any]:
        return {
            "category_name": category_name,
            "size_id": self.id,
            "size_label": self.label,
            "dimensions": self.dimensions,
            "price_modifier": self.price_modifier,
            "position": position,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "SizeVariant":
        _check_columns(
            "size_configurations",
            row,
            {"category_name", "size_id", "size_label", "price_modifier"},
            {"dimensions", "position"},
        )
        _to_text("size_configurations", "category_name", row["category_name"])
        _optional_int("size_configurations", "position", row.get("position"))
        return cls(
            id=_to_text("size_configurations", "size_id", row["size_id"]),
            label=_to_text("size_configurations", "size_label", row["size_label"]),
            dimensions=_optional_text("size_configurations", "dimensions", row.get("dimensions")) or "",
            price_modifier=_to_float("size_configurations", "price_modifier", row["price_modifier"]),
        )


@dataclass(frozen=True)
class PricedSize:
    """A size variant together with its resolved total price."""

    variant: SizeVariant
    total_price: float

    def to_dict(self) -> dict[str, Any]:
        result = self.variant.to_dict()
        result["totalPrice"] = self.total_price
        return result


# Product fields as (attribute, camelCase key); storage columns use the attribute name
PRODUCT_FIELDS = (
    ("id", "id"),
    ("name", "name"),
    ("description", "description"),
    ("price", "price"),
    ("original_price", "originalPrice"),
    ("discount", "discount"),
    ("image", "image"),
    ("images", "images"),
    ("category", "category"),
    ("subcategory", "subcategory"),
    ("in_stock", "inStock"),
    ("stock", "stock"),
    ("catalog_id", "catalogId"),
    ("catalog_name", "catalogName"),
    ("created_at", "createdAt"),
    ("updated_at", "updatedAt"),
)
PRODUCT_KEYS = {camel: attr for attr, camel in PRODUCT_FIELDS}
PRODUCT_KEYS.update({attr: attr for attr, _ in PRODUCT_FIELDS})


@dataclass
class Product:
    """A catalog product."""

    id: str
    name: str
    description: str
    price: float
    image: str
    category: str
    images: list[str] = field(default_factory=list)
    original_price: float | None = None
    discount: float | None = None
    subcategory: str | None = None
    in_stock: bool = True
    stock: int | None = None
    catalog_id: str | None = None
    catalog_name: str | None = None
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_row(self) -> dict[str, Any]:
        return {attr: getattr(self, attr) for attr, _ in PRODUCT_FIELDS}

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Product":
        _check_columns(
            "products",
            row,
            {"id", "name", "price", "category"},
            {attr for attr, _ in PRODUCT_FIELDS},
        )
        return cls(
            id=_to_text("products", "id", row["id"]),
            name=_to_text("products", "name", row["name"]),
            description=_optional_text("products", "description", row.get("description")) or "",
            price=_to_float("products", "price", row["price"]),
            original_price=_optional_float("products", "original_price", row.get("original_price")),
            discount=_optional_float("products", "discount", row.get("discount")),
            image=_optional_text("products", "image", row.get("image")) or "",
            images=_text_list("products", "images", row.get("images")),
            category=_to_text("products", "category", row["category"]),
            subcategory=_optional_text("products", "subcategory", row.get("subcategory")),
            in_stock=row.get("in_stock", True) is not False,
            stock=_optional_int("products", "stock", row.get("stock")),
            catalog_id=_optional_text("products", "catalog_id", row.get("catalog_id")),
            catalog_name=_optional_text("products", "catalog_name", row.get("catalog_name")),
            created_at=_optional_text("products", "created_at", row.get("created_at")) or "",
            updated_at=_optional_text("products", "updated_at", row.get("updated_at")) or "",
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {}
        for attr, camel in PRODUCT_FIELDS:
            value = getattr(self, attr)
            if value is None:
                continue
            result[camel] = list(value) if attr == "images" else value
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Product":
        """Build a product from camelCase (API, fallback JSON) or snake_case keys."""
        row = {}
        for key, value in data.items():
            if key not in PRODUCT_KEYS:
                raise MalformedRecordError("products", f"unknown field: {key}")
            row[PRODUCT_KEYS[key]] = value
        return cls.from_row(row)

    def snapshot(self) -> "ProductSnapshot":
        return ProductSnapshot(id=self.id, name=self.name, price=self.price, image=self.image)


@dataclass(frozen=True)
class ProductSnapshot:
    """Frozen copy of the product fields an order line keeps."""

    id: str
    name: str
    price: float
    image: str

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "name": self.name, "price": self.price, "image": self.image}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ProductSnapshot":
        return cls(
            id=data["id"],
            name=data["name"],
            price=float(data["price"]),
            image=data.get("image") or "",
        )


@dataclass(frozen=True)
class CartLine:
    """A cart line: product snapshot, optional size and quantity."""

    product: ProductSnapshot
    quantity: int
    size: SizeVariant | None = None

    @property
    def unit_price(self) -> float:
        if self.size is None:
            return self.product.price
        return self.product.price + self.size.price_modifier

    @property
    def line_total(self) -> float:
        return self.unit_price * self.quantity

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "productId": self.product.id,
            "product": self.product.to_dict(),
            "quantity": self.quantity,
            "unitPrice": self.unit_price,
        }
        if self.size is not None:
            result["size"] = self.size.to_dict()
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CartLine":
        size = data.get("size")
        return cls(
            product=ProductSnapshot.from_dict(data["product"]),
            quantity=int(data["quantity"]),
            size=SizeVariant.from_dict(size) if size else None,
        )


@dataclass(frozen=True)
class Address:
    street: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {"street": self.street, "city": self.city, "state": self.state, "pincode": self.pincode}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Address":
        return cls(
            street=data.get("street", ""),
            city=data.get("city", ""),
            state=data.get("state", ""),
            pincode=data.get("pincode", ""),
        )


@dataclass(frozen=True)
class Customer:
    """Checkout contact details."""

    name: str
    phone: str
    email: str
    address: Address = field(default_factory=Address)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Customer":
        return cls(
            name=data.get("name", ""),
            phone=data.get("phone", ""),
            email=data.get("email", ""),
            address=Address.from_dict(data.get("address") or {}),
        )


@dataclass(frozen=True)
class PaymentSubmission:
    """One accepted payment-reference submission."""

    utr_number: str
    submitted_at: str
    payment_proof_url: str | None = None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {"utrNumber": self.utr_number, "submittedAt": self.submitted_at}
        if self.payment_proof_url is not None:
            result["paymentProofUrl"] = self.payment_proof_url
        return result

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PaymentSubmission":
        return cls(
            utr_number=data["utrNumber"],
            submitted_at=data["submittedAt"],
            payment_proof_url=data.get("paymentProofUrl"),
        )


ORDER_COLUMNS = {
    "id",
    "order_number",
    "customer",
    "items",
    "subtotal",
    "discount",
    "coupon_code",
    "total_amount",
    "payment_status",
    "order_status",
    "payment_id",
    "utr_number",
    "payment_proof_url",
    "payment_submitted_at",
    "verified_amount",
    "verified_at",
    "verified_by",
    "payment_submissions",
    "created_at",
    "updated_at",
}


@dataclass
class Order:
    """A checked-out order with frozen item snapshots."""

    id: str
    order_number: str
    customer: Customer
    items: list[CartLine]
    subtotal: float
    discount: float
    total_amount: float
    coupon_code: str | None = None
    payment_status: str = "pending"
    order_status: str = "pending"
    payment_id: str | None = None
    utr_number: str | None = None
    payment_proof_url: str | None = None
    payment_submitted_at: str | None = None
    verified_amount: float | None = None
    verified_at: str | None = None
    verified_by: str | None = None
    payment_submissions: list[PaymentSubmission] = field(default_factory=list)
    created_at: str = field(default_factory=_utc_now)
    updated_at: str = field(default_factory=_utc_now)

    def to_row(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "order_number": self.order_number,
            "customer": self.customer.to_dict(),
            "items": [line.to_dict() for line in self.items],
            "subtotal": self.subtotal,
            "discount": self.discount,
            "coupon_code": self.coupon_code,
            "total_amount": self.total_amount,
            "payment_status": self.payment_status,
            "order_status": self.order_status,
            "payment_id": self.payment_id,
            "utr_number": self.utr_number,
            "payment_proof_url": self.payment_proof_url,
            "payment_submitted_at": self.payment_submitted_at,
            "verified_amount": self.verified_amount,
            "verified_at": self.verified_at,
            "verified_by": self.verified_by,
            "payment_submissions": [s.to_dict() for s in self.payment_submissions],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_row(cls, row: dict[str, Any]) -> "Order":
        _check_columns(
            "orders",
            row,
            {"id", "order_number", "customer", "items", "total_amount"},
            ORDER_COLUMNS,
        )
        payment_status = row.get("payment_status") or "pending"
        order_status = row.get("order_status") or "pending"
        if payment_status not in PAYMENT_STATUSES:
            raise MalformedRecordError("orders", f"unknown payment_status: {payment_status}")
        if order_status not in ORDER_STATUSES:
            raise MalformedRecordError("orders", f"unknown order_status: {order_status}")
        total = _to_float("orders", "total_amount", row["total_amount"])
        try:
            items = [CartLine.from_dict(item) for item in row["items"]]
        except (KeyError, TypeError, ValueError) as e:
            raise MalformedRecordError("orders", f"bad items: {e}")
        return cls(
            id=row["id"],
            order_number=row["order_number"],
            customer=Customer.from_dict(row["customer"]),
            items=items,
            subtotal=_to_float("orders", "subtotal", row.get("subtotal", total)),
            discount=_to_float("orders", "discount", row.get("discount") or 0),
            coupon_code=row.get("coupon_code"),
            total_amount=total,
            payment_status=payment_status,
            order_status=order_status,
            payment_id=row.get("payment_id"),
            utr_number=row.get("utr_number"),
            payment_proof_url=row.get("payment_proof_url"),
            payment_submitted_at=row.get("payment_submitted_at"),
            verified_amount=_optional_float("orders", "verified_amount", row.get("verified_amount")),
            verified_at=row.get("verified_at"),
            verified_by=row.get("verified_by"),
            payment_submissions=[
                PaymentSubmission.from_dict(s) for s in row.get("payment_submissions") or []
            ],
            created_at=row.get("created_at") or "",
            updated_at=row.get("updated_at") or "",
        )

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "id": self.id,
            "orderNumber": self.order_number,
            "customer": self.customer.to_dict(),
            "items": [line.to_dict() for line in self.items],
            "subtotal": self.subtotal,
            "discount": self.discount,
            "totalAmount": self.total_amount,
            "paymentStatus": self.payment_status,
            "orderStatus": self.order_status,
            "paymentSubmissions": [s.to_dict() for s in self.payment_submissions],
            "createdAt": self.created_at,
            "updatedAt": self.updated_at,
        }
        optional = {
            "couponCode": self.coupon_code,
            "paymentId": self.payment_id,
            "utrNumber": self.utr_number,
            "paymentProofUrl": self.payment_proof_url,
            "paymentSubmittedAt": self.payment_submitted_at,
            "verifiedAmount": self.verified_amount,
            "verifiedAt": self.verified_at,
            "verifiedBy": self.verified_by,
        }
        result.update({k: v for k, v in optional.items() if v is not None})
        return result


@dataclass
class CategoriesMetadata:
    """Display metadata (images) for categories and subcategories."""

    categories: dict[str, dict[str, Any]] = field(default_factory=dict)
    subcategories: dict[str, dict[str, Any]] = field(default_factory=dict)

    @staticmethod
    def subcategory_key(category_name: str, subcategory_name: str) -> str:
        return f"{category_name}::{subcategory_name}"

    def to_rows(self) -> list[dict[str, Any]]:
        rows = [
            {"category_name": c["name"], "subcategory_name": None, "image": c.get("image")}
            for c in self.categories.values()
        ]
        rows.extend(
            {
                "category_name": s["categoryName"],
                "subcategory_name": s["subcategoryName"],
                "image": s.get("image"),
            }
            for s in self.subcategories.values()
        )
        return rows

    def add_row(self, row: dict[str, Any]) -> None:
        """Merge one stored row into this metadata."""
        _check_columns("categories_metadata", row, {"category_name"}, {"subcategory_name", "image"})
        name = _to_text("categories_metadata", "category_name", row["category_name"])
        image = _optional_text("categories_metadata", "image", row.get("image"))
        sub = _optional_text("categories_metadata", "subcategory_name", row.get("subcategory_name"))
        if sub:
            entry = {"categoryName": name, "subcategoryName": sub}
            if image:
                entry["image"] = image
            self.subcategories[self.subcategory_key(name, sub)] = entry
        else:
            entry = {"name": name}
            if image:
                entry["image"] = image
            self.categories[name] = entry

    @classmethod
    def from_rows(cls, rows: list[dict[str, Any]]) -> "CategoriesMetadata":
        metadata = cls()
        for row in rows:
            metadata.add_row(row)
        return metadata

    def to_dict(self) -> dict[str, Any]:
        return {
            "categories": {k: dict(v) for k, v in self.categories.items()},
            "subcategories": {k: dict(v) for k, v in self.subcategories.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CategoriesMetadata":
        categories = {}
        for key, value in (data.get("categories") or {}).items():
            name = value.get("name") or key
            entry = {"name": name}
            if value.get("image"):
                entry["image"] = value["image"]
            categories[name] = entry
        subcategories = {}
        for value in (data.get("subcategories") or {}).values():
            cat, sub = value.get("categoryName"), value.get("subcategoryName")
            if not cat or not sub:
                raise ValidationError.missing(["categoryName", "subcategoryName"])
            entry = {"categoryName": cat, "subcategoryName": sub}
            if value.get("image"):
                entry["image"] = value["image"]
            subcategories[cls.subcategory_key(cat, sub)] = entry
        return cls(categories=categories, subcategories=subcategories)
