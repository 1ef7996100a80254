"""Fallback catalog served when the product store is empty or unreachable."""

import json
from pathlib import Path
from typing import Any

from .errors import MalformedRecordError, ValidationError
from .models import Product

SEED_TIMESTAMP = "2024-01-01T00:00:00Z"

# Built-in seed catalog: resin craft products across the standard categories
SEED_PRODUCTS: list[dict[str, Any]] = [
    {
        "id": "seed-wedding-varmala",
        "name": "Varmala Preservation Frame",
        "description": "Wedding garland flowers preserved in clear resin.",
        "price": 4999,
        "originalPrice": 5999,
        "discount": 17,
        "image": "/images/products/varmala-frame.jpg",
        "category": "Wedding",
        "subcategory": "Varmala Preservation",
    },
    {
        "id": "seed-wedding-invite",
        "name": "Wedding Invitation Keepsake",
        "description": "Your wedding card set in a resin block.",
        "price": 1499,
        "image": "/images/products/invite-keepsake.jpg",
        "category": "Wedding",
    },
    {
        "id": "seed-wedding-nameplate",
        "name": "Couple Nameplate",
        "description": "Resin nameplate with dried petals and gold flakes.",
        "price": 2499,
        "image": "/images/products/couple-nameplate.jpg",
        "category": "Wedding",
        "subcategory": "Nameplates",
    },
    {
        "id": "seed-jewellery-pendant",
        "name": "Pressed Flower Pendant",
        "description": "Real flowers in a resin pendant on a silver chain.",
        "price": 799,
        "image": "/images/products/flower-pendant.jpg",
        "category": "Jewellery",
    },
    {
        "id": "seed-jewellery-earrings",
        "name": "Ocean Drop Earrings",
        "description": "Blue resin teardrop earrings.",
        "price": 599,
        "image": "/images/products/ocean-earrings.jpg",
        "category": "Jewellery",
    },
    {
        "id": "seed-jewellery-ring",
        "name": "Gold Flake Ring",
        "description": "Clear resin ring with gold flakes.",
        "price": 499,
        "image": "/images/products/gold-ring.jpg",
        "category": "Jewellery",
    },
    {
        "id": "seed-decor-clock",
        "name": "Geode Wall Clock",
        "description": "Agate-style resin wall clock.",
        "price": 999,
        "image": "/images/products/geode-clock.jpg",
        "category": "Home Decor",
        "subcategory": "Wall Clocks",
    },
    {
        "id": "seed-decor-coasters",
        "name": "Ocean Coaster Set",
        "description": "Set of four wave-pattern coasters.",
        "price": 899,
        "image": "/images/products/ocean-coasters.jpg",
        "category": "Home Decor",
        "subcategory": "Coasters",
    },
    {
        "id": "seed-decor-tray",
        "name": "Serving Tray",
        "description": "Resin serving tray with brass handles.",
        "price": 1899,
        "image": "/images/products/serving-tray.jpg",
        "category": "Home Decor",
    },
    {
        "id": "seed-furniture-table",
        "name": "River Coffee Table",
        "description": "Wood and resin river coffee table.",
        "price": 24999,
        "image": "/images/products/river-table.jpg",
        "category": "Furniture",
        "subcategory": "Tables",
    },
    {
        "id": "seed-furniture-shelf",
        "name": "Floating Wall Shelf",
        "description": "Live-edge wood shelf with a resin inlay.",
        "price": 6999,
        "image": "/images/products/wall-shelf.jpg",
        "category": "Furniture",
    },
    {
        "id": "seed-furniture-stool",
        "name": "Resin Top Stool",
        "description": "Bar stool with an epoxy resin seat.",
        "price": 8999,
        "image": "/images/products/resin-stool.jpg",
        "category": "Furniture",
    },
]


class FallbackCatalog:
    """A fixed set of products merged into catalog reads when needed."""

    def __init__(self, products: list[Product]):
        self.products = list(products)

    @classmethod
    def from_dicts(cls, items: list[dict[str, Any]]) -> "FallbackCatalog":
        products = []
        for item in items:
            data = {"createdAt": SEED_TIMESTAMP, "updatedAt": SEED_TIMESTAMP}
            data.update(item)
            products.append(Product.from_dict(data))
        return cls(products)

    @classmethod
    def builtin(cls) -> "FallbackCatalog":
        return cls.from_dicts(SEED_PRODUCTS)

    @classmethod
    def from_file(cls, path: Path) -> "FallbackCatalog":
        """
        Load a fallback catalog from a JSON list of products.

        Raises:
            ValidationError: If the file is unreadable or not a product list.
        """
        try:
            with open(path, "r", encoding="utf-8") as f:
                items = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ValidationError(f"Cannot read fallback catalog {path}: {e}", ["fallbackCatalog"])
        if not isinstance(items, list):
            raise ValidationError(f"Fallback catalog {path} must be a list", ["fallbackCatalog"])
        try:
            return cls.from_dicts(items)
        except MalformedRecordError as e:
            raise ValidationError(f"Invalid fallback catalog {path}: {e}", ["fallbackCatalog"])
