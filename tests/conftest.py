"""Pytest fixtures for storefront tests."""

import tempfile
from contextlib import contextmanager
from pathlib import Path

import pytest

from storefront.assets import LocalAssetStore
from storefront.config import Settings
from storefront.errors import StoreUnavailableError
from storefront.fallback import FallbackCatalog
from storefront.models import Address, Customer
from storefront.services import build_services
from storefront.store import MemoryTableStore, TableStore

ADMIN_TOKEN = "test-admin-token"


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class UnavailableStore(TableStore):
    """A store whose every operation fails as if the backend were down."""

    @contextmanager
    def _lock(self, timeout):
        raise StoreUnavailableError("connection refused")
        yield


@pytest.fixture
def temp_dir():
    """Create a temporary directory."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    return MemoryTableStore(timeout=1.0)


@pytest.fixture
def unavailable_store():
    return UnavailableStore()


@pytest.fixture
def settings(temp_dir):
    return Settings(data_dir=temp_dir / "data", admin_token=ADMIN_TOKEN)


@pytest.fixture
def assets(temp_dir):
    return LocalAssetStore(temp_dir / "assets", "/assets")


@pytest.fixture
def services(settings, store, assets, clock):
    """Services over an in-memory store with no fallback products."""
    return build_services(
        settings, store=store, assets=assets, fallback=FallbackCatalog([]), clock=clock
    )


@pytest.fixture
def seeded_services(settings, store, assets, clock):
    """Services over an in-memory store with the built-in fallback catalog."""
    return build_services(
        settings, store=store, assets=assets, fallback=FallbackCatalog.builtin(), clock=clock
    )


@pytest.fixture
def admin_headers():
    return {"X-Admin-Token": ADMIN_TOKEN}


@pytest.fixture
def customer():
    return Customer(
        name="Asha Verma",
        phone="9876543210",
        email="asha@example.com",
        address=Address(street="12 MG Road", city="Pune", state="MH", pincode="411001"),
    )


@pytest.fixture
def product_data():
    """Valid camelCase product fields, without an ID."""
    return {
        "name": "Geode Wall Clock",
        "description": "Agate-style resin wall clock.",
        "price": 999,
        "image": "/images/geode.jpg",
        "category": "Home Decor",
        "subcategory": "Wall Clocks",
    }
