"""Runtime settings for storefront.

Every setting can be overridden with a ``STOREFRONT_*`` environment variable.
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Mapping

from .cache import DEFAULT_TTL
from .catalog import MIN_PRODUCTS, STANDARD_CATEGORIES
from .errors import ValidationError

_default_data_dir = Path(__file__).parent.parent.parent / "data"

ENV_PREFIX = "STOREFRONT_"
DEFAULT_ADMIN_TOKEN = "admin123"


def _float(env: Mapping[str, str], name: str, default: float) -> float:
    raw = env.get(ENV_PREFIX + name)
    if raw is None or raw == "":
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValidationError(f"{ENV_PREFIX}{name} must be a number, got {raw!r}", [name])


@dataclass
class Settings:
    """Storefront configuration."""

    data_dir: Path = _default_data_dir
    asset_dir: Path | None = None  # defaults to <data_dir>/assets
    asset_base_url: str = "/assets"
    admin_token: str = DEFAULT_ADMIN_TOKEN
    cache_ttl: float = DEFAULT_TTL
    store_timeout: float = 5.0
    fallback_catalog: Path | None = None  # JSON product list; built-in seed if unset
    min_products: int = MIN_PRODUCTS
    required_categories: tuple[str, ...] = field(default=STANDARD_CATEGORIES)
    log_level: str = "INFO"

    @property
    def assets_root(self) -> Path:
        return self.asset_dir or self.data_dir / "assets"

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> "Settings":
        """Build settings from environment variables."""
        env = os.environ if env is None else env

        def get(name: str) -> str | None:
            value = env.get(ENV_PREFIX + name)
            return value if value else None

        categories = get("REQUIRED_CATEGORIES")
        asset_dir = get("ASSET_DIR")
        fallback = get("FALLBACK_CATALOG")
        return cls(
            data_dir=Path(get("DATA_DIR") or _default_data_dir),
            asset_dir=Path(asset_dir) if asset_dir else None,
            asset_base_url=get("ASSET_BASE_URL") or "/assets",
            admin_token=get("ADMIN_TOKEN") or DEFAULT_ADMIN_TOKEN,
            cache_ttl=_float(env, "CACHE_TTL", DEFAULT_TTL),
            store_timeout=_float(env, "STORE_TIMEOUT", 5.0),
            fallback_catalog=Path(fallback) if fallback else None,
            min_products=int(_float(env, "MIN_PRODUCTS", MIN_PRODUCTS)),
            required_categories=(
                tuple(c.strip() for c in categories.split(",") if c.strip())
                if categories
                else STANDARD_CATEGORIES
            ),
            log_level=(get("LOG_LEVEL") or "INFO").upper(),
        )
