"""Asset (image) storage for storefront."""

import mimetypes
import os
import re
import tempfile
import uuid
from pathlib import Path
from typing import Protocol

from .errors import AssetUploadError

PRODUCT_IMAGES_FOLDER = "products"
PAYMENT_PROOFS_FOLDER = "payment-proofs"

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


class AssetStore(Protocol):
    """Protocol for object stores that hand back public URLs."""

    def upload(
        self, filename: str, content: bytes, folder: str, content_type: str | None = None
    ) -> str:
        """Store content and return its public URL.

        Raises:
            AssetUploadError: If the content can't be stored.
        """
        ...


def safe_filename(filename: str) -> str:
    """Reduce a client-supplied filename to a safe basename."""
    name = _UNSAFE_CHARS.sub("-", Path(filename or "").name).strip("-.")
    return name or "upload"


def safe_folder(folder: str) -> str:
    parts = [safe_filename(p) for p in Path(folder or "").parts if p not in ("", ".", "..", "/")]
    return "/".join(parts) or PRODUCT_IMAGES_FOLDER


def with_extension(name: str, content_type: str | None) -> str:
    """Append an extension guessed from content_type when name has none."""
    if Path(name).suffix or not content_type:
        return name
    extension = mimetypes.guess_extension(content_type.split(";")[0].strip())
    return name + extension if extension else name


class LocalAssetStore:
    """Stores assets under a local directory served at base_url."""

    def __init__(self, root: Path, base_url: str = "/assets"):
        self.root = Path(root)
        self.base_url = base_url.rstrip("/")

    def upload(
        self, filename: str, content: bytes, folder: str, content_type: str | None = None
    ) -> str:
        folder = safe_folder(folder)
        name = f"{uuid.uuid4().hex[:12]}-{with_extension(safe_filename(filename), content_type)}"
        target_dir = self.root / folder
        try:
            target_dir.mkdir(parents=True, exist_ok=True)
            fd, temp_path = tempfile.mkstemp(dir=target_dir, prefix=".upload_", suffix=".tmp")
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(content)
                os.replace(temp_path, target_dir / name)
            except OSError:
                try:
                    os.unlink(temp_path)
                except OSError:
                    pass
                raise
        except OSError as e:
            raise AssetUploadError(filename, str(e))
        return f"{self.base_url}/{folder}/{name}"
