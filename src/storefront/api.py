"""FastAPI REST API for the storefront."""

import hmac
import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, FastAPI, File, Form, Header, Query, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from . import __version__
from .assets import PRODUCT_IMAGES_FOLDER
from .errors import (
    AdminAuthError,
    AssetUploadError,
    ConflictError,
    MalformedRecordError,
    NotFoundError,
    StorefrontError,
    StoreUnavailableError,
    ValidationError,
)
from .models import Address, CategoriesMetadata, Customer, SizeVariant
from .orders import PaymentProof
from .services import Services, build_services
from .sizes import size_key_for

logger = logging.getLogger(__name__)


# --- Pydantic Schemas ---


class CamelModel(BaseModel):
    """Request body with camelCase keys; unknown keys are rejected."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="forbid")


class ProductFields(CamelModel):
    name: Optional[str] = None
    description: Optional[str] = None
    price: Optional[float] = None
    original_price: Optional[float] = None
    discount: Optional[float] = None
    image: Optional[str] = None
    images: Optional[list[str]] = None
    category: Optional[str] = None
    subcategory: Optional[str] = None
    in_stock: Optional[bool] = None
    stock: Optional[int] = None
    catalog_id: Optional[str] = None
    catalog_name: Optional[str] = None


class PriceUpdateSchema(CamelModel):
    product_id: str
    price: float
    original_price: Optional[float] = None
    discount: Optional[float] = None


class BulkPriceRequest(CamelModel):
    updates: list[PriceUpdateSchema]


class InventoryUpdateSchema(CamelModel):
    product_id: str
    in_stock: bool
    stock: Optional[int] = None


class BulkInventoryRequest(CamelModel):
    updates: list[InventoryUpdateSchema]


class CategoryRenameRequest(CamelModel):
    old_category: str
    new_category: str


class CategoryImageRequest(CamelModel):
    category_name: str
    subcategory_name: Optional[str] = None
    image: Optional[str] = None


class SizeVariantSchema(CamelModel):
    id: str
    label: str
    dimensions: str = ""
    price_modifier: float = 0.0


class SizesReplaceRequest(CamelModel):
    size_configurations: dict[str, list[SizeVariantSchema]]


class AddressSchema(CamelModel):
    street: str = ""
    city: str = ""
    state: str = ""
    pincode: str = ""


class CustomerSchema(CamelModel):
    name: str
    phone: str
    email: str
    address: AddressSchema = Field(default_factory=AddressSchema)


class CheckoutItemSchema(CamelModel):
    product_id: str
    quantity: int
    size_id: Optional[str] = None


class CheckoutRequest(CamelModel):
    customer: CustomerSchema
    items: list[CheckoutItemSchema]
    discount: float = 0.0
    coupon_code: Optional[str] = None


class VerifyPaymentRequest(CamelModel):
    verified_amount: float
    payment_status: str
    verified_by: Optional[str] = None
    force: bool = False


class OrderStatusRequest(CamelModel):
    order_status: str
    force: bool = False


# --- Dependencies ---


def get_services(request: Request) -> Services:
    """Get the services attached to the running app."""
    return request.app.state.services


def require_admin(
    request: Request, x_admin_token: Optional[str] = Header(default=None)
) -> None:
    """Reject the request unless it carries the admin token."""
    expected = get_services(request).settings.admin_token
    if not x_admin_token or not hmac.compare_digest(x_admin_token, expected):
        raise AdminAuthError()


# --- Global Exception Handlers ---


# Map exception types to HTTP status codes (most specific class wins)
ERROR_STATUS_CODES: dict[type, int] = {
    ValidationError: 400,
    AdminAuthError: 401,
    NotFoundError: 404,
    ConflictError: 409,
    StoreUnavailableError: 500,
    MalformedRecordError: 500,
    AssetUploadError: 500,
}


async def storefront_error_handler(request: Request, exc: StorefrontError) -> JSONResponse:
    """Map StorefrontError subclasses to appropriate HTTP responses."""
    status_code = next(
        (ERROR_STATUS_CODES[cls] for cls in type(exc).__mro__ if cls in ERROR_STATUS_CODES),
        500,
    )
    if status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc)
    content: dict[str, Any] = {"detail": str(exc), "error_type": type(exc).__name__}
    if isinstance(exc, ValidationError) and exc.fields:
        content["fields"] = exc.fields
    return JSONResponse(status_code=status_code, content=content)


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report malformed request bodies as 400 with the offending fields."""
    fields = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part not in ("body", "query", "form")]
        fields.append(".".join(loc) or "body")
    return JSONResponse(
        status_code=400,
        content={
            "detail": f"Invalid request fields: {', '.join(fields)}",
            "error_type": "ValidationError",
            "fields": fields,
        },
    )


# --- Public Endpoints ---


router = APIRouter(prefix="/api")


@router.get("/health")
def health_check(services: Services = Depends(get_services)):
    """
    Health check endpoint.

    Reports whether the table store is reachable; the catalog stays
    browsable either way.
    """
    try:
        count = len(services.store.select("products"))
        return {"status": "ok", "store": "ok", "product_count": count, "version": __version__}
    except StoreUnavailableError as e:
        return {"status": "degraded", "store": "unavailable", "detail": str(e), "version": __version__}


@router.get("/products")
def list_products(
    category: Optional[str] = None,
    catalog_id: Optional[str] = Query(default=None, alias="catalogId"),
    services: Services = Depends(get_services),
):
    """List products, optionally filtered by category or catalog."""
    if category:
        products = services.catalog.products_by_category(category)
    elif catalog_id:
        products = services.catalog.products_by_catalog(catalog_id)
    else:
        products = services.catalog.get_all_products()
    return {"products": [p.to_dict() for p in products], "count": len(products)}


@router.get("/products/{product_id}")
def get_product(product_id: str, services: Services = Depends(get_services)):
    return services.catalog.get_product(product_id).to_dict()


@router.get("/products/{product_id}/sizes")
def get_product_sizes(product_id: str, services: Services = Depends(get_services)):
    """Get a product's size options with their resolved prices."""
    product = services.catalog.get_product(product_id)
    priced = services.sizes.priced_sizes(product)
    return {
        "productId": product.id,
        "sizeKey": size_key_for(product),
        "basePrice": product.price,
        "sizes": [p.to_dict() for p in priced],
    }


@router.get("/sizes")
def list_sizes(services: Services = Depends(get_services)):
    configs = services.sizes.get()
    return {
        "sizeConfigurations": {k: [v.to_dict() for v in vs] for k, vs in configs.items()}
    }


@router.get("/categories")
def list_categories(services: Services = Depends(get_services)):
    return {"categories": services.catalog.all_categories()}


@router.get("/categories/metadata")
def get_categories_metadata(services: Services = Depends(get_services)):
    return services.categories.get().to_dict()


@router.post("/orders", status_code=201)
def create_order(request: CheckoutRequest, services: Services = Depends(get_services)):
    """Check out: snapshot the requested products into a new order."""
    lines = []
    for item in request.items:
        product = services.catalog.get_product(item.product_id)
        lines.append(services.orders.build_cart_line(product, item.quantity, item.size_id))

    c = request.customer
    customer = Customer(
        name=c.name,
        phone=c.phone,
        email=c.email,
        address=Address(**c.address.model_dump()),
    )
    order = services.orders.create_order(
        customer,
        lines,
        discount=request.discount,
        coupon_code=request.coupon_code,
    )
    return order.to_dict()


@router.get("/orders/{order_id}")
def get_order(order_id: str, services: Services = Depends(get_services)):
    return services.orders.get_order(order_id).to_dict()


@router.post("/payments/confirm")
def confirm_payment(
    order_id: str = Form(..., alias="orderId"),
    utr_number: str = Form(default="", alias="utrNumber"),
    payment_proof: Optional[UploadFile] = File(default=None, alias="paymentProof"),
    services: Services = Depends(get_services),
):
    """Submit a bank-transfer reference (and optional screenshot) for an order."""
    proof = None
    if payment_proof is not None and payment_proof.filename:
        proof = PaymentProof(
            filename=payment_proof.filename,
            content=payment_proof.file.read(),
            content_type=payment_proof.content_type,
        )
    order = services.orders.submit_payment(order_id, utr_number, proof)
    return {
        "success": True,
        "message": "Payment details submitted successfully",
        "orderId": order.id,
        "paymentStatus": order.payment_status,
    }


# --- Admin Endpoints ---


admin = APIRouter(prefix="/api/admin", dependencies=[Depends(require_admin)])


@admin.get("/products")
def admin_list_products(services: Services = Depends(get_services)):
    products = services.catalog.get_all_products()
    return {"products": [p.to_dict() for p in products], "count": len(products)}


@admin.post("/products", status_code=201)
def admin_create_product(request: ProductFields, services: Services = Depends(get_services)):
    product = services.catalog.create_product(request.model_dump(exclude_none=True))
    return product.to_dict()


@admin.patch("/products/{product_id}")
def admin_update_product(
    product_id: str, request: ProductFields, services: Services = Depends(get_services)
):
    product = services.catalog.update_product(product_id, request.model_dump(exclude_unset=True))
    return product.to_dict()


@admin.delete("/products/{product_id}")
def admin_delete_product(product_id: str, services: Services = Depends(get_services)):
    services.catalog.delete_product(product_id)
    return {"success": True, "productId": product_id}


@admin.post("/products/bulk-prices")
def admin_bulk_prices(request: BulkPriceRequest, services: Services = Depends(get_services)):
    count = services.catalog.bulk_update_prices(
        [u.model_dump(exclude_none=True) for u in request.updates]
    )
    return {"success": True, "updated": count}


@admin.post("/products/bulk-inventory")
def admin_bulk_inventory(request: BulkInventoryRequest, services: Services = Depends(get_services)):
    count = services.catalog.bulk_update_inventory(
        [u.model_dump(exclude_none=True) for u in request.updates]
    )
    return {"success": True, "updated": count}


@admin.get("/categories")
def admin_list_categories(services: Services = Depends(get_services)):
    return {"categories": services.catalog.all_categories()}


@admin.put("/categories")
def admin_rename_category(request: CategoryRenameRequest, services: Services = Depends(get_services)):
    count = services.catalog.rename_category(request.old_category, request.new_category)
    return {"success": True, "updated": count}


@admin.delete("/categories")
def admin_delete_category(
    category: str = Query(default=""),
    confirm: bool = Query(default=False),
    services: Services = Depends(get_services),
):
    """Delete a category and every product in it. Requires confirm=true."""
    if not category.strip():
        raise ValidationError("Category parameter is required", ["category"])
    if not confirm:
        raise ValidationError(
            "Deleting a category removes all of its products; pass confirm=true", ["confirm"]
        )
    count = services.catalog.delete_category(category)
    return {"success": True, "deleted": count}


@admin.put("/categories/metadata")
def admin_save_categories_metadata(body: dict[str, Any], services: Services = Depends(get_services)):
    metadata = CategoriesMetadata.from_dict(body)
    services.categories.save(metadata)
    return metadata.to_dict()


@admin.put("/categories/image")
def admin_set_category_image(
    request: CategoryImageRequest, services: Services = Depends(get_services)
):
    if request.subcategory_name:
        services.categories.set_subcategory_image(
            request.category_name, request.subcategory_name, request.image
        )
    else:
        services.categories.set_category_image(request.category_name, request.image)
    return {"success": True}


@admin.get("/sizes")
def admin_list_sizes(services: Services = Depends(get_services)):
    return list_sizes(services)


@admin.put("/sizes")
def admin_replace_sizes(request: SizesReplaceRequest, services: Services = Depends(get_services)):
    """Replace every size chart. Keys left out are removed."""
    configs = {
        key: [
            SizeVariant(
                id=v.id.strip(),
                label=v.label.strip(),
                dimensions=v.dimensions,
                price_modifier=v.price_modifier,
            )
            for v in variants
        ]
        for key, variants in request.size_configurations.items()
    }
    services.sizes.replace_all(configs, products=services.catalog.get_all_products())
    return {"success": True}


@admin.get("/orders")
def admin_list_orders(services: Services = Depends(get_services)):
    orders = services.orders.list_orders()
    return {"orders": [o.to_dict() for o in orders], "count": len(orders)}


@admin.post("/orders/{order_id}/verify")
def admin_verify_payment(
    order_id: str, request: VerifyPaymentRequest, services: Services = Depends(get_services)
):
    order = services.orders.verify_payment(
        order_id,
        request.verified_amount,
        request.payment_status,
        verified_by=request.verified_by,
        force=request.force,
    )
    return order.to_dict()


@admin.patch("/orders/{order_id}/status")
def admin_update_order_status(
    order_id: str, request: OrderStatusRequest, services: Services = Depends(get_services)
):
    order = services.orders.update_order_status(order_id, request.order_status, force=request.force)
    return order.to_dict()


@admin.delete("/orders/{order_id}")
def admin_delete_order(order_id: str, services: Services = Depends(get_services)):
    services.orders.delete_order(order_id)
    return {"success": True, "orderId": order_id}


@admin.post("/upload")
def admin_upload_image(
    file: Optional[UploadFile] = File(default=None),
    folder: str = Form(default=PRODUCT_IMAGES_FOLDER),
    services: Services = Depends(get_services),
):
    """Upload a product or category image and return its public URL."""
    if file is None or not file.filename:
        raise ValidationError("No file provided", ["file"])
    if not (file.content_type or "").startswith("image/"):
        raise ValidationError("File must be an image", ["file"])
    url = services.assets.upload(file.filename, file.file.read(), folder, file.content_type)
    return {"success": True, "url": url}


# --- App factory ---


def create_app(services: Services | None = None) -> FastAPI:
    """
    Create the storefront API app.

    Args:
        services: Services to serve (built from the environment if omitted).
    """
    app = FastAPI(
        title="storefront API",
        description="Catalog, size-based pricing and bank-transfer checkout",
        version=__version__,
    )
    app.state.services = services or build_services()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:5173",
            "http://localhost:3000",
            "http://127.0.0.1:5173",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_exception_handler(StorefrontError, storefront_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.include_router(router)
    app.include_router(admin)
    return app
