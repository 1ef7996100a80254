"""Order creation and the payment/order status lifecycles."""

import logging
from dataclasses import dataclass
from typing import Any, Callable

from .assets import PAYMENT_PROOFS_FOLDER, AssetStore
from .errors import (
    AssetUploadError,
    DuplicateKeyError,
    IllegalTransitionError,
    OrderNotFoundError,
    PaymentAlreadySubmittedError,
    ValidationError,
)
from .models import (
    ORDER_STATUSES,
    VERIFICATION_RESULTS,
    CartLine,
    Customer,
    Order,
    PaymentSubmission,
    Product,
    _utc_now,
    generate_order_id,
    generate_order_number,
)
from .sizes import SizeConfigurationStore
from .store import TableStore

logger = logging.getLogger(__name__)

TABLE = "orders"
ID_ATTEMPTS = 5

# Allowed payment status changes; "paid" is terminal
PAYMENT_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"pending_verification"}),
    "pending_verification": frozenset({"paid", "partial", "failed"}),
    "partial": frozenset({"pending_verification", "paid", "partial", "failed"}),
    "failed": frozenset({"pending_verification", "paid", "partial", "failed"}),
    "paid": frozenset(),
}

# Allowed order status changes; "delivered" and "cancelled" are terminal
ORDER_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"confirmed", "cancelled"}),
    "confirmed": frozenset({"shipped", "cancelled"}),
    "shipped": frozenset({"delivered", "cancelled"}),
    "delivered": frozenset(),
    "cancelled": frozenset(),
}

# A customer can't submit payment details while the order is in these states
SUBMISSION_BLOCKED = frozenset({"pending_verification", "paid"})


@dataclass(frozen=True)
class PaymentProof:
    """An uploaded payment screenshot."""

    filename: str
    content: bytes
    content_type: str | None = None


def can_transition_payment(current: str, requested: str) -> bool:
    return requested in PAYMENT_TRANSITIONS.get(current, frozenset())


def can_transition_order(current: str, requested: str) -> bool:
    return requested in ORDER_TRANSITIONS.get(current, frozenset())


class OrderService:
    """Creates orders and drives their payment and fulfilment status."""

    def __init__(
        self,
        store: TableStore,
        assets: AssetStore,
        sizes: SizeConfigurationStore | None = None,
        id_factory: Callable[[], str] = generate_order_id,
        number_factory: Callable[[], str] = generate_order_number,
    ):
        self.store = store
        self.assets = assets
        self.sizes = sizes
        self._new_id = id_factory
        self._new_number = number_factory

    # --- Cart ---

    def build_cart_line(
        self, product: Product, quantity: int, size_id: str | None = None
    ) -> CartLine:
        """
        Snapshot a product into a cart line.

        A product with a size chart needs a size_id from that chart; a
        product without one must not be given a size.

        Raises:
            ValidationError: Bad quantity, unknown size, or out of stock.
        """
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("Quantity must be a positive integer", ["quantity"])
        if not product.in_stock:
            raise ValidationError(f"{product.name} is out of stock", ["productId"])

        sizes = self.sizes.sizes_for(product) if self.sizes else None
        size = None
        if size_id:
            size = next((s for s in sizes or [] if s.id == size_id), None)
            if size is None:
                raise ValidationError(f"Unknown size '{size_id}' for {product.name}", ["sizeId"])
        elif sizes:
            raise ValidationError(f"A size must be selected for {product.name}", ["sizeId"])

        return CartLine(product=product.snapshot(), quantity=quantity, size=size)

    # --- Orders ---

    def create_order(
        self,
        customer: Customer,
        cart_lines: list[CartLine],
        subtotal: float | None = None,
        discount: float = 0.0,
        coupon_code: str | None = None,
        timeout: float | None = None,
    ) -> Order:
        """
        Create an order from cart lines.

        Line items are stored as snapshots, so later product edits never
        change the order. subtotal defaults to the sum of line totals;
        total_amount is subtotal minus discount. A nonzero discount must come
        with a coupon code.

        Raises:
            ValidationError: Empty cart, non-positive quantity, bad amounts
                or missing customer details.
            StoreUnavailableError: If the order can't be written.
        """
        if not cart_lines:
            raise ValidationError("Order must contain at least one item", ["items"])
        bad = [
            f"items[{i}].quantity"
            for i, line in enumerate(cart_lines)
            if isinstance(line.quantity, bool) or not isinstance(line.quantity, int) or line.quantity <= 0
        ]
        if bad:
            raise ValidationError(f"Quantities must be positive: {', '.join(bad)}", bad)
        missing = [
            f"customer.{name}" for name in ("name", "phone", "email")
            if not getattr(customer, name, "").strip()
        ]
        if missing:
            raise ValidationError.missing(missing)

        if subtotal is None:
            subtotal = sum(line.line_total for line in cart_lines)
        discount = discount or 0.0
        if subtotal < 0:
            raise ValidationError("Subtotal must not be negative", ["subtotal"])
        if discount < 0 or discount > subtotal:
            raise ValidationError("Discount must be between 0 and the subtotal", ["discount"])
        coupon_code = (coupon_code or "").strip() or None
        if discount and not coupon_code:
            raise ValidationError("A discount requires a coupon code", ["couponCode"])

        for _ in range(ID_ATTEMPTS):
            now = _utc_now()
            order = Order(
                id=self._new_id(),
                order_number=self._new_number(),
                customer=customer,
                items=list(cart_lines),
                subtotal=subtotal,
                discount=discount,
                coupon_code=coupon_code,
                total_amount=subtotal - discount,
                created_at=now,
                updated_at=now,
            )
            try:
                self.store.insert(TABLE, order.to_row(), timeout=timeout)
            except DuplicateKeyError:
                logger.warning("Order ID collision on %s, retrying", order.id)
                continue
            logger.info(
                "Created order %s (%s): %d items, total %.2f",
                order.id,
                order.order_number,
                len(order.items),
                order.total_amount,
            )
            return order
        raise DuplicateKeyError(TABLE, "could not generate a unique order ID")

    def get_order(self, order_id: str, timeout: float | None = None) -> Order:
        """
        Get an order by ID.

        Raises:
            OrderNotFoundError: If the order doesn't exist.
        """
        rows = self.store.select(TABLE, {"id": order_id}, timeout=timeout)
        if not rows:
            raise OrderNotFoundError(order_id)
        return Order.from_row(rows[0])

    def list_orders(self, timeout: float | None = None) -> list[Order]:
        """List all orders, newest first."""
        rows = self.store.select(TABLE, order_by="created_at", descending=True, timeout=timeout)
        return [Order.from_row(r) for r in rows]

    def delete_order(self, order_id: str, timeout: float | None = None) -> None:
        """Hard-delete an order."""
        if not self.store.delete(TABLE, {"id": order_id}, timeout=timeout):
            raise OrderNotFoundError(order_id)
        logger.warning("Deleted order %s", order_id)

    # --- Payment ---

    def _upload_proof(self, order_id: str, proof: PaymentProof) -> str | None:
        try:
            return self.assets.upload(
                proof.filename, proof.content, PAYMENT_PROOFS_FOLDER, proof.content_type
            )
        except (AssetUploadError, OSError) as e:
            logger.warning("Payment proof upload failed for order %s: %s", order_id, e)
            return None

    def submit_payment(
        self,
        order_id: str,
        utr_number: str,
        proof: PaymentProof | None = None,
        timeout: float | None = None,
    ) -> Order:
        """
        Record a customer's bank-transfer reference for manual verification.

        The proof image is optional and best effort: if its upload fails the
        submission still goes through with the reference alone.

        Raises:
            ValidationError: If utr_number is blank (nothing is written).
            OrderNotFoundError: If the order doesn't exist.
            PaymentAlreadySubmittedError: If payment is already awaiting
                verification or paid, including when a concurrent
                submission won the race.
        """
        utr = (utr_number or "").strip()
        if not utr:
            raise ValidationError("UTR number is required", ["utrNumber"])

        order = self.get_order(order_id, timeout)
        if order.payment_status in SUBMISSION_BLOCKED:
            raise PaymentAlreadySubmittedError(order_id, order.payment_status)

        proof_url = self._upload_proof(order_id, proof) if proof is not None else None

        now = _utc_now()
        submission = PaymentSubmission(utr_number=utr, submitted_at=now, payment_proof_url=proof_url)
        try:
            with self.store.transaction(timeout) as txn:
                rows = txn.select(TABLE, {"id": order_id})
                if not rows:
                    raise OrderNotFoundError(order_id)
                row = rows[0]
                current = row.get("payment_status") or "pending"
                if current != order.payment_status or current in SUBMISSION_BLOCKED:
                    raise PaymentAlreadySubmittedError(order_id, current)

                values: dict[str, Any] = {
                    "payment_status": "pending_verification",
                    "payment_id": utr,
                    "utr_number": utr,
                    "payment_submitted_at": now,
                    "payment_submissions": (row.get("payment_submissions") or []) + [submission.to_dict()],
                    "updated_at": now,
                }
                if proof_url:
                    values["payment_proof_url"] = proof_url
                txn.update(TABLE, values, {"id": order_id, "payment_status": current})
        except (OrderNotFoundError, PaymentAlreadySubmittedError):
            if proof_url:
                logger.warning("Payment proof %s for order %s is orphaned", proof_url, order_id)
            raise

        logger.info("Payment submitted for order %s (utr %s)", order_id, utr)
        return Order.from_row({**row, **values})

    def verify_payment(
        self,
        order_id: str,
        verified_amount: float,
        status: str,
        verified_by: str | None = None,
        force: bool = False,
        timeout: float | None = None,
    ) -> Order:
        """
        Record an admin's verification of a submitted payment.

        Args:
            order_id: Order to verify.
            verified_amount: Amount the admin found in the bank statement.
            status: One of "paid", "partial", "failed".
            verified_by: Name of the verifying admin.
            force: Skip the transition check (administrative override).

        Raises:
            ValidationError: Bad status or amount.
            OrderNotFoundError: If the order doesn't exist.
            IllegalTransitionError: If the current payment status can't be
                verified and force is False.
        """
        if status not in VERIFICATION_RESULTS:
            raise ValidationError(
                f"Status must be one of: {', '.join(VERIFICATION_RESULTS)}", ["paymentStatus"]
            )
        try:
            amount = float(verified_amount)
        except (TypeError, ValueError):
            raise ValidationError("Verified amount must be a number", ["verifiedAmount"])
        if amount < 0:
            raise ValidationError("Verified amount must not be negative", ["verifiedAmount"])

        with self.store.transaction(timeout) as txn:
            rows = txn.select(TABLE, {"id": order_id})
            if not rows:
                raise OrderNotFoundError(order_id)
            row = rows[0]
            current = row.get("payment_status") or "pending"
            if not force and not can_transition_payment(current, status):
                raise IllegalTransitionError("payment status", current, status)

            now = _utc_now()
            values = {
                "payment_status": status,
                "verified_amount": amount,
                "verified_at": now,
                "verified_by": verified_by or None,
                "updated_at": now,
            }
            txn.update(TABLE, values, {"id": order_id, "payment_status": current})

        logger.info(
            "Payment for order %s verified as %s (%.2f) by %s%s",
            order_id,
            status,
            amount,
            verified_by or "unknown",
            " [forced]" if force else "",
        )
        return Order.from_row({**row, **values})

    # --- Fulfilment ---

    def update_order_status(
        self, order_id: str, status: str, force: bool = False, timeout: float | None = None
    ) -> Order:
        """
        Move an order along pending -> confirmed -> shipped -> delivered.

        Orders can be cancelled until delivered. Setting the current status
        again is a no-op.

        Raises:
            ValidationError: Unknown status.
            OrderNotFoundError: If the order doesn't exist.
            IllegalTransitionError: Out-of-order change without force.
        """
        if status not in ORDER_STATUSES:
            raise ValidationError(
                f"Status must be one of: {', '.join(ORDER_STATUSES)}", ["orderStatus"]
            )

        with self.store.transaction(timeout) as txn:
            rows = txn.select(TABLE, {"id": order_id})
            if not rows:
                raise OrderNotFoundError(order_id)
            row = rows[0]
            current = row.get("order_status") or "pending"
            if current == status:
                return Order.from_row(row)
            if not force and not can_transition_order(current, status):
                raise IllegalTransitionError("order status", current, status)
            values = {"order_status": status, "updated_at": _utc_now()}
            txn.update(TABLE, values, {"id": order_id})

        logger.info("Order %s status %s -> %s", order_id, current, status)
        return Order.from_row({**row, **values})
