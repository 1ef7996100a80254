"""Tests for order creation and the payment/order lifecycles."""

import re

import pytest

from storefront.errors import (
    AssetUploadError,
    IllegalTransitionError,
    OrderNotFoundError,
    PaymentAlreadySubmittedError,
    ValidationError,
)
from storefront.models import CartLine, Customer, SizeVariant
from storefront.orders import OrderService, PaymentProof, can_transition_order, can_transition_payment

WALL_CLOCK_SIZES = {
    "Wall Clocks": [
        SizeVariant(id="s", label="S", dimensions="25x25 cm", price_modifier=0),
        SizeVariant(id="m", label="M", dimensions="35x35 cm", price_modifier=300),
    ]
}


class BrokenAssets:
    def upload(self, filename, content, folder, content_type=None):
        raise AssetUploadError(filename, "bucket unreachable")


@pytest.fixture
def clock_product(services, product_data):
    services.sizes.replace_all(WALL_CLOCK_SIZES)
    return services.catalog.create_product(product_data)


@pytest.fixture
def ring(services):
    return services.catalog.create_product(
        {
            "name": "Gold Flake Ring",
            "description": "Clear resin ring.",
            "price": 499,
            "image": "/images/ring.jpg",
            "category": "Jewellery",
        }
    )


@pytest.fixture
def order(services, customer, clock_product, ring):
    lines = [
        services.orders.build_cart_line(clock_product, 2, "m"),
        services.orders.build_cart_line(ring, 1),
    ]
    return services.orders.create_order(customer, lines)


def set_payment_status(store, order_id, status):
    store.update("orders", {"payment_status": status}, {"id": order_id})


class TestTransitions:
    def test_payment(self):
        assert can_transition_payment("pending", "pending_verification")
        assert can_transition_payment("pending_verification", "paid")
        assert can_transition_payment("failed", "pending_verification")
        assert not can_transition_payment("pending", "paid")
        assert not can_transition_payment("paid", "failed")

    def test_order(self):
        assert can_transition_order("pending", "confirmed")
        assert can_transition_order("shipped", "cancelled")
        assert not can_transition_order("pending", "shipped")
        assert not can_transition_order("delivered", "cancelled")


class TestBuildCartLine:
    def test_sized_line_price(self, services, clock_product):
        line = services.orders.build_cart_line(clock_product, 2, "m")
        assert line.unit_price == 1299
        assert line.line_total == 2598

    def test_size_required_when_product_has_chart(self, services, clock_product):
        with pytest.raises(ValidationError):
            services.orders.build_cart_line(clock_product, 1)

    def test_unknown_size(self, services, clock_product):
        with pytest.raises(ValidationError):
            services.orders.build_cart_line(clock_product, 1, "xl")

    def test_size_rejected_without_chart(self, services, ring):
        with pytest.raises(ValidationError):
            services.orders.build_cart_line(ring, 1, "m")

    @pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
    def test_bad_quantity(self, services, ring, quantity):
        with pytest.raises(ValidationError):
            services.orders.build_cart_line(ring, quantity)

    def test_out_of_stock(self, services, ring):
        services.catalog.update_product(ring.id, {"inStock": False})
        with pytest.raises(ValidationError):
            services.orders.build_cart_line(services.catalog.get_product(ring.id), 1)


class TestCreateOrder:
    def test_create(self, order):
        assert re.fullmatch(r"order-\d+-[0-9a-z]{7}", order.id)
        assert re.fullmatch(r"ORD-\d+-[0-9A-Z]{9}", order.order_number)
        assert order.subtotal == 2 * 1299 + 499
        assert order.total_amount == order.subtotal
        assert order.payment_status == "pending"
        assert order.order_status == "pending"

    def test_discount(self, services, customer, ring):
        line = services.orders.build_cart_line(ring, 2)
        order = services.orders.create_order(customer, [line], discount=100, coupon_code="RESIN10")
        assert order.total_amount == 898
        assert services.orders.get_order(order.id).coupon_code == "RESIN10"

    def test_explicit_subtotal(self, services, customer, ring):
        line = services.orders.build_cart_line(ring, 1)
        order = services.orders.create_order(customer, [line], subtotal=450)
        assert order.total_amount == 450

    def test_discount_above_subtotal(self, services, customer, ring):
        line = services.orders.build_cart_line(ring, 1)
        with pytest.raises(ValidationError):
            services.orders.create_order(customer, [line], discount=500, coupon_code="RESIN10")

    def test_discount_requires_coupon_code(self, services, customer, ring):
        line = services.orders.build_cart_line(ring, 1)
        for coupon_code in (None, "", "   "):
            with pytest.raises(ValidationError) as excinfo:
                services.orders.create_order(customer, [line], discount=50, coupon_code=coupon_code)
            assert excinfo.value.fields == ["couponCode"]
        assert services.orders.list_orders() == []

    def test_empty_cart(self, services, customer):
        with pytest.raises(ValidationError):
            services.orders.create_order(customer, [])

    def test_non_positive_quantity(self, services, customer, ring):
        line = CartLine(product=ring.snapshot(), quantity=0)
        with pytest.raises(ValidationError) as exc:
            services.orders.create_order(customer, [line])
        assert exc.value.fields == ["items[0].quantity"]

    def test_missing_customer_details(self, services, ring):
        line = services.orders.build_cart_line(ring, 1)
        with pytest.raises(ValidationError) as exc:
            services.orders.create_order(Customer(name="Asha", phone=" ", email=""), [line])
        assert exc.value.fields == ["customer.phone", "customer.email"]

    def test_snapshot_survives_product_edit_and_delete(self, services, order, ring):
        before = services.orders.get_order(order.id).to_dict()["items"]

        services.catalog.update_product(ring.id, {"name": "Renamed Ring", "price": 9999})
        assert services.orders.get_order(order.id).to_dict()["items"] == before

        services.catalog.delete_product(ring.id)
        items = services.orders.get_order(order.id).to_dict()["items"]
        assert items == before
        assert items[1]["product"] == {
            "id": ring.id,
            "name": "Gold Flake Ring",
            "price": 499,
            "image": "/images/ring.jpg",
        }

    def test_retries_on_id_collision(self, services, store, assets, customer, ring, order):
        ids = iter([order.id, "order-fresh"])
        orders = OrderService(store, assets, id_factory=lambda: next(ids))
        created = orders.create_order(customer, [orders.build_cart_line(ring, 1)])
        assert created.id == "order-fresh"


class TestQueries:
    def test_get_not_found(self, services):
        with pytest.raises(OrderNotFoundError):
            services.orders.get_order("order-missing")

    def test_list_newest_first(self, services, store, customer, ring):
        line = services.orders.build_cart_line(ring, 1)
        first = services.orders.create_order(customer, [line])
        second = services.orders.create_order(customer, [line])
        store.update("orders", {"created_at": "2020-01-01T00:00:00Z"}, {"id": first.id})
        assert [o.id for o in services.orders.list_orders()] == [second.id, first.id]

    def test_delete(self, services, order):
        services.orders.delete_order(order.id)
        with pytest.raises(OrderNotFoundError):
            services.orders.delete_order(order.id)


class TestSubmitPayment:
    def test_submit(self, services, order, temp_dir):
        proof = PaymentProof("receipt.png", b"\x89PNG", "image/png")
        updated = services.orders.submit_payment(order.id, "  UTR123456  ", proof)
        assert updated.payment_status == "pending_verification"
        assert updated.utr_number == "UTR123456"
        assert updated.payment_id == "UTR123456"
        assert updated.payment_submitted_at
        assert updated.payment_proof_url.startswith("/assets/payment-proofs/")

        stored = services.orders.get_order(order.id)
        assert stored.payment_status == "pending_verification"
        assert len(stored.payment_submissions) == 1
        name = stored.payment_proof_url.rsplit("/", 1)[1]
        assert (temp_dir / "assets" / "payment-proofs" / name).read_bytes() == b"\x89PNG"

    def test_proof_extension_follows_content_type(self, services, order):
        proof = PaymentProof("blob", b"\x89PNG", "image/png")
        updated = services.orders.submit_payment(order.id, "UTR123456", proof)
        assert updated.payment_proof_url.endswith("-blob.png")

    @pytest.mark.parametrize("utr", ["", "   ", None])
    def test_blank_reference_writes_nothing(self, services, store, order, utr):
        before = store.select("orders", {"id": order.id})
        with pytest.raises(ValidationError):
            services.orders.submit_payment(order.id, utr)
        assert store.select("orders", {"id": order.id}) == before

    def test_not_found(self, services):
        with pytest.raises(OrderNotFoundError):
            services.orders.submit_payment("order-missing", "UTR1")

    def test_second_submission_conflicts(self, services, order):
        services.orders.submit_payment(order.id, "UTR-FIRST")
        with pytest.raises(PaymentAlreadySubmittedError):
            services.orders.submit_payment(order.id, "UTR-SECOND")
        assert services.orders.get_order(order.id).utr_number == "UTR-FIRST"

    def test_paid_order_conflicts(self, services, store, order):
        set_payment_status(store, order.id, "paid")
        with pytest.raises(PaymentAlreadySubmittedError):
            services.orders.submit_payment(order.id, "UTR1")

    def test_resubmit_after_failed_verification(self, services, order):
        services.orders.submit_payment(order.id, "UTR-BAD")
        services.orders.verify_payment(order.id, 0, "failed")
        updated = services.orders.submit_payment(order.id, "UTR-GOOD")
        assert updated.utr_number == "UTR-GOOD"
        assert [s.utr_number for s in updated.payment_submissions] == ["UTR-BAD", "UTR-GOOD"]

    def test_upload_failure_is_not_fatal(self, store, services, order):
        orders = OrderService(store, BrokenAssets())
        updated = orders.submit_payment(order.id, "UTR1", PaymentProof("r.png", b"x"))
        assert updated.payment_status == "pending_verification"
        assert updated.payment_proof_url is None

    def test_concurrent_submission_loses_race(self, services, store, order, monkeypatch, caplog):
        orders = services.orders
        real_upload = orders._upload_proof
        uploaded = []

        def racing_upload(order_id, proof):
            # Another submission lands while this one uploads its proof
            set_payment_status(store, order_id, "pending_verification")
            store.update("orders", {"utr_number": "UTR-WINNER"}, {"id": order_id})
            uploaded.append(real_upload(order_id, proof))
            return uploaded[-1]

        monkeypatch.setattr(orders, "_upload_proof", racing_upload)
        with caplog.at_level("WARNING", logger="storefront.orders"):
            with pytest.raises(PaymentAlreadySubmittedError):
                orders.submit_payment(order.id, "UTR-LOSER", PaymentProof("r.png", b"x"))
        assert orders.get_order(order.id).utr_number == "UTR-WINNER"
        assert orders.get_order(order.id).payment_proof_url is None
        orphaned = [r for r in caplog.records if "orphaned" in r.getMessage()]
        assert len(orphaned) == 1
        assert uploaded[0] in orphaned[0].getMessage()

    def test_lost_race_without_proof_logs_nothing(self, services, store, order, monkeypatch, caplog):
        orders = services.orders
        real_get = orders.get_order

        def racing_get(order_id, timeout=None):
            found = real_get(order_id, timeout)
            set_payment_status(store, order_id, "pending_verification")
            return found

        monkeypatch.setattr(orders, "get_order", racing_get)
        with caplog.at_level("WARNING", logger="storefront.orders"):
            with pytest.raises(PaymentAlreadySubmittedError):
                orders.submit_payment(order.id, "UTR-LOSER")
        assert not [r for r in caplog.records if "orphaned" in r.getMessage()]


class TestVerifyPayment:
    def test_verify_paid(self, services, order):
        services.orders.submit_payment(order.id, "UTR1")
        verified = services.orders.verify_payment(order.id, order.total_amount, "paid", verified_by="meera")
        assert verified.payment_status == "paid"
        assert verified.verified_amount == order.total_amount
        assert verified.verified_by == "meera"
        assert verified.verified_at
        assert services.orders.get_order(order.id).payment_status == "paid"

    def test_partial_then_paid(self, services, order):
        services.orders.submit_payment(order.id, "UTR1")
        services.orders.verify_payment(order.id, 100, "partial")
        assert services.orders.verify_payment(order.id, order.total_amount, "paid").payment_status == "paid"

    def test_pending_needs_force(self, services, order):
        with pytest.raises(IllegalTransitionError):
            services.orders.verify_payment(order.id, 100, "paid")
        forced = services.orders.verify_payment(order.id, 100, "paid", force=True)
        assert forced.payment_status == "paid"

    def test_paid_is_terminal(self, services, store, order):
        set_payment_status(store, order.id, "paid")
        with pytest.raises(IllegalTransitionError):
            services.orders.verify_payment(order.id, 0, "failed")

    def test_unknown_status(self, services, order):
        with pytest.raises(ValidationError):
            services.orders.verify_payment(order.id, 100, "pending")

    def test_negative_amount(self, services, order):
        with pytest.raises(ValidationError):
            services.orders.verify_payment(order.id, -5, "paid", force=True)

    def test_not_found(self, services):
        with pytest.raises(OrderNotFoundError):
            services.orders.verify_payment("order-missing", 1, "paid")


class TestUpdateOrderStatus:
    def test_forward_path(self, services, order):
        for status in ("confirmed", "shipped", "delivered"):
            assert services.orders.update_order_status(order.id, status).order_status == status

    def test_skip_needs_force(self, services, order):
        with pytest.raises(IllegalTransitionError):
            services.orders.update_order_status(order.id, "shipped")
        assert services.orders.update_order_status(order.id, "shipped", force=True).order_status == "shipped"

    def test_cancel(self, services, order):
        assert services.orders.update_order_status(order.id, "cancelled").order_status == "cancelled"
        with pytest.raises(IllegalTransitionError):
            services.orders.update_order_status(order.id, "confirmed")

    def test_same_status_is_noop(self, services, store, order):
        before = store.select("orders", {"id": order.id})[0]["updated_at"]
        services.orders.update_order_status(order.id, "pending")
        assert store.select("orders", {"id": order.id})[0]["updated_at"] == before

    def test_unknown_status(self, services, order):
        with pytest.raises(ValidationError):
            services.orders.update_order_status(order.id, "lost")
