import asyncio
from decimal import Decimal

import pytest
from sqlalchemy import update

from shared.errors import EmptyCart, InsufficientStock, PaymentNotVerified, ProductUnavailable, StoreError
from services.order_service.models import Order, OrderItem
from services.order_service.schemas import CreateOrderRequest
from services.order_service.service import GUEST_CUSTOMER_EMAIL, GUEST_CUSTOMER_NAME, merge_cart
from services.payment_service.models import PaymentRecord
from services.payment_service.repository import PaymentRepository
from services.product_service.models import Product


def cart(*lines, method="card", reference=None, **extra):
    return CreateOrderRequest(
        items=[{"product_id": pid, "quantity": qty} for pid, qty in lines],
        payment_method=method,
        payment_reference=reference,
        **extra,
    )


class TestSynchronousCheckout:

    async def test_card_order_is_pending_and_reserves_stock(self, db, order_service, customer, add_product, read_stock):
        await add_product("P1", price="10.00", stock=5)

        order = await order_service.create_order(db, cart(("P1", 2)), customer)

        assert order.total_amount == Decimal("20.00")
        assert order.status == "pending"
        assert order.payment_status == "pending"
        assert order.user_id == "user-1"
        assert order.order_number.startswith("MK")
        assert len(order.items) == 1
        assert order.items[0].price == Decimal("10.00")
        assert order.items[0].quantity == 2
        # reserve-on-order, whatever the payment method
        assert await read_stock("P1") == 3

    async def test_total_is_sum_of_captured_lines(self, db, order_service, customer, add_product):
        await add_product("A", price="19.99")
        await add_product("B", price="0.35", stock=100)
        await add_product("C", price="5.00", stock=3)

        order = await order_service.create_order(db, cart(("C", 3), ("A", 1), ("B", 7)), customer)

        assert order.total_amount == Decimal("37.44")
        assert order.total_amount == sum(item.price * item.quantity for item in order.items)
        assert [item.product_id for item in order.items] == ["A", "B", "C"]

    async def test_duplicate_lines_are_merged(self, db, order_service, customer, add_product, read_stock):
        await add_product("P1", price="2.50", stock=10)

        order = await order_service.create_order(db, cart(("P1", 1), ("P1", 3)), customer)

        assert len(order.items) == 1
        assert order.items[0].quantity == 4
        assert order.total_amount == Decimal("10.00")
        assert await read_stock("P1") == 6

    async def test_line_items_snapshot_catalog_data(self, db, order_service, customer, add_product):
        await add_product("P1", price="9.00", name="Music Premium", type="subscription",
                          duration="1 year", features=["Ad-free"])

        order = await order_service.create_order(db, cart(("P1", 1)), customer)

        item = order.items[0]
        assert item.product_name == "Music Premium"
        assert item.product_image == "/img/P1.png"
        assert item.product_metadata == {"type": "subscription", "duration": "1 year", "features": ["Ad-free"]}

    async def test_snapshot_survives_catalog_edits(self, db, order_service, customer, add_product, session_factory):
        await add_product("P1", price="10.00", name="Original Name")
        order = await order_service.create_order(db, cart(("P1", 2)), customer)

        async with session_factory() as session:
            await session.execute(
                update(Product).where(Product.id == "P1").values(price=Decimal("99.00"), name="Renamed")
            )
            await session.commit()

        async with session_factory() as session:
            reread = await session.get(Order, order.id)
            items = (await session.execute(
                OrderItem.__table__.select().where(OrderItem.order_id == order.id)
            )).all()

        assert reread.total_amount == Decimal("20.00")
        assert items[0].price == Decimal("10.00")
        assert items[0].product_name == "Original Name"


class TestCustomerSnapshot:

    async def test_explicit_shipping_info_wins(self, db, order_service, customer, add_product):
        await add_product("P1")
        request = cart(("P1", 1), shipping_info={
            "email": "gift@example.com", "first_name": "Gift", "last_name": "Receiver", "country": "BR",
        })

        order = await order_service.create_order(db, request, customer)

        assert order.customer_email == "gift@example.com"
        assert order.customer_name == "Gift Receiver"
        assert order.shipping_info["country"] == "BR"

    async def test_falls_back_to_user_profile(self, db, order_service, customer, add_product):
        await add_product("P1")

        order = await order_service.create_order(db, cart(("P1", 1)), customer)

        assert order.customer_email == "ana@example.com"
        assert order.customer_name == "Ana Lima"
        assert order.shipping_info is None

    async def test_guest_checkout_uses_placeholder(self, db, order_service, add_product):
        await add_product("P1")

        order = await order_service.create_order(db, cart(("P1", 1)), None)

        assert order.user_id is None
        assert order.customer_email == GUEST_CUSTOMER_EMAIL
        assert order.customer_name == GUEST_CUSTOMER_NAME


class TestAtomicity:

    async def test_empty_cart(self, db, order_service, customer, count_rows):
        with pytest.raises(EmptyCart):
            await order_service.create_order(db, cart(), customer)
        assert await count_rows(Order) == 0

    async def test_unavailable_product_rolls_back_earlier_reservations(
        self, db, order_service, customer, add_product, read_stock, count_rows
    ):
        await add_product("A", stock=5)
        await add_product("Z", is_active=False)

        with pytest.raises(ProductUnavailable) as exc_info:
            await order_service.create_order(db, cart(("A", 2), ("Z", 1)), customer)

        assert exc_info.value.product_id == "Z"
        assert await read_stock("A") == 5
        assert await count_rows(Order) == 0
        assert await count_rows(OrderItem) == 0

    async def test_insufficient_stock_rolls_back_everything(
        self, db, order_service, customer, add_product, read_stock, count_rows
    ):
        await add_product("A", stock=5)
        await add_product("B", stock=1)

        with pytest.raises(InsufficientStock) as exc_info:
            await order_service.create_order(db, cart(("A", 3), ("B", 2)), customer)

        assert exc_info.value.product_id == "B"
        assert exc_info.value.requested == 2
        assert exc_info.value.available == 1
        assert await read_stock("A") == 5
        assert await read_stock("B") == 1
        assert await count_rows(Order) == 0
        assert await count_rows(OrderItem) == 0

    async def test_failed_order_leaves_session_usable(self, db, order_service, customer, add_product):
        await add_product("A", stock=1)

        with pytest.raises(InsufficientStock):
            await order_service.create_order(db, cart(("A", 2)), customer)
        order = await order_service.create_order(db, cart(("A", 1)), customer)

        assert order.total_amount == Decimal("10.00")


class TestConcurrency:

    async def test_concurrent_orders_never_oversell(self, session_factory, order_service, add_product, read_stock, customer):
        await add_product("HOT", price="1.00", stock=5)

        async def attempt():
            async with session_factory() as session:
                return await order_service.create_order(session, cart(("HOT", 3)), customer)

        results = await asyncio.gather(attempt(), attempt(), return_exceptions=True)

        successes = [r for r in results if isinstance(r, Order)]
        failures = [r for r in results if not isinstance(r, Order)]
        assert all(isinstance(f, StoreError) for f in failures)
        assert len(successes) <= 1
        final_stock = await read_stock("HOT")
        assert final_stock >= 0
        assert final_stock == 5 - 3 * len(successes)

    async def test_many_buyers_for_limited_stock(self, session_factory, order_service, add_product, read_stock, customer):
        await add_product("DROP", price="1.00", stock=4)

        async def attempt():
            async with session_factory() as session:
                return await order_service.create_order(session, cart(("DROP", 1)), customer)

        results = await asyncio.gather(*(attempt() for _ in range(8)), return_exceptions=True)

        reserved = sum(1 for r in results if isinstance(r, Order))
        assert reserved <= 4
        assert await read_stock("DROP") == 4 - reserved


class TestOutOfBandPayment:

    async def test_verified_paypal_order_is_processing_and_paid(
        self, db, order_service, customer, add_product, add_payment, gateway, session_factory
    ):
        await add_product("P1", price="15.00", stock=2)
        await add_payment("pay_ok", "PP-1", amount="15.00")
        gateway.statuses["PP-1"] = "COMPLETED"

        order = await order_service.create_order(db, cart(("P1", 1), method="paypal", reference="pay_ok"), customer)

        assert order.status == "processing"
        assert order.payment_status == "paid"
        assert order.payment_reference == "pay_ok"
        async with session_factory() as session:
            payment = await PaymentRepository.get_by_reference(session, "pay_ok")
        assert payment.order_id == order.id

    async def test_gateway_not_completed_creates_nothing(
        self, db, order_service, customer, add_product, add_payment, gateway, read_stock, count_rows
    ):
        await add_product("P1", stock=2)
        await add_payment("pay_pending", "PP-2")
        gateway.statuses["PP-2"] = "PAYER_ACTION_REQUIRED"

        with pytest.raises(PaymentNotVerified) as exc_info:
            await order_service.create_order(db, cart(("P1", 1), method="paypal", reference="pay_pending"), customer)

        assert exc_info.value.details["reason"] == "not_completed"
        assert await count_rows(Order) == 0
        assert await read_stock("P1") == 2

    async def test_unknown_reference_is_rejected(self, db, order_service, customer, add_product, count_rows):
        await add_product("P1")

        with pytest.raises(PaymentNotVerified) as exc_info:
            await order_service.create_order(db, cart(("P1", 1), method="qr_code", reference="pay_nope"), customer)

        assert exc_info.value.details["reason"] == "not_found"
        assert await count_rows(Order) == 0

    async def test_payment_cannot_be_redeemed_twice(
        self, db, order_service, customer, add_product, add_payment, gateway, read_stock, count_rows
    ):
        await add_product("P1", price="5.00", stock=10)
        await add_payment("pay_once", "PP-3", amount="50.00")
        gateway.statuses["PP-3"] = "COMPLETED"
        request = cart(("P1", 1), method="paypal", reference="pay_once")

        await order_service.create_order(db, request, customer)
        with pytest.raises(PaymentNotVerified) as exc_info:
            await order_service.create_order(db, request, customer)

        assert exc_info.value.details["reason"] == "already_redeemed"
        assert await count_rows(Order) == 1
        assert await read_stock("P1") == 9

    async def test_captured_amount_must_cover_total(
        self, db, order_service, customer, add_product, add_payment, gateway, read_stock, count_rows
    ):
        await add_product("P1", price="30.00", stock=3)
        await add_payment("pay_short", "PP-4", amount="29.99")
        gateway.statuses["PP-4"] = "COMPLETED"

        with pytest.raises(PaymentNotVerified) as exc_info:
            await order_service.create_order(db, cart(("P1", 1), method="paypal", reference="pay_short"), customer)

        assert exc_info.value.details["reason"] == "amount_mismatch"
        assert await read_stock("P1") == 3
        assert await count_rows(Order) == 0
        assert await count_rows(PaymentRecord) == 1

    async def test_payment_currency_must_match_order(
        self, db, order_service, customer, add_product, add_payment, gateway, read_stock, count_rows
    ):
        await add_product("P1", price="10.00", stock=3)
        await add_payment("pay_eur", "PP-5", amount="50.00", currency="EUR")
        gateway.statuses["PP-5"] = "COMPLETED"

        with pytest.raises(PaymentNotVerified) as exc_info:
            await order_service.create_order(db, cart(("P1", 1), method="paypal", reference="pay_eur"), customer)

        assert exc_info.value.details["reason"] == "currency_mismatch"
        assert await read_stock("P1") == 3
        assert await count_rows(Order) == 0

    def test_out_of_band_method_requires_reference(self):
        with pytest.raises(ValueError):
            cart(("P1", 1), method="paypal")


class TestIdempotency:

    async def test_same_key_returns_same_order(self, db, order_service, customer, add_product, read_stock, count_rows):
        await add_product("P1", stock=5)

        first = await order_service.create_order(db, cart(("P1", 2)), customer, idempotency_key="checkout-42")
        second = await order_service.create_order(db, cart(("P1", 2)), customer, idempotency_key="checkout-42")

        assert second.id == first.id
        assert await count_rows(Order) == 1
        assert await read_stock("P1") == 3

    async def test_key_is_scoped_per_user(self, db, order_service, customer, other_customer, add_product, count_rows):
        await add_product("P1")

        a = await order_service.create_order(db, cart(("P1", 1)), customer, idempotency_key="k")
        b = await order_service.create_order(db, cart(("P1", 1)), other_customer, idempotency_key="k")

        assert a.id != b.id
        assert await count_rows(Order) == 2

    async def test_guest_keys_are_not_shared_between_guests(
        self, db, order_service, add_product, read_stock, count_rows
    ):
        await add_product("P1", price="10.00", stock=10)
        await add_product("P2", price="4.00", stock=10)
        alice = cart(("P1", 1), shipping_info={"email": "alice@example.com", "first_name": "Alice"})
        bob = cart(("P2", 3), shipping_info={"email": "bob@example.com", "first_name": "Bob"})

        first = await order_service.create_order(db, alice, None, idempotency_key="abc")
        second = await order_service.create_order(db, bob, None, idempotency_key="abc")

        assert second.id != first.id
        assert second.customer_email == "bob@example.com"
        assert [item.product_id for item in second.items] == ["P2"]
        assert second.idempotency_key is None
        assert await read_stock("P2") == 7
        assert await count_rows(Order) == 2


def test_merge_cart_sorts_by_product_id():
    request = cart(("b", 1), ("a", 2), ("b", 2))
    assert merge_cart(request.items) == [("a", 2), ("b", 3)]
