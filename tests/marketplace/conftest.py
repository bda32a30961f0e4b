import json
import threading
from datetime import UTC, datetime, timedelta

import pytest
from marketplace.config import get_settings
from marketplace.identity.auth import AuthContext, actor_fields
from marketplace.inventory.product import Product, ProductStatus
from marketplace.order.creation import CreateOrder
from marketplace.order.dispatch import place, submit
from marketplace.order.escrow import ReleaseEscrow, SimulatePayment
from marketplace.order.order import Order, OrderStatus
from marketplace.order.transition import UpdateOrderStatus
from protean import current_domain
from protean.exceptions import ObjectNotFoundError
from protean.integrations.pytest import DomainFixture


class TickingClock:
    """Clock that moves one second forward on every reading."""

    def __init__(self, start: datetime | None = None, step: timedelta = timedelta(seconds=1)):
        self._lock = threading.Lock()
        self.current = start or datetime(2026, 1, 5, 9, 0, tzinfo=UTC)
        self.step = step

    def now(self) -> datetime:
        with self._lock:
            moment = self.current
            self.current = moment + self.step
            return moment


@pytest.fixture(scope="session")
def marketplace_bed():
    from marketplace.domain import marketplace

    bed = DomainFixture(marketplace)
    bed.setup()
    yield bed
    bed.teardown()


@pytest.fixture(autouse=True)
def _ctx(marketplace_bed):
    with marketplace_bed.domain_context():
        yield


@pytest.fixture(autouse=True)
def clock(marketplace_bed):
    """Deterministic, strictly increasing domain time for every test."""
    domain = marketplace_bed.domain
    original = domain.clock
    domain.clock = TickingClock()
    yield domain.clock
    domain.clock = original


@pytest.fixture(autouse=True)
def reservation_budget(monkeypatch):
    """Generous retry budget so racing tests never give up on contention."""
    monkeypatch.setenv("MARKETPLACE_RESERVATION_MAX_ATTEMPTS", "10")
    get_settings.cache_clear()
    yield get_settings().reservation_max_attempts
    get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Actors
# ---------------------------------------------------------------------------
@pytest.fixture()
def buyer():
    return AuthContext(uid="buyer-001", role="buyer")


@pytest.fixture()
def other_buyer():
    return AuthContext(uid="buyer-002", role="buyer")


@pytest.fixture()
def seller():
    return AuthContext(uid="seller-001", role="seller", verification_status="verified")


@pytest.fixture()
def other_seller():
    return AuthContext(uid="seller-002", role="seller", verification_status="verified")


@pytest.fixture()
def unverified_seller():
    """The owning seller's account before KYC has completed."""
    return AuthContext(uid="seller-001", role="seller", verification_status="pending")


@pytest.fixture()
def admin():
    return AuthContext(uid="admin-001", role="admin")


# ---------------------------------------------------------------------------
# Catalog
# ---------------------------------------------------------------------------
@pytest.fixture()
def add_product():
    """Create a catalog product, or overwrite the listing when it already exists."""

    def _add(product_id, stock, price=10.0, seller_id="seller-001", name=None, status=ProductStatus.ACTIVE.value):
        listing = {
            "name": name or f"Product {product_id}",
            "price": price,
            "stock": stock,
            "seller_id": seller_id,
            "status": status,
        }
        repo = current_domain.repository_for(Product)
        try:
            product = repo.get(product_id)
        except ObjectNotFoundError:
            product = Product(id=product_id, **listing)
        else:
            for field_name, value in listing.items():
                setattr(product, field_name, value)
        repo.add(product)
        return product

    return _add


@pytest.fixture()
def catalog(add_product):
    add_product("prod-001", stock=10, price=25.0, name="Teak Chair")
    add_product("prod-002", stock=3, price=12.5, name="Lacquer Bowl")
    add_product("prod-003", stock=5, price=8.0, seller_id="seller-002", name="Longyi")
    add_product("prod-004", stock=5, price=4.0, name="Old Lamp", status=ProductStatus.INACTIVE.value)


@pytest.fixture()
def address():
    return {"street": "12 Pansodan Rd", "city": "Yangon", "phone": "+95 9 000 0000"}


# ---------------------------------------------------------------------------
# Order commands
# ---------------------------------------------------------------------------
@pytest.fixture()
def create_order():
    """Issue ``CreateOrder`` for ``buyer`` and return the new order id."""

    def _create(buyer, seller_id, items, payment_method, delivery_address):
        return place(
            CreateOrder(
                **actor_fields(buyer),
                seller_id=seller_id,
                items=json.dumps(items),
                payment_method=payment_method,
                delivery_address=json.dumps(delivery_address),
            )
        )

    return _create


@pytest.fixture()
def set_status():
    """Issue ``UpdateOrderStatus`` and return the updated order."""

    def _set(order_id, actor, status, tracking_number=None, proof_of_delivery=None, note=None):
        return submit(
            UpdateOrderStatus(
                order_id=order_id,
                **actor_fields(actor),
                status=status,
                tracking_number=tracking_number,
                proof_of_delivery=proof_of_delivery,
                note=note,
            )
        )

    return _set


@pytest.fixture()
def pay():
    def _pay(order_id, actor=None, transaction_id=None, receipt_id=None):
        return submit(
            SimulatePayment(
                order_id=order_id,
                **actor_fields(actor),
                transaction_id=transaction_id,
                receipt_id=receipt_id,
            )
        )

    return _pay


@pytest.fixture()
def release():
    def _release(order_id, actor=None):
        return submit(ReleaseEscrow(order_id=order_id, **actor_fields(actor)))

    return _release


@pytest.fixture()
def place_order(create_order, catalog, buyer, address):
    """Place an order for ``prod-001`` and return its id and the stored order."""

    def _place(items=None, payment_method="MobileWalletA", actor=None, seller_id="seller-001"):
        order_id = create_order(
            buyer if actor is None else actor,
            seller_id=seller_id,
            items=[{"product_id": "prod-001", "quantity": 2}] if items is None else items,
            payment_method=payment_method,
            delivery_address=address,
        )
        return order_id, current_domain.repository_for(Order).get(order_id)

    return _place


@pytest.fixture()
def advance_order(set_status, seller):
    """Walk an order forward along the fulfilment path up to ``status``."""
    steps = [
        (OrderStatus.CONFIRMED, {}),
        (OrderStatus.SHIPPED, {"tracking_number": "TRK-001"}),
        (OrderStatus.DELIVERED, {"proof_of_delivery": "signed-by-recipient.jpg"}),
    ]

    def _advance(order_id, status):
        target = OrderStatus(status)
        order = None
        for step, fields in steps:
            order = set_status(order_id, seller, step.value, **fields)
            if step == target:
                break
        return order

    return _advance


# ---------------------------------------------------------------------------
# Concurrency
# ---------------------------------------------------------------------------
@pytest.fixture()
def in_other_thread(marketplace_bed):
    """Run a callable to completion on another thread, in its own domain context."""

    def _run(work):
        outcome = {}

        def target():
            with marketplace_bed.domain.domain_context():
                try:
                    outcome["result"] = work()
                except Exception as exc:  # re-raised on the calling thread
                    outcome["error"] = exc

        thread = threading.Thread(target=target)
        thread.start()
        thread.join()
        if "error" in outcome:
            raise outcome["error"]
        return outcome.get("result")

    return _run


@pytest.fixture()
def race_order_read(monkeypatch, in_other_thread):
    """Commit ``competing`` from another thread right after the next order read.

    The reader keeps the state it loaded, so its own write is stale.
    """

    def _race(competing):
        repository_cls = type(current_domain.repository_for(Order))
        original_get = repository_cls.get
        raced = []

        def get(self, identifier, *args, **kwargs):
            order = original_get(self, identifier, *args, **kwargs)
            if not raced:
                raced.append(True)
                in_other_thread(competing)
            return order

        monkeypatch.setattr(repository_cls, "get", get)

    return _race
