"""Pytest fixtures: file-backed SQLite ledger, seeded catalog and fake collaborators."""
import os

os.environ.setdefault("DATABASE_URL", "sqlite://")

from decimal import Decimal

import pytest
import requests
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from checkout_service import main
from checkout_service.database import Base, enable_sqlite_savepoints
from checkout_service.errors import PaymentGatewayError, Unauthenticated
from checkout_service.gateway import RazorpayGateway, payment_signature
from checkout_service.ledger import SqlLedgerStore
from checkout_service.lifecycle import OrderLifecycleManager
from checkout_service.models import Product, ProductVariant, Profile
from checkout_service.ports import Identity, RemoteOrder

GATEWAY_SECRET = "test_secret"

ALICE = Identity(identity_id="user-alice", email="alice@example.com")
BOB = Identity(identity_id="user-bob", email="bob@example.com")
ADMIN = Identity(identity_id="user-admin", email="admin@example.com")

TOKENS = {"token-alice": ALICE, "token-bob": BOB, "token-admin": ADMIN}


class FakeIdentityProvider:
    def resolve(self, credential):
        identity = TOKENS.get(credential)
        if identity is None:
            raise Unauthenticated()
        return identity


class FakeGateway(RazorpayGateway):
    """Real signature checks, canned remote orders."""

    def __init__(self):
        super().__init__("rzp_test_key", GATEWAY_SECRET, "https://gateway.invalid/v1")
        self.fail = False
        self.created = []

    def create_remote_order(self, *, amount_minor_units, currency, receipt, metadata):
        if self.fail:
            raise PaymentGatewayError()
        self.created.append({"amount": amount_minor_units, "currency": currency, "receipt": receipt, "notes": metadata})
        return RemoteOrder(f"order_{len(self.created):06d}", amount_minor_units, currency)


class RecordingPublisher:
    def __init__(self):
        self.events = []

    def publish(self, routing_key, message):
        self.events.append((routing_key, message))

    def keys(self):
        return [key for key, _ in self.events]


class FakeResponse:
    def __init__(self, status_code=200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def json(self):
        if self._payload is None:
            raise ValueError("no JSON body")
        return self._payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"HTTP {self.status_code}")


class FakeSession:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.calls = []

    def post(self, url, **kwargs):
        self.calls.append((url, kwargs))
        if self.error:
            raise self.error
        return self.response

    get = post


def sign(gateway_order_id, gateway_payment_id):
    return payment_signature(GATEWAY_SECRET, gateway_order_id, gateway_payment_id)


def cart_payload(*items, total=None, **extra):
    """Build a create-order body in the storefront's JSON shape."""
    items = list(items)
    if total is None:
        total = sum(item["price"] * item["quantity"] for item in items)
    payload = {
        "cartItems": items,
        "shippingAddress": {
            "firstName": "Alice",
            "lastName": "Rao",
            "address1": "12 MG Road",
            "city": "Bengaluru",
            "province": "KA",
            "postalCode": "560001",
            "country": "IN",
            "phone": "+919900000000",
        },
        "totalAmount": total,
    }
    payload.update(extra)
    return payload


SHIRT_M = {"product_id": "p1", "variant_id": "v1", "product_name": "Linen Shirt", "quantity": 2, "price": 500}


@pytest.fixture
def session_factory(tmp_path):
    engine = enable_sqlite_savepoints(
        create_engine(f"sqlite:///{tmp_path / 'ledger.db'}", connect_args={"check_same_thread": False})
    )
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)

    with factory() as seed:
        seed.add_all(
            [
                Product(id="p1", name="Linen Shirt", slug="linen-shirt", price=Decimal("500.00")),
                Product(id="p2", name="Canvas Tote", slug="canvas-tote", price=Decimal("250.00")),
                ProductVariant(id="v1", product_id="p1", title="M", sku="LS-M", price=Decimal("500.00"), inventory_quantity=10),
                ProductVariant(id="v2", product_id="p1", title="XL", sku="LS-XL", inventory_quantity=1),
                Profile(id=ADMIN.identity_id, email=ADMIN.email, role="admin"),
                Profile(id=ALICE.identity_id, email=ALICE.email, role="customer"),
            ]
        )
        seed.commit()

    yield factory
    engine.dispose()


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def make_manager(db, gateway, publisher):
    def _make(allow_backorder=False, **kwargs):
        return OrderLifecycleManager(
            identity_provider=FakeIdentityProvider(),
            gateway=gateway,
            ledger=SqlLedgerStore(db, allow_backorder=allow_backorder),
            publisher=publisher,
            **kwargs,
        )

    return _make


@pytest.fixture
def manager(make_manager):
    return make_manager()


@pytest.fixture
def client(session_factory, gateway, publisher):
    def _get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    main.app.dependency_overrides[main.get_db] = _get_db
    main.app.dependency_overrides[main.get_identity_provider] = FakeIdentityProvider
    main.app.dependency_overrides[main.get_payment_gateway] = lambda: gateway
    main.app.dependency_overrides[main.get_publisher] = lambda: publisher
    yield TestClient(main.app)
    main.app.dependency_overrides.clear()


@pytest.fixture
def fetch(session_factory):
    """Read one row in a short-lived session so no transaction stays open."""

    def _fetch(model, ident):
        with session_factory() as session:
            row = session.get(model, ident)
            if row is not None:
                session.expunge(row)
            return row

    return _fetch
