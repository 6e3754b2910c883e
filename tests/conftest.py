"""
Shared fixtures: an app on in-memory sqlite with mail suppressed, a small
seeded marketplace, and a fake PayPal transport patched over
`PayPalClient._request`.
"""
import json
from types import SimpleNamespace

import pytest

from marketplace.app import create_app
from marketplace.config import Config, PAYPAL_API
from marketplace.extensions import db
from marketplace.models import Order, OrderItem, Product, ProductVariant, Profile, Vendor
from marketplace.services.paypal import PayPalClient


class TestingConfig(Config):
    __test__ = False

    TESTING = True
    APP_ENV = "development"
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"

    FRONTEND_URL = "https://shop.example.com"
    CORS_ORIGINS = ["https://shop.example.com"]

    PAYPAL_ENV = "sandbox"
    PAYPAL_API_BASE = PAYPAL_API["sandbox"]
    PAYPAL_CLIENT_ID = "test-client-id-1234567890"
    PAYPAL_SECRET = "test-secret-abcdef"
    PAYPAL_CURRENCY = "USD"
    PAYPAL_BRAND_NAME = "SKN Bridge Trade"
    PAYPAL_RETURN_URL = "https://shop.example.com/success"
    PAYPAL_CANCEL_URL = "https://shop.example.com/cart"
    DEBUG_PAYPAL = False

    MAIL_SERVER = "localhost"
    MAIL_PORT = 25
    MAIL_USE_SSL = False
    MAIL_USE_TLS = False
    MAIL_USERNAME = None
    MAIL_PASSWORD = None
    MAIL_DEFAULT_SENDER = "shop@example.com"
    MAIL_SUPPRESS_SEND = True
    ORDER_NOTIFY_EMAIL = None

    KYC_PROVIDER = "stub"
    LOW_STOCK_THRESHOLD = 5


@pytest.fixture
def app():
    app = create_app(TestingConfig)
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


@pytest.fixture
def client(app):
    return app.test_client()


@pytest.fixture
def headers_for():
    def _headers(profile):
        return {"X-User-Id": str(profile.id)}
    return _headers


@pytest.fixture
def seed(app):
    buyer = Profile(email="buyer@example.com", full_name="Bea Buyer", role="customer")
    owner = Profile(email="owner@example.com", full_name="Otto Owner", role="vendor")
    admin = Profile(email="admin@example.com", full_name="Ada Admin", role="admin")
    other = Profile(email="other@example.com", full_name="Oscar Other", role="customer")
    db.session.add_all([buyer, owner, admin, other])
    db.session.flush()

    vendor = Vendor(
        owner_id=owner.id,
        name="Bridge Goods",
        slug="bridge-goods",
        onboarding_status="approved",
        onboarding_token="token-bridge-goods",
    )
    db.session.add(vendor)
    db.session.flush()

    product = Product(
        vendor_id=vendor.id,
        title="Canvas Tote",
        slug="canvas-tote",
        base_price=2500,
        currency="USD",
        image_url="https://cdn.example.com/tote.jpg",
        gallery_images=["https://cdn.example.com/tote-2.jpg"],
        is_published=True,
    )
    db.session.add(product)
    db.session.flush()

    red = ProductVariant(
        product_id=product.id, title="Red", sku="TOTE-R",
        price_in_cents=2500, sale_price_in_cents=1999, inventory_quantity=10,
    )
    blue = ProductVariant(
        product_id=product.id, title="Blue", sku="TOTE-B",
        price_in_cents=2500, inventory_quantity=3,
    )
    db.session.add_all([red, blue])
    db.session.commit()

    return SimpleNamespace(
        buyer=buyer, owner=owner, admin=admin, other=other,
        vendor=vendor, product=product, red=red, blue=blue,
    )


@pytest.fixture
def make_order(seed):
    def _make(status="pending", quantity=2, variant=None, payment_id="PAYPAL-ORDER-1",
              capture_id=None, user=None):
        variant = variant or seed.red
        price = variant.sale_price_in_cents
        if price is None:
            price = variant.price_in_cents
        order = Order(
            user_id=(user or seed.buyer).id,
            vendor_id=seed.vendor.id,
            status=status,
            total_amount_cents=price * quantity,
            currency="USD",
            shipping_address={"line1": "1 Main St", "city": "Springfield", "country": "US"},
            payment_method="paypal",
            payment_id=payment_id,
            paypal_capture_id=capture_id,
        )
        db.session.add(order)
        db.session.flush()
        db.session.add(OrderItem(
            order_id=order.id,
            product_id=variant.product_id,
            variant_id=variant.id,
            quantity=quantity,
            price_at_purchase_cents=price,
            subtotal_cents=price * quantity,
        ))
        db.session.commit()
        return order
    return _make


class FakePayPal:
    """Canned PayPal answers keyed by endpoint; records every call."""

    def __init__(self):
        self.calls = []
        self.token = (200, {"access_token": "A21AA-test-token", "expires_in": 32400})
        self.create = (201, {
            "id": "PAYPAL-ORDER-1",
            "status": "CREATED",
            "links": [
                {"href": "https://www.sandbox.paypal.com/checkoutnow?token=PAYPAL-ORDER-1", "rel": "approve"},
            ],
        })
        self.capture = (201, {
            "id": "PAYPAL-ORDER-1",
            "status": "COMPLETED",
            "purchase_units": [
                {"payments": {"captures": [{"id": "CAPTURE-1", "status": "COMPLETED"}]}},
            ],
        })
        self.refund = (201, {"id": "REFUND-1", "status": "COMPLETED"})
        self.order = (200, {
            "id": "PAYPAL-ORDER-1",
            "status": "COMPLETED",
            "purchase_units": [{
                "amount": {"currency_code": "USD", "value": "39.98"},
                "payments": {"captures": [{"id": "CAPTURE-1", "status": "COMPLETED"}]},
            }],
        })
        self.capture_details = (200, {
            "id": "CAPTURE-1",
            "status": "COMPLETED",
            "amount": {"currency_code": "USD", "value": "39.98"},
        })
        self.refund_details = (200, {
            "id": "REFUND-1",
            "status": "COMPLETED",
            "amount": {"currency_code": "USD", "value": "39.98"},
        })

    def handle(self, method, path, headers, body):
        parsed = None
        if body and headers.get("Content-Type") == "application/json":
            parsed = json.loads(body.decode("utf-8"))
        self.calls.append({"method": method, "path": path, "headers": headers, "json": parsed})

        if path == "/v1/oauth2/token":
            return self.token
        if method == "GET":
            if path.startswith("/v2/checkout/orders/"):
                return self.order
            if path.startswith("/v2/payments/captures/"):
                return self.capture_details
            if path.startswith("/v2/payments/refunds/"):
                return self.refund_details
            return 404, {"message": f"unexpected path {path}"}
        if path == "/v2/checkout/orders":
            return self.create
        if path.endswith("/capture"):
            return self.capture
        if path.endswith("/refund"):
            return self.refund
        return 404, {"message": f"unexpected path {path}"}

    def last(self, suffix):
        return [c for c in self.calls if c["path"].endswith(suffix)][-1]


@pytest.fixture
def paypal(monkeypatch):
    fake = FakePayPal()

    def _request(self, method, path, headers, body=None):
        return fake.handle(method, path, headers, body)

    monkeypatch.setattr(PayPalClient, "_request", _request)
    return fake
