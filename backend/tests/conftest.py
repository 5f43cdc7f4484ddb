"""
Pytest fixtures for storefront backend tests.

Provides the application with an in-memory database, per-test table wipe,
a scripted HTTP layer for gateway / SMS calls, and builders for carts and
checkout sessions.
"""

import httpx
import pytest

from storefront import create_app
from storefront.extensions import db
from storefront.services.pricing_service import CartLine


ADMIN_TOKEN = "test-admin-token"

RAZORPAY_KEY_ID = "rzp_test_key"
RAZORPAY_KEY_SECRET = "rzp_test_secret"
PHONEPE_MERCHANT_ID = "PGTESTMERCHANT"
PHONEPE_SALT_KEY = "phonepe-salt"


class FakeHttp:
    """
    Scripted responses for outbound httpx calls.

    Routes are matched newest-first on (method, URL prefix); unmatched
    requests get a 404. Every request is recorded.
    """

    def __init__(self):
        self.routes = []
        self.requests = []

    def reset(self):
        self.routes = []
        self.requests = []

    def add(self, method, url_prefix, status_code=200, json=None, raises=None):
        def responder(request):
            if raises is not None:
                raise raises
            return httpx.Response(status_code, json=json if json is not None else {})
        self.routes.append((method.upper(), url_prefix, responder))

    def add_handler(self, method, url_prefix, handler):
        self.routes.append((method.upper(), url_prefix, handler))

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        for method, prefix, responder in reversed(self.routes):
            if request.method == method and str(request.url).startswith(prefix):
                return responder(request)
        return httpx.Response(404, json={"error": "no route"})

    def calls_to(self, url_prefix):
        return [r for r in self.requests if str(r.url).startswith(url_prefix)]


_fake_http = FakeHttp()


def make_app(**overrides):
    config = {
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'ADMIN_API_TOKEN': ADMIN_TOKEN,
        'RAZORPAY_KEY_ID': RAZORPAY_KEY_ID,
        'RAZORPAY_KEY_SECRET': RAZORPAY_KEY_SECRET,
        'RAZORPAY_API_BASE': 'https://razorpay.test/v1',
        'PHONEPE_MERCHANT_ID': PHONEPE_MERCHANT_ID,
        'PHONEPE_SALT_KEY': PHONEPE_SALT_KEY,
        'PHONEPE_SALT_INDEX': '1',
        'PHONEPE_API_BASE': 'https://phonepe.test',
        'PAYMENT_COMPLETION_TIMEOUT_SECONDS': 0.5,
        'HTTP_TRANSPORT': httpx.MockTransport(_fake_http.handle),
    }
    config.update(overrides)
    return create_app(config)


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = make_app()

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function')
def admin_headers():
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


@pytest.fixture(scope='function')
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()


@pytest.fixture(scope='function')
def fake_http():
    """Scripted outbound HTTP; cleared before and after each test."""
    _fake_http.reset()
    yield _fake_http
    _fake_http.reset()


@pytest.fixture(scope='function')
def cart_lines():
    """2 x 1000 + 1 x (500 + 200 variant) = 2700 rupees."""
    return [
        CartLine(product_id="p1", quantity=2, unit_base_price=100000, product_name="Silk Saree"),
        CartLine(
            product_id="p2",
            quantity=1,
            unit_base_price=50000,
            variant_id="v1",
            variant_price_adjustment=20000,
            product_name="Cotton Saree",
            variant_label="Red",
        ),
    ]


@pytest.fixture(scope='function')
def customer_details():
    return {
        "customerName": "Asha",
        "customerEmail": "asha@example.com",
        "customerPhone": "+91 98765 43210",
        "shippingAddress": "12 MG Road, Bengaluru",
    }
