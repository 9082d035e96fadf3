from decimal import Decimal
from unittest.mock import AsyncMock

import pytest
import pytest_asyncio

from checkout_service import signature
from checkout_service.database import build_engine, build_session_factory, init_db
from checkout_service.gateway import GatewayClient
from checkout_service.service import PaymentIntentService
from checkout_service.store import PurchaseStore

SECRET_KEY = "test-secret-key"
REDIRECT_URL = "https://pay/x"


@pytest.fixture
def checkout_request():
    """Checkout submission for a single Camiseta, as the storefront sends it."""
    return {
        "customer_name": "Maria Silva",
        "customer_email": "maria@example.com",
        "customer_phone": "+244923000000",
        "amount": Decimal("5000.00"),
        "currency": "AOA",
        "products": [{"name": "Camiseta", "price": Decimal("5000.00"), "quantity": 1}],
        "identifier": "ORDER_1",
        "ipn_url": "https://shop.example.com/api/ipn",
        "success_url": "https://shop.example.com/success",
        "cancel_url": "https://shop.example.com/cancel",
        "site_logo": "https://shop.example.com/logo.png",
        "checkout_theme": "light",
    }


def make_ipn(identifier="ORDER_1", amount=Decimal("5000.00"), status="success", secret=SECRET_KEY):
    return {
        "status": status,
        "signature": signature.sign(secret, amount, identifier),
        "identifier": identifier,
        "data": {"amount": amount},
    }


@pytest_asyncio.fixture
async def engine():
    engine = build_engine("sqlite+aiosqlite://")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def store(engine):
    return PurchaseStore(build_session_factory(engine))


@pytest.fixture
def gateway():
    mock_gateway = AsyncMock(spec=GatewayClient)
    mock_gateway.initiate.return_value = REDIRECT_URL
    return mock_gateway


@pytest.fixture
def publisher():
    return AsyncMock()


@pytest.fixture
def service(store, gateway, publisher):
    return PaymentIntentService(store=store, gateway=gateway, secret_key=SECRET_KEY, publisher=publisher)
