"""End-to-end checks against a running deployment (service + Postgres).

Skipped unless CHECKOUT_SERVICE_URL, CHECKOUT_DB_URL and VISERPAY_SECRET_KEY
point at a live stack whose gateway is the sandbox.
"""
import asyncio
import os
import time
from decimal import Decimal
from uuid import uuid4

import httpx
import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from checkout_service.models import Purchase, PurchaseStatus
from checkout_service.signature import sign

SERVICE_URL = os.getenv("CHECKOUT_SERVICE_URL")
DB_URL = os.getenv("CHECKOUT_DB_URL")
SECRET_KEY = os.getenv("VISERPAY_SECRET_KEY")

pytestmark = pytest.mark.skipif(
    not (SERVICE_URL and DB_URL and SECRET_KEY),
    reason="integration stack not configured",
)


@pytest.fixture(scope="module")
def anyio_backend():
    return "asyncio"


@pytest.fixture
async def client():
    async with httpx.AsyncClient(base_url=SERVICE_URL, timeout=30.0) as client:
        yield client


@pytest.fixture
async def session():
    engine = create_async_engine(DB_URL)
    async with async_sessionmaker(engine, expire_on_commit=False)() as session:
        yield session
    await engine.dispose()


async def wait_for_purchase(session, identifier, timeout=10):
    start_time = time.time()
    while time.time() - start_time < timeout:
        session.expire_all()
        purchase = (await session.execute(select(Purchase).where(Purchase.identifier == identifier))).scalar_one_or_none()
        if purchase is not None:
            return purchase
        await asyncio.sleep(0.5)
    raise TimeoutError(f"Timeout waiting for purchase {identifier}")


@pytest.mark.anyio
async def test_checkout_then_ipn(client, session):
    identifier = f"ORDER_{uuid4().hex[:12]}"
    response = await client.post(
        "/api/initiate-payment",
        json={
            "customer_name": "Integration Test",
            "customer_email": "integration@example.com",
            "amount": "5000.00",
            "currency": "AOA",
            "products": [{"name": "Camiseta", "price": "5000.00", "quantity": 1}],
            "identifier": identifier,
            "ipn_url": f"{SERVICE_URL}/api/ipn",
            "success_url": f"{SERVICE_URL}/success",
            "cancel_url": f"{SERVICE_URL}/cancel",
        },
    )
    purchase = await wait_for_purchase(session, identifier)

    if response.status_code != 200:
        # sandbox refused the payment: the compensating write must have run
        assert purchase.status == PurchaseStatus.FAILED
        return

    assert response.json()["success"] == "ok"
    assert purchase.status == PurchaseStatus.PENDING

    ipn = {
        "status": "success",
        "signature": sign(SECRET_KEY, Decimal("5000.00"), identifier),
        "identifier": identifier,
        "data": {"amount": 5000},
    }
    for _ in range(2):
        ack = await client.post("/api/ipn", json=ipn)
        assert ack.status_code == 200

    session.expire_all()
    purchase = await wait_for_purchase(session, identifier)
    assert purchase.status == PurchaseStatus.SUCCESS
