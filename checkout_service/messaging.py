import json
import logging
from datetime import datetime
from uuid import uuid4

import aio_pika
from tenacity import before_sleep_log, retry, stop_after_attempt, wait_exponential

from checkout_service.models import Purchase, PurchaseStatus

logger = logging.getLogger(__name__)

PURCHASE_EXCHANGE = "purchase_exchange"

ROUTING_KEYS = {
    PurchaseStatus.SUCCESS: "purchase.succeeded",
    PurchaseStatus.FAILED: "purchase.failed",
}

EVENT_TYPES = {
    PurchaseStatus.SUCCESS: "PurchaseSucceeded",
    PurchaseStatus.FAILED: "PurchaseFailed",
}


def build_purchase_event(purchase: Purchase, reason: str | None = None) -> dict:
    updated_at = purchase.updated_at
    event = {
        "event_id": str(uuid4()),
        "event_type": EVENT_TYPES[purchase.status],
        "timestamp": updated_at.isoformat() if isinstance(updated_at, datetime) else str(updated_at),
        "identifier": purchase.identifier,
        "customer_email": purchase.customer_email,
        "amount": str(purchase.amount),
        "currency": purchase.currency,
    }
    if reason:
        event["reason"] = reason
    return event


class NullPublisher:
    """Used when no broker is configured."""

    async def connect(self) -> None:
        return None

    async def publish_purchase(self, purchase: Purchase, reason: str | None = None) -> None:
        logger.debug("Event publishing disabled; skipping %s", purchase.identifier)

    async def close(self) -> None:
        return None


class EventPublisher:
    def __init__(self, url: str, exchange_name: str = PURCHASE_EXCHANGE):
        self._url = url
        self._exchange_name = exchange_name
        self._connection = None
        self._exchange = None

    @retry(
        stop=stop_after_attempt(5),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async def connect(self) -> None:
        self._connection = await aio_pika.connect_robust(self._url)
        channel = await self._connection.channel()
        self._exchange = await channel.declare_exchange(
            self._exchange_name, aio_pika.ExchangeType.TOPIC, durable=True
        )
        logger.info("RabbitMQ setup complete.")

    async def publish_purchase(self, purchase: Purchase, reason: str | None = None) -> None:
        """Publish the purchase's terminal status. Failures are logged, never raised."""
        routing_key = ROUTING_KEYS.get(purchase.status)
        if routing_key is None:
            return
        if self._exchange is None:
            logger.warning("RabbitMQ exchange not available. Cannot publish %s.", routing_key)
            return

        event = build_purchase_event(purchase, reason)
        message = aio_pika.Message(
            json.dumps(event).encode("utf-8"),
            content_type="application/json",
            delivery_mode=aio_pika.DeliveryMode.PERSISTENT,
        )
        try:
            await self._exchange.publish(message, routing_key=routing_key)
            logger.info("Published event to %s: %s", routing_key, event["event_type"])
        except Exception:
            logger.exception("Error publishing %s for %s", routing_key, purchase.identifier)

    async def close(self) -> None:
        if self._connection is not None:
            await self._connection.close()
            self._connection = None
            self._exchange = None
