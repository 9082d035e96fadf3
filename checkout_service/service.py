import logging
from dataclasses import dataclass
from typing import Union

from checkout_service import signature
from checkout_service.errors import (
    ConfigurationError,
    GatewayError,
    NotFoundError,
    SignatureError,
    TransitionConflictError,
)
from checkout_service.gateway import GatewayClient, GatewayPaymentRequest
from checkout_service.messaging import NullPublisher
from checkout_service.models import Purchase, PurchaseStatus
from checkout_service.schemas import IpnPayload, PaymentInitiateRequest, parse_model
from checkout_service.store import PurchaseStore

logger = logging.getLogger(__name__)

GENERIC_GATEWAY_MESSAGE = "Payment gateway could not initiate the payment"


@dataclass(frozen=True)
class InitiateResult:
    redirect_url: str
    purchase: Purchase


@dataclass(frozen=True)
class ReconcileResult:
    accepted: bool
    changed: bool
    identifier: str
    status: PurchaseStatus


class PaymentIntentService:
    """Creates purchase intents, starts gateway payments and reconciles IPNs.

    Initiation is a two-step saga:

    1. record the intent as a ``pending`` purchase;
    2. ask the gateway for a redirect URL.

    If step 2 fails the compensating action moves the purchase to ``failed``.
    All status writes, including that compensation, go through
    ``PurchaseStore.transition`` so a ``success`` delivered by an early IPN is
    never downgraded.
    """

    def __init__(self, store: PurchaseStore, gateway: GatewayClient, secret_key: str, publisher=None):
        if not secret_key:
            raise ConfigurationError("Gateway secret key is required to verify IPN signatures")
        self.store = store
        self.gateway = gateway
        self._secret_key = secret_key
        self.publisher = publisher or NullPublisher()

    async def initiate(self, request: Union[PaymentInitiateRequest, dict]) -> InitiateResult:
        if not isinstance(request, PaymentInitiateRequest):
            request = parse_model(PaymentInitiateRequest, request)

        purchase = await self._record_intent(request)

        try:
            redirect_url = await self._start_gateway_payment(request)
        except GatewayError as e:
            await self._compensate_failed_initiation(request.identifier, e.message)
            raise

        logger.info("Payment flow started for %s", request.identifier)
        return InitiateResult(redirect_url=redirect_url, purchase=purchase)

    async def reconcile(self, payload: Union[IpnPayload, dict]) -> ReconcileResult:
        if not isinstance(payload, IpnPayload):
            payload = parse_model(IpnPayload, payload, status_code=400)

        identifier = payload.identifier
        if not signature.verify(self._secret_key, payload.data.amount, identifier, payload.signature):
            logger.warning(
                "IPN signature mismatch for %s (status=%s); possible forged callback",
                identifier,
                payload.status,
            )
            raise SignatureError()

        purchase = await self.store.get(identifier)
        if purchase is None:
            logger.warning("IPN for unknown purchase %s rejected", identifier)
            raise NotFoundError(f"No purchase with identifier {identifier}", status_code=400)

        if signature.canonical_amount(purchase.amount) != signature.canonical_amount(payload.data.amount):
            logger.warning(
                "IPN amount %s differs from recorded amount %s for %s",
                payload.data.amount,
                purchase.amount,
                identifier,
            )

        target = PurchaseStatus.SUCCESS if payload.status == "success" else PurchaseStatus.FAILED
        try:
            result = await self.store.transition(identifier, target)
        except TransitionConflictError as e:
            logger.error("Conflicting IPN ignored: %s", e.message)
            return ReconcileResult(accepted=True, changed=False, identifier=identifier, status=e.current)

        if result.changed:
            await self.publisher.publish_purchase(result.purchase)
        else:
            logger.info("Duplicate IPN for %s acknowledged (status %s)", identifier, target.value)

        return ReconcileResult(
            accepted=True,
            changed=result.changed,
            identifier=identifier,
            status=result.purchase.status,
        )

    async def get_purchase(self, identifier: str) -> Purchase:
        purchase = await self.store.get(identifier)
        if purchase is None:
            raise NotFoundError(f"No purchase with identifier {identifier}")
        return purchase

    async def _record_intent(self, request: PaymentInitiateRequest) -> Purchase:
        # raises ConflictError on a duplicate identifier, before any gateway call
        return await self.store.create(
            identifier=request.identifier,
            customer_name=request.customer_name,
            customer_email=str(request.customer_email),
            customer_phone=request.customer_phone,
            amount=request.amount,
            currency=request.currency,
            products=request.products_snapshot(),
        )

    async def _start_gateway_payment(self, request: PaymentInitiateRequest) -> str:
        gateway_request = GatewayPaymentRequest(
            identifier=request.identifier,
            amount=request.amount,
            currency=request.currency,
            details=request.resolved_details(),
            customer_name=request.customer_name,
            customer_email=str(request.customer_email),
            customer_phone=request.customer_phone,
            ipn_url=request.ipn_url,
            success_url=request.success_url,
            cancel_url=request.cancel_url,
            site_logo=request.site_logo,
            checkout_theme=request.checkout_theme,
        )
        try:
            return await self.gateway.initiate(gateway_request)
        except GatewayError:
            raise
        except Exception as e:
            logger.exception("Unexpected error calling the gateway for %s", request.identifier)
            raise GatewayError(GENERIC_GATEWAY_MESSAGE, status_code=502) from e

    async def _compensate_failed_initiation(self, identifier: str, reason: str) -> None:
        try:
            result = await self.store.transition(identifier, PurchaseStatus.FAILED)
        except TransitionConflictError as e:
            logger.warning("Not marking %s as failed: %s", identifier, e.message)
            return
        except Exception:
            logger.exception("Compensating transition to failed did not complete for %s", identifier)
            return

        if result.changed:
            await self.publisher.publish_purchase(result.purchase, reason=reason)
