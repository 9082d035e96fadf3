import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

import httpx

from checkout_service.errors import GatewayError

logger = logging.getLogger(__name__)

UNREACHABLE_MESSAGE = "Payment gateway is unavailable, please try again later"

@dataclass(frozen=True)
class GatewayPaymentRequest:
    identifier: str
    amount: Decimal
    currency: str
    details: str
    customer_name: str
    customer_email: str
    customer_phone: Optional[str]
    ipn_url: str
    success_url: str
    cancel_url: str
    site_logo: Optional[str] = None
    checkout_theme: Optional[str] = None

class GatewayClient:
    """Outbound client for the ViserPay payment-initiation endpoint."""

    def __init__(self, http_client: httpx.AsyncClient, *, initiate_url: str, public_key: str):
        self._http = http_client
        self._initiate_url = initiate_url
        self._public_key = public_key

    def build_payload(self, request: GatewayPaymentRequest) -> dict:
        return {
            "public_key": self._public_key,
            "identifier": request.identifier,
            "currency": request.currency,
            "amount": f"{request.amount:.2f}",
            "details": request.details,
            "ipn_url": request.ipn_url,
            "success_url": request.success_url,
            "cancel_url": request.cancel_url,
            "site_logo": request.site_logo or "",
            "checkout_theme": request.checkout_theme or "",
            "customer_name": request.customer_name,
            "customer_email": request.customer_email,
            "customer_phone": request.customer_phone or "",
        }

    async def initiate(self, request: GatewayPaymentRequest) -> str:
        """Start a payment and return the gateway's redirect URL.

        Raises GatewayError for declines (status 400) and for timeouts,
        transport failures or unreadable replies (status 502).
        """
        try:
            response = await self._http.post(self._initiate_url, json=self.build_payload(request))
        except httpx.TimeoutException as e:
            logger.warning("Gateway timed out initiating %s: %s", request.identifier, e)
            raise GatewayError("Payment gateway timed out", status_code=502) from e
        except httpx.HTTPError as e:
            logger.warning("Gateway unreachable initiating %s: %s", request.identifier, e)
            raise GatewayError(UNREACHABLE_MESSAGE, status_code=502) from e

        try:
            data = response.json()
        except ValueError:
            data = None
        if not isinstance(data, dict):
            logger.warning(
                "Gateway returned %s with a non-JSON body for %s", response.status_code, request.identifier
            )
            raise GatewayError(UNREACHABLE_MESSAGE, status_code=502)

        url = data.get("url")
        if response.is_success and data.get("success") == "ok" and url:
            return url

        message = _error_message(data.get("message"))
        logger.info(
            "Gateway declined %s (http %s): %s", request.identifier, response.status_code, message
        )
        status_code = 502 if response.status_code >= 500 else 400
        raise GatewayError(message, status_code=status_code)


def _error_message(raw) -> Optional[str]:
    if isinstance(raw, str):
        return raw.strip() or None
    if isinstance(raw, dict):
        raw = list(raw.values())
    if isinstance(raw, (list, tuple)):
        parts = [part for part in (_error_message(item) for item in raw) if part]
        return "; ".join(parts) or None
    return None
