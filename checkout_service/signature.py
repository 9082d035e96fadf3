"""HMAC signatures for gateway IPN callbacks.

The gateway signs ``amount + identifier`` (no delimiter) with the merchant
secret key using HMAC-SHA256 and sends the digest as uppercase hex. The
amount is rendered the way the gateway prints a JSON number: no trailing
zeros, no exponent (``5000.00`` -> ``"5000"``, ``12.50`` -> ``"12.5"``).
IPN amounts are only accepted as JSON numbers; see ``schemas.IpnData``.
"""
import hashlib
import hmac
from decimal import Decimal


def canonical_amount(amount) -> str:
    if isinstance(amount, float):
        raise TypeError("amount must be a Decimal, int or str, not float")
    value = Decimal(str(amount)) if not isinstance(amount, Decimal) else amount
    if value == value.to_integral_value():
        return format(value.quantize(Decimal(1)), "f")
    return format(value.normalize(), "f")


def sign(secret: str, amount, identifier: str) -> str:
    message = f"{canonical_amount(amount)}{identifier}"
    digest = hmac.new(secret.encode("utf-8"), message.encode("utf-8"), hashlib.sha256)
    return digest.hexdigest().upper()


def verify(secret: str, amount, identifier: str, candidate: str) -> bool:
    if not candidate:
        return False
    expected = sign(secret, amount, identifier)
    # no case folding: the gateway always sends uppercase hex
    return hmac.compare_digest(expected.encode("utf-8"), candidate.encode("utf-8"))
