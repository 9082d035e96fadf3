class CheckoutError(Exception):
    """Base class for errors turned into ``{"message": ...}`` responses."""

    status_code = 400
    default_message = "Request could not be processed"

    def __init__(self, message: str | None = None, *, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(CheckoutError):
    status_code = 422
    default_message = "Invalid request"


class ConflictError(CheckoutError):
    status_code = 409
    default_message = "A purchase with this identifier already exists"


class GatewayError(CheckoutError):
    status_code = 400
    default_message = "Payment gateway could not initiate the payment"


class SignatureError(CheckoutError):
    default_message = "Invalid IPN signature"


class NotFoundError(CheckoutError):
    status_code = 404
    default_message = "Purchase not found"


class TransitionConflictError(CheckoutError):
    """A terminal purchase was asked to move to a different terminal status."""

    status_code = 409

    def __init__(self, identifier: str, current, target):
        self.identifier = identifier
        self.current = current
        self.target = target
        super().__init__(
            f"Purchase {identifier} is already {current.value}; refusing transition to {target.value}"
        )


class ConfigurationError(Exception):
    """Raised at startup when required settings are missing."""
