import json
from datetime import datetime
from decimal import Decimal
from typing import Any, List, Optional

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    EmailStr,
    Field,
    HttpUrl,
    TypeAdapter,
    ValidationError as PydanticValidationError,
    field_validator,
)

from checkout_service.errors import ValidationError
from checkout_service.models import PurchaseStatus


_http_url = TypeAdapter(HttpUrl)


class ProductItem(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(..., min_length=1, examples=["Camiseta"])
    price: Decimal = Field(
        ...,
        gt=0,
        max_digits=10,
        decimal_places=2,
        validation_alias=AliasChoices("price", "unit_price"),
        examples=["5000.00"],
    )
    quantity: int = Field(..., gt=0, strict=True, examples=[1])

    def snapshot(self) -> dict:
        # prices kept as strings so the stored JSON round-trips exactly
        return {"name": self.name, "price": str(self.price), "quantity": self.quantity}


class PaymentInitiateRequest(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True)

    customer_name: str = Field(..., min_length=1, examples=["Maria Silva"])
    customer_email: EmailStr
    customer_phone: Optional[str] = None
    amount: Decimal = Field(..., gt=0, max_digits=10, decimal_places=2, examples=["5000.00"])
    currency: str = Field("AOA", pattern=r"^[A-Z]{3}$")
    products: List[ProductItem] = Field(..., min_length=1)
    identifier: str = Field(..., min_length=1, max_length=255, examples=["ORDER_1"])
    ipn_url: str
    success_url: str
    cancel_url: str
    details: Optional[str] = None
    site_logo: Optional[str] = None
    checkout_theme: Optional[str] = "light"

    @field_validator("ipn_url", "success_url", "cancel_url")
    @classmethod
    def check_callback_url(cls, v: str) -> str:
        # validated as http(s) URLs but forwarded to the gateway exactly as sent
        try:
            _http_url.validate_python(v)
        except PydanticValidationError as e:
            raise ValueError("must be a valid http(s) URL") from e
        return v

    def products_snapshot(self) -> List[dict]:
        return [product.snapshot() for product in self.products]

    def resolved_details(self) -> str:
        if self.details:
            return self.details
        return f"Purchase of {len(self.products)} product(s)"


class InitiateResponse(BaseModel):
    success: str = "ok"
    url: str


class IpnData(BaseModel):
    amount: Decimal = Field(..., ge=0)

    @field_validator("amount", mode="before")
    @classmethod
    def require_json_number(cls, v):
        # a quoted amount would be signed verbatim ("5000.00"), not as a number ("5000")
        if isinstance(v, (str, bool)):
            raise ValueError("amount must be a JSON number")
        return v


class IpnPayload(BaseModel):
    status: str
    signature: str = Field(..., min_length=1)
    identifier: str = Field(..., min_length=1)
    data: IpnData


class IpnAcknowledgement(BaseModel):
    message: str = "IPN received"
    identifier: str
    status: PurchaseStatus


class PurchaseRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    identifier: str
    customer_name: str
    customer_email: str
    customer_phone: Optional[str]
    amount: Decimal
    currency: str
    products: List[dict]
    status: PurchaseStatus
    created_at: datetime
    updated_at: datetime


def load_json_body(raw: bytes, *, status_code: int | None = None) -> Any:
    """Decode a request body keeping every JSON number with a fraction as Decimal."""
    try:
        return json.loads(raw, parse_float=Decimal)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise ValidationError("Request body must be valid JSON", status_code=status_code) from e


def describe_errors(exc: PydanticValidationError) -> str:
    parts = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err["loc"])
        parts.append(f"{location}: {err['msg']}" if location else err["msg"])
    return "; ".join(parts)


def parse_model(model_cls, data: Any, *, status_code: int | None = None):
    try:
        return model_cls.model_validate(data)
    except PydanticValidationError as e:
        raise ValidationError(describe_errors(e), status_code=status_code) from e
