import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, CheckConstraint, Column, DateTime, Enum, Integer, Numeric, String, Text
from sqlalchemy.dialects.postgresql import JSONB

from checkout_service.database import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class PurchaseStatus(enum.Enum):
    PENDING = "pending"
    SUCCESS = "success"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not PurchaseStatus.PENDING


class Purchase(Base):
    __tablename__ = "purchases"
    __table_args__ = (CheckConstraint("amount >= 0", name="purchase_amount_non_negative"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    identifier = Column(Text, unique=True, nullable=False, index=True)
    customer_name = Column(Text, nullable=False)
    customer_email = Column(Text, nullable=False)
    customer_phone = Column(Text, nullable=True)
    # money => NUMERIC, never FLOAT
    amount = Column(Numeric(10, 2, asdecimal=True), nullable=False)
    currency = Column(String(3), nullable=False, default="AOA")
    products = Column(JSON().with_variant(JSONB(), "postgresql"), nullable=False)
    status = Column(
        Enum(
            PurchaseStatus,
            name="purchase_status",
            native_enum=False,
            length=20,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        default=PurchaseStatus.PENDING,
        nullable=False,
    )
    created_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)

    def __repr__(self) -> str:
        return f"Purchase(identifier={self.identifier!r}, status={self.status!r})"
