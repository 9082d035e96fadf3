"""Purchase status state machine.

``pending`` is the only non-terminal status; ``success`` and ``failed`` are
absorbing. Every status write goes through :func:`apply`.
"""
import enum

from checkout_service.errors import TransitionConflictError
from checkout_service.models import PurchaseStatus


class TransitionOutcome(enum.Enum):
    APPLIED = "applied"
    DUPLICATE = "duplicate"


def apply(identifier: str, current: PurchaseStatus, target: PurchaseStatus) -> TransitionOutcome:
    if target is PurchaseStatus.PENDING:
        raise ValueError("pending is not a valid transition target")
    if current is target:
        return TransitionOutcome.DUPLICATE
    if not current.is_terminal:
        return TransitionOutcome.APPLIED
    raise TransitionConflictError(identifier, current, target)
