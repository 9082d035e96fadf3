import pytest

from checkout_service.errors import TransitionConflictError
from checkout_service.models import PurchaseStatus
from checkout_service.transitions import TransitionOutcome, apply


@pytest.mark.parametrize("target", [PurchaseStatus.SUCCESS, PurchaseStatus.FAILED])
def test_pending_moves_to_any_terminal_status(target):
    assert apply("ORDER_1", PurchaseStatus.PENDING, target) is TransitionOutcome.APPLIED


@pytest.mark.parametrize("status", [PurchaseStatus.SUCCESS, PurchaseStatus.FAILED])
def test_reapplying_terminal_status_is_a_duplicate(status):
    assert apply("ORDER_1", status, status) is TransitionOutcome.DUPLICATE


@pytest.mark.parametrize(
    "current, target",
    [
        (PurchaseStatus.SUCCESS, PurchaseStatus.FAILED),
        (PurchaseStatus.FAILED, PurchaseStatus.SUCCESS),
    ],
)
def test_terminal_status_is_never_overwritten(current, target):
    with pytest.raises(TransitionConflictError) as exc_info:
        apply("ORDER_1", current, target)

    assert exc_info.value.current is current
    assert exc_info.value.target is target
    assert "ORDER_1" in exc_info.value.message


def test_pending_is_not_a_target():
    with pytest.raises(ValueError):
        apply("ORDER_1", PurchaseStatus.PENDING, PurchaseStatus.PENDING)
