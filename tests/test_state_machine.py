"""Unit tests for transaction status guardrails."""

import pytest

from tiendapay.common.state_machine import order_status_for, validate_transition


pytestmark = pytest.mark.unit


@pytest.mark.parametrize("new", ["APPROVED", "DECLINED", "VOIDED", "ERROR"])
def test_pending_can_settle(new):
    validate_transition("PENDING", new)


def test_approved_can_be_voided():
    validate_transition("APPROVED", "VOIDED")


@pytest.mark.parametrize(
    "current, new",
    [
        ("DECLINED", "APPROVED"),
        ("APPROVED", "PENDING"),
        ("VOIDED", "APPROVED"),
        ("ERROR", "PENDING"),
        ("PENDING", "PENDING"),
    ],
)
def test_invalid_transition(current, new):
    """Final statuses never move; a late delivery must not roll the order back."""

    with pytest.raises(ValueError):
        validate_transition(current, new)


def test_unknown_current_status_rejects_everything():
    with pytest.raises(ValueError):
        validate_transition("SETTLED", "APPROVED")


@pytest.mark.parametrize(
    "status, order_status",
    [
        ("PENDING", "AWAITING_PAYMENT"),
        ("APPROVED", "PAID"),
        ("DECLINED", "PAYMENT_FAILED"),
        ("VOIDED", "PAYMENT_FAILED"),
        ("ERROR", "PAYMENT_FAILED"),
    ],
)
def test_order_status_mapping(status, order_status):
    assert order_status_for(status) == order_status
