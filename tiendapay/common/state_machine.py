"""Gateway transaction status transitions mirrored by the payments service."""

ALLOWED_TRANSITIONS: dict[str, set[str]] = {
    "PENDING": {"APPROVED", "DECLINED", "VOIDED", "ERROR"},
    "APPROVED": {"VOIDED"},
    "DECLINED": set(),
    "VOIDED": set(),
    "ERROR": set(),
}

ORDER_STATUS_BY_TRANSACTION_STATUS: dict[str, str] = {
    "PENDING": "AWAITING_PAYMENT",
    "APPROVED": "PAID",
    "DECLINED": "PAYMENT_FAILED",
    "VOIDED": "PAYMENT_FAILED",
    "ERROR": "PAYMENT_FAILED",
}


def validate_transition(current: str, new: str) -> None:
    """Raise when a transition is not allowed by the state machine."""

    if new not in ALLOWED_TRANSITIONS.get(current, set()):
        raise ValueError(f"Invalid transition: {current} -> {new}")


def order_status_for(transaction_status: str) -> str:
    return ORDER_STATUS_BY_TRANSACTION_STATUS[transaction_status]
