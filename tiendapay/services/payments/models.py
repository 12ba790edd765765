"""Payments database models.

The gateway owns the transaction ledger; these rows only mirror what it has
reported, plus the inbox that deduplicates webhook deliveries.
"""

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, String, func
from sqlalchemy.orm import Mapped, mapped_column

from tiendapay.common.db import Base


class PaymentTransaction(Base):
    """Latest known gateway state for one order reference."""

    __tablename__ = "payment_transactions"

    reference: Mapped[str] = mapped_column(String, primary_key=True)
    # Null while the reference is reserved and the gateway call is in flight.
    gateway_transaction_id: Mapped[str | None] = mapped_column(String, unique=True, index=True, nullable=True)
    amount_in_cents: Mapped[int] = mapped_column(BigInteger)
    currency: Mapped[str] = mapped_column(String(3))
    customer_email: Mapped[str] = mapped_column(String)
    status: Mapped[str] = mapped_column(String, index=True)
    order_status: Mapped[str] = mapped_column(String, index=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )


class WebhookInbox(Base):
    """One row per (transaction, status) already applied from a webhook."""

    __tablename__ = "webhook_inbox"

    transaction_id: Mapped[str] = mapped_column(String, primary_key=True)
    status: Mapped[str] = mapped_column(String, primary_key=True)
    event: Mapped[str] = mapped_column(String)
    received_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
