"""Payment flow: transaction initiation and webhook-driven status mirroring.

The initiator validates a checkout request, signs it and hands it to the
gateway; the receiver authenticates gateway callbacks and mirrors the reported
transaction status onto the local order record. The gateway is the source of
truth for transaction state; nothing here assumes local success implies
gateway success.
"""

import json
from collections.abc import Callable

from pydantic import ValidationError
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError

from tiendapay.common.logging import logger, reference_ctx, transaction_id_ctx
from tiendapay.common.metrics import (
    duplicate_webhooks_skipped_total,
    payment_transactions_total,
    webhook_events_total,
)
from tiendapay.common.state_machine import ALLOWED_TRANSITIONS, order_status_for, validate_transition
from tiendapay.services.payments.errors import (
    DuplicateReferenceError,
    GatewayError,
    IntegrationError,
    PaymentValidationError,
    SignatureError,
)
from tiendapay.services.payments.models import PaymentTransaction, WebhookInbox
from tiendapay.services.payments.schemas import (
    GatewayTransaction,
    InitiationResult,
    PaymentRequest,
    WebhookEvent,
)
from tiendapay.services.payments.signing import EventSignatureVerifier, IntegritySigner, to_minor_units


DEFAULT_PAYMENT_DESCRIPTION = "Pago mediante PSE"


class PaymentRecords:
    """Local mirror of gateway transactions, keyed by order reference."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def exists(self, reference: str) -> bool:
        with self.session_factory() as db:
            return db.get(PaymentTransaction, reference) is not None

    def get(self, reference: str) -> PaymentTransaction | None:
        with self.session_factory() as db:
            return db.get(PaymentTransaction, reference)

    def reserve(self, reference: str, amount_in_cents: int, currency: str, customer_email: str) -> None:
        """Claim a reference before the gateway is called.

        The primary key makes the claim atomic: a second submit of the same
        reference, concurrent or not, fails here with DuplicateReferenceError.
        """

        with self.session_factory() as db:
            db.add(
                PaymentTransaction(
                    reference=reference,
                    gateway_transaction_id=None,
                    amount_in_cents=amount_in_cents,
                    currency=currency,
                    customer_email=customer_email,
                    status="PENDING",
                    order_status=order_status_for("PENDING"),
                )
            )
            try:
                db.commit()
            except IntegrityError as exc:
                db.rollback()
                raise DuplicateReferenceError(
                    "reference already has a transaction", details={"reference": reference}
                ) from exc

    def release(self, reference: str) -> None:
        """Drop a reservation the gateway never turned into a transaction."""

        with self.session_factory() as db:
            db.execute(
                delete(PaymentTransaction).where(
                    PaymentTransaction.reference == reference,
                    PaymentTransaction.gateway_transaction_id.is_(None),
                )
            )
            db.commit()

    def attach(self, reference: str, transaction: GatewayTransaction) -> None:
        """Link the reserved reference to the transaction the gateway created."""

        new_status = transaction.status.value
        with self.session_factory() as db:
            record = db.get(PaymentTransaction, reference)
            if record is None:
                raise IntegrationError(
                    "gateway transaction for an unreserved reference",
                    details={"reference": reference, "transaction": transaction.id},
                )
            record.gateway_transaction_id = transaction.id
            record.amount_in_cents = transaction.amount_in_cents
            # A webhook may have already moved the status past the create response.
            if record.status != new_status and new_status in ALLOWED_TRANSITIONS.get(record.status, set()):
                record.status = new_status
                record.order_status = order_status_for(new_status)
            db.commit()

    def pending(self, limit: int = 100) -> list[PaymentTransaction]:
        with self.session_factory() as db:
            rows = db.execute(
                select(PaymentTransaction)
                .where(PaymentTransaction.status == "PENDING")
                .order_by(PaymentTransaction.created_at)
                .limit(limit)
            )
            return list(rows.scalars())

    def _inbox_seen(self, db, transaction_id: str, status: str) -> bool:
        return db.get(WebhookInbox, (transaction_id, status)) is not None

    def _mark_inbox(self, db, transaction_id: str, status: str, event: str) -> None:
        db.add(WebhookInbox(transaction_id=transaction_id, status=status, event=event))

    def apply_status(self, transaction: GatewayTransaction, event: str) -> str:
        """Mirror a gateway-reported status onto the order.

        Returns the outcome: ``applied``, ``duplicate``, ``stale`` or
        ``unknown_reference``. Deliveries are deduplicated by transaction id
        and status.
        """

        new_status = transaction.status.value
        with self.session_factory() as db:
            if self._inbox_seen(db, transaction.id, new_status):
                logger.info("duplicate webhook skipped transaction=%s status=%s", transaction.id, new_status)
                duplicate_webhooks_skipped_total.inc()
                return "duplicate"

            record = db.get(PaymentTransaction, transaction.reference)
            if record is not None and record.gateway_transaction_id is None:
                # Delivered before the create response was attached.
                record.gateway_transaction_id = transaction.id
            if record is None or record.gateway_transaction_id != transaction.id:
                logger.warning(
                    "webhook for unknown transaction reference=%s transaction=%s",
                    transaction.reference,
                    transaction.id,
                )
                self._mark_inbox(db, transaction.id, new_status, event)
                db.commit()
                return "unknown_reference"

            try:
                validate_transition(record.status, new_status)
            except ValueError as exc:
                # Late or out-of-order delivery; the stored status is newer.
                logger.warning("stale webhook ignored reference=%s %s", record.reference, exc)
                self._mark_inbox(db, transaction.id, new_status, event)
                db.commit()
                return "stale"

            previous = record.order_status
            record.status = new_status
            record.order_status = order_status_for(new_status)
            self._mark_inbox(db, transaction.id, new_status, event)
            db.commit()
            logger.info(
                "order status updated reference=%s %s -> %s",
                record.reference,
                previous,
                record.order_status,
            )
            return "applied"


def build_transaction_payload(
    request: PaymentRequest,
    amount_in_cents: int,
    integrity: str,
    acceptance_token: str,
    redirect_url: str,
) -> dict:
    """Assemble the bank-redirect `POST /transactions` body."""

    customer = request.customer_data
    return {
        "acceptance_token": acceptance_token,
        "amount_in_cents": amount_in_cents,
        "currency": request.currency,
        "customer_email": request.customer_email,
        "payment_method": {
            "type": "PSE",
            "user_type": int(customer.user_type),
            "user_legal_id_type": customer.legal_id_type.value,
            "user_legal_id": customer.legal_id,
            "financial_institution_code": customer.bank_code,
            "payment_description": customer.description or DEFAULT_PAYMENT_DESCRIPTION,
        },
        "reference": request.reference,
        "redirect_url": redirect_url,
        "signature": {"integrity": integrity},
    }


class TransactionInitiator:
    """Turns a checkout request into a gateway transaction and a bank redirect."""

    def __init__(
        self,
        gateway,
        signer: IntegritySigner,
        confirmation_url: str,
        records: PaymentRecords | None = None,
    ) -> None:
        self.gateway = gateway
        self.signer = signer
        self.confirmation_url = confirmation_url
        self.records = records

    def validate(self, request: PaymentRequest) -> None:
        """Reject incomplete requests before anything touches the network."""

        problems = {}
        if request.amount is None:
            problems["amount"] = "required"
        elif request.amount <= 0:
            problems["amount"] = "must be greater than 0"
        if not (request.customer_email or "").strip():
            problems["customerEmail"] = "required"
        if not (request.reference or "").strip():
            problems["reference"] = "required"
        if len(request.currency) != 3:
            problems["currency"] = "must be an ISO 4217 code"
        if request.customer_data is None:
            problems["customerData"] = "required"
        if problems:
            payment_transactions_total.labels(outcome="invalid").inc()
            raise PaymentValidationError("missing or invalid fields", details=problems)

    async def _build_payload(self, request: PaymentRequest, amount_in_cents: int) -> dict:
        integrity = self.signer.sign(request.reference, amount_in_cents, request.currency)
        acceptance_token = request.acceptance_token
        if not acceptance_token:
            acceptance_token = (await self.gateway.get_acceptance_token()).acceptance_token

        return build_transaction_payload(
            request,
            amount_in_cents=amount_in_cents,
            integrity=integrity,
            acceptance_token=acceptance_token,
            redirect_url=self.confirmation_url,
        )

    async def initiate(self, request: PaymentRequest) -> InitiationResult:
        self.validate(request)
        reference = request.reference
        reference_ctx.set(reference)

        amount_in_cents = to_minor_units(request.amount)
        if self.records is not None:
            try:
                self.records.reserve(reference, amount_in_cents, request.currency, request.customer_email)
            except DuplicateReferenceError:
                payment_transactions_total.labels(outcome="duplicate").inc()
                raise

        try:
            payload = await self._build_payload(request, amount_in_cents)
        except (GatewayError, IntegrationError):
            payment_transactions_total.labels(outcome="gateway_error").inc()
            if self.records is not None:
                self.records.release(reference)
            raise

        try:
            transaction = await self.gateway.create_transaction(payload)
        except GatewayError as exc:
            payment_transactions_total.labels(outcome="gateway_error").inc()
            # A 4xx means the gateway refused; anything else may still have created it.
            if self.records is not None and exc.gateway_status is not None and exc.gateway_status < 500:
                self.records.release(reference)
            raise
        except IntegrationError:
            payment_transactions_total.labels(outcome="gateway_error").inc()
            raise
        transaction_id_ctx.set(transaction.id)

        if self.records is not None:
            self.records.attach(reference, transaction)

        redirect_url = transaction.redirect_url
        if redirect_url is None:
            payment_transactions_total.labels(outcome="integration_error").inc()
            logger.error("gateway transaction has no async_payment_url transaction=%s", transaction.id)
            raise IntegrationError(
                "gateway response has no payment redirect URL",
                details=transaction.model_dump(mode="json"),
            )

        payment_transactions_total.labels(outcome="created").inc()
        logger.info("transaction created amount_in_cents=%s status=%s", amount_in_cents, transaction.status.value)
        return InitiationResult(
            redirect_url=redirect_url,
            gateway_transaction_id=transaction.id,
            transaction=transaction,
        )


class WebhookReceiver:
    """Authenticates gateway callbacks and dispatches them by event type."""

    def __init__(self, verifier: EventSignatureVerifier, records: PaymentRecords | None = None) -> None:
        self.verifier = verifier
        self.records = records
        self.handlers: dict[str, Callable[[WebhookEvent], str]] = {
            "transaction.updated": self._on_transaction_updated,
        }

    def register_handler(self, event_type: str, handler: Callable[[WebhookEvent], str]) -> None:
        self.handlers[event_type] = handler

    def verify(self, raw_body: bytes, checksum: str | None) -> WebhookEvent:
        """Return the typed event, or raise SignatureError before trusting any field."""

        try:
            body = json.loads(raw_body)
        except ValueError:
            body = None
        if not isinstance(body, dict) or not self.verifier.verify(body, checksum):
            webhook_events_total.labels(event="unverified", outcome="rejected").inc()
            logger.warning("webhook signature rejected checksum_present=%s", bool(checksum))
            raise SignatureError("invalid signature")
        try:
            return WebhookEvent.model_validate(body)
        except ValidationError as exc:
            raise IntegrationError("malformed webhook event", details=exc.errors()) from exc

    def handle(self, raw_body: bytes, checksum: str | None) -> str:
        """Verify, then dispatch one delivery. Unknown event types are ignored."""

        event = self.verify(raw_body, checksum)
        handler = self.handlers.get(event.event)
        if handler is None:
            logger.info("webhook event ignored event=%s", event.event)
            webhook_events_total.labels(event=event.event, outcome="ignored").inc()
            return "ignored"
        try:
            outcome = handler(event)
        except Exception:
            webhook_events_total.labels(event=event.event, outcome="error").inc()
            logger.exception("webhook processing failed event=%s", event.event)
            raise
        webhook_events_total.labels(event=event.event, outcome=outcome).inc()
        return outcome

    def _on_transaction_updated(self, event: WebhookEvent) -> str:
        try:
            transaction = event.transaction()
        except (KeyError, ValidationError) as exc:
            raise IntegrationError("webhook event has no valid transaction") from exc
        reference_ctx.set(transaction.reference)
        transaction_id_ctx.set(transaction.id)
        logger.info("transaction updated status=%s", transaction.status.value)
        if self.records is None:
            return "verified"
        return self.records.apply_status(transaction, event.event)
