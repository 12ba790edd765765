"""Shared fixtures: explicit settings, in-memory database and a gateway double."""

import asyncio
import json

import pytest
from fastapi.testclient import TestClient

from tiendapay.common.config import Settings
from tiendapay.common.db import Base, build_session_factory
from tiendapay.services.payments import models  # noqa: F401  (registers tables)
from tiendapay.services.payments.main import create_app
from tiendapay.services.payments.schemas import (
    AcceptanceToken,
    FinancialInstitution,
    GatewayTransaction,
)
from tiendapay.services.payments.service import PaymentRecords
from tiendapay.services.payments.signing import compute_event_checksum


EVENT_SECRET = "test_events_secret"
INTEGRITY_SECRET = "test_integrity_secret"
REDIRECT_URL = "https://bank.example/pay/123"


def build_transaction(
    reference: str = "ORD-1",
    status: str = "PENDING",
    amount_in_cents: int = 5_000_000,
    transaction_id: str = "1234-1610641025-49201",
    redirect_url: str | None = REDIRECT_URL,
) -> dict:
    """Gateway `data` member for one PSE transaction."""

    extra = {"async_payment_url": redirect_url} if redirect_url is not None else {}
    return {
        "id": transaction_id,
        "status": status,
        "reference": reference,
        "amount_in_cents": amount_in_cents,
        "currency": "COP",
        "payment_method_type": "PSE",
        "payment_method": {"type": "PSE", "extra": extra},
    }


class FakeGateway:
    """Records calls and answers with canned gateway data."""

    def __init__(
        self,
        transaction: dict | None = None,
        error: Exception | None = None,
        acceptance_error: Exception | None = None,
        delay: float = 0.0,
    ):
        self.transaction = transaction if transaction is not None else build_transaction()
        self.error = error
        self.acceptance_error = acceptance_error
        self.delay = delay
        self.create_calls: list[dict] = []
        self.acceptance_calls = 0
        self.closed = False

    async def create_transaction(self, payload: dict) -> GatewayTransaction:
        self.create_calls.append(payload)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return GatewayTransaction.model_validate({**self.transaction, "reference": payload["reference"]})

    async def get_transaction(self, transaction_id: str) -> GatewayTransaction:
        if self.error is not None:
            raise self.error
        return GatewayTransaction.model_validate({**self.transaction, "id": transaction_id})

    async def list_payment_institutions(self) -> list[FinancialInstitution]:
        return [
            FinancialInstitution(financial_institution_code="1", financial_institution_name="Banco que aprueba"),
            FinancialInstitution(financial_institution_code="2", financial_institution_name="Banco que rechaza"),
        ]

    async def get_acceptance_token(self) -> AcceptanceToken:
        self.acceptance_calls += 1
        if self.acceptance_error is not None:
            raise self.acceptance_error
        return AcceptanceToken(acceptance_token="acc_tok_123", permalink="https://example.com/terms.pdf")

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        service_name="tiendapay-test",
        postgres_dsn="sqlite://",
        wompi_public_key="pub_test_key",
        wompi_private_key="prv_test_key",
        wompi_event_secret=EVENT_SECRET,
        wompi_integrity_secret=INTEGRITY_SECRET,
        wompi_env="sandbox",
        wompi_api_url=None,
        base_url="https://shop.example",
    )


@pytest.fixture
def session_factory():
    factory = build_session_factory("sqlite://")
    Base.metadata.create_all(factory.kw["bind"])
    return factory


@pytest.fixture
def records(session_factory):
    return PaymentRecords(session_factory)


@pytest.fixture
def fake_gateway():
    return FakeGateway


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def transaction_factory():
    return build_transaction


@pytest.fixture
def signed_event():
    """Build a raw webhook body plus its checksum header value."""

    def _build(transaction: dict, event: str = "transaction.updated", secret: str = EVENT_SECRET):
        body = {
            "event": event,
            "data": {"transaction": transaction},
            "environment": "test",
            "signature": {
                "properties": ["transaction.id", "transaction.status", "transaction.amount_in_cents"],
                "checksum": "",
            },
            "timestamp": 1530291411,
            "sent_at": "2018-07-20T16:45:05.000Z",
        }
        checksum = compute_event_checksum(body, secret)
        body["signature"]["checksum"] = checksum
        return json.dumps(body).encode("utf-8"), checksum

    return _build


@pytest.fixture
def checkout_body():
    return {
        "amount": 50000,
        "currency": "COP",
        "customerEmail": "a@b.com",
        "reference": "ORD-1",
        "customerData": {"userType": 0, "legalIdType": "CC", "legalId": "123", "bankCode": "1007"},
    }


@pytest.fixture
def client(settings, gateway, session_factory):
    app = create_app(settings, gateway=gateway, session_factory=session_factory)
    with TestClient(app) as test_client:
        yield test_client
