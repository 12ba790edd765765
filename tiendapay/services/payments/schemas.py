"""Request, gateway and webhook schemas for the payment flow."""

from decimal import Decimal
from enum import Enum, IntEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class CustomerType(IntEnum):
    """PSE `user_type`: 0 for a natural person, 1 for a legal entity."""

    NATURAL = 0
    LEGAL = 1


class LegalIdType(str, Enum):
    CC = "CC"
    CE = "CE"
    NIT = "NIT"
    PP = "PP"
    TI = "TI"
    DNI = "DNI"


class TransactionStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    DECLINED = "DECLINED"
    VOIDED = "VOIDED"
    ERROR = "ERROR"


class CustomerData(BaseModel):
    """Payer details the bank-redirect method needs."""

    model_config = ConfigDict(populate_by_name=True)

    user_type: CustomerType = Field(default=CustomerType.NATURAL, alias="userType")
    legal_id_type: LegalIdType = Field(alias="legalIdType")
    legal_id: str = Field(min_length=1, alias="legalId")
    bank_code: str = Field(min_length=1, alias="bankCode")
    description: str | None = None

    @field_validator("user_type", mode="before")
    @classmethod
    def _user_type_by_name(cls, value: Any) -> Any:
        if isinstance(value, str) and value.upper() in CustomerType.__members__:
            return CustomerType[value.upper()]
        return value


class PaymentRequest(BaseModel):
    """Payload accepted by `POST /api/pagos/crear-transaccion`.

    Required fields are optional here; the initiator validates them so the
    storefront always gets the same `{error, details}` shape.
    """

    model_config = ConfigDict(populate_by_name=True)

    amount: Decimal | None = None
    currency: str = "COP"
    customer_email: str | None = Field(default=None, alias="customerEmail")
    reference: str | None = None
    customer_data: CustomerData | None = Field(default=None, alias="customerData")
    acceptance_token: str | None = None

    @field_validator("currency", mode="before")
    @classmethod
    def _default_currency(cls, value: Any) -> Any:
        if value is None or value == "":
            return "COP"
        return value.upper() if isinstance(value, str) else value


class PaymentMethodExtra(BaseModel):
    model_config = ConfigDict(extra="allow")

    async_payment_url: str | None = None


class PaymentMethod(BaseModel):
    model_config = ConfigDict(extra="allow")

    type: str | None = None
    extra: PaymentMethodExtra | None = None


class GatewayTransaction(BaseModel):
    """The gateway's view of one transaction. Unknown gateway fields are kept."""

    model_config = ConfigDict(extra="allow")

    id: str
    status: TransactionStatus
    reference: str
    amount_in_cents: int
    currency: str | None = None
    payment_method: PaymentMethod | None = None

    @property
    def redirect_url(self) -> str | None:
        if self.payment_method is None or self.payment_method.extra is None:
            return None
        return self.payment_method.extra.async_payment_url or None


class FinancialInstitution(BaseModel):
    model_config = ConfigDict(extra="allow")

    financial_institution_code: str
    financial_institution_name: str


class AcceptanceToken(BaseModel):
    model_config = ConfigDict(extra="allow")

    acceptance_token: str
    permalink: str | None = None
    type: str | None = None


class InitiationResult(BaseModel):
    """What the storefront needs to send the customer to the bank."""

    redirect_url: str
    gateway_transaction_id: str
    transaction: GatewayTransaction


class EventSignature(BaseModel):
    properties: list[str]
    # The X-Event-Checksum header is what gets verified; the body copy is optional.
    checksum: str | None = None


class WebhookEvent(BaseModel):
    """A verified gateway callback."""

    model_config = ConfigDict(extra="allow")

    event: str
    data: dict[str, Any]
    environment: str | None = None
    signature: EventSignature | None = None
    timestamp: int | None = None
    sent_at: str | None = None

    def transaction(self) -> GatewayTransaction:
        return GatewayTransaction.model_validate(self.data["transaction"])
