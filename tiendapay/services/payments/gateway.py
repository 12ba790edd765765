"""HTTP client for the Wompi REST API.

Writes authenticate with the merchant private key, reads with the public key.
Nothing here retries: a repeated transaction creation can charge twice, so the
caller decides what to do with a failure.
"""

from typing import Any
from urllib.parse import quote

import httpx
from pydantic import ValidationError

from tiendapay.common.config import Settings
from tiendapay.common.logging import logger
from tiendapay.common.metrics import gateway_failures_total, gateway_request_duration_seconds
from tiendapay.common.tracing import get_tracer
from tiendapay.services.payments.errors import GatewayError, IntegrationError
from tiendapay.services.payments.schemas import AcceptanceToken, FinancialInstitution, GatewayTransaction


tracer = get_tracer(__name__)


def _error_body(resp: httpx.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return resp.text or None


class WompiClient:
    """Thin async wrapper around the three gateway operations the checkout needs."""

    def __init__(self, settings: Settings, http_client: httpx.AsyncClient | None = None) -> None:
        self.api_url = settings.api_url
        self.public_key = settings.wompi_public_key
        self.private_key = settings.wompi_private_key
        self._client = http_client or httpx.AsyncClient(timeout=settings.gateway_timeout_seconds)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, operation: str, method: str, path: str, key: str, payload: dict | None = None) -> Any:
        """Send one request and return the `data` member of the JSON body."""

        headers = {"Authorization": f"Bearer {key}"}
        with tracer.start_as_current_span(f"wompi.{operation}") as span:
            with gateway_request_duration_seconds.labels(operation=operation).time():
                try:
                    resp = await self._client.request(method, f"{self.api_url}{path}", headers=headers, json=payload)
                except httpx.HTTPError as exc:
                    gateway_failures_total.labels(operation=operation, status_code="network").inc()
                    logger.error("gateway_unreachable operation=%s error=%s", operation, exc)
                    raise GatewayError("payment gateway unreachable", details=str(exc)) from exc
            span.set_attribute("http.status_code", resp.status_code)

        if not 200 <= resp.status_code < 300:
            body = _error_body(resp)
            gateway_failures_total.labels(operation=operation, status_code=str(resp.status_code)).inc()
            logger.error("gateway_rejected operation=%s status=%s body=%s", operation, resp.status_code, body)
            raise GatewayError(
                "payment gateway rejected the request",
                details=body,
                gateway_status=resp.status_code,
            )

        try:
            body = resp.json()
        except ValueError as exc:
            raise IntegrationError("payment gateway returned a non-JSON body", details=resp.text) from exc
        if not isinstance(body, dict) or "data" not in body:
            raise IntegrationError("payment gateway response has no data member", details=body)
        return body["data"]

    async def create_transaction(self, payload: dict) -> GatewayTransaction:
        """`POST /transactions` with the private key."""

        data = await self._request("create_transaction", "POST", "/transactions", self.private_key, payload)
        try:
            return GatewayTransaction.model_validate(data)
        except ValidationError as exc:
            raise IntegrationError("malformed transaction in gateway response", details=data) from exc

    async def get_transaction(self, transaction_id: str) -> GatewayTransaction:
        """`GET /transactions/{id}` with the public key."""

        data = await self._request(
            "get_transaction", "GET", f"/transactions/{quote(transaction_id, safe='')}", self.public_key
        )
        try:
            return GatewayTransaction.model_validate(data)
        except ValidationError as exc:
            raise IntegrationError("malformed transaction in gateway response", details=data) from exc

    async def list_payment_institutions(self) -> list[FinancialInstitution]:
        """`GET /pse/financial_institutions` with the public key."""

        data = await self._request("list_payment_institutions", "GET", "/pse/financial_institutions", self.public_key)
        try:
            return [FinancialInstitution.model_validate(item) for item in data]
        except (TypeError, ValidationError) as exc:
            raise IntegrationError("malformed institution list in gateway response", details=data) from exc

    async def get_acceptance_token(self) -> AcceptanceToken:
        """Presigned acceptance token from `GET /merchants/{public_key}`."""

        data = await self._request(
            "get_acceptance_token", "GET", f"/merchants/{quote(self.public_key, safe='')}", self.public_key
        )
        try:
            return AcceptanceToken.model_validate(data["presigned_acceptance"])
        except (KeyError, TypeError, ValidationError) as exc:
            raise IntegrationError("merchant response has no presigned acceptance", details=data) from exc
