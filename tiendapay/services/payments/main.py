"""HTTP surface for the storefront checkout and gateway webhooks.

Run with ``uvicorn tiendapay.services.payments.main:create_app --factory``.
"""

from contextlib import asynccontextmanager
from time import perf_counter
from uuid import uuid4

from fastapi import APIRouter, FastAPI, Header, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from tiendapay.common.config import Settings, get_settings
from tiendapay.common.db import build_session_factory
from tiendapay.common.logging import configure_logging, logger, trace_id_ctx
from tiendapay.common.metrics import http_request_duration_seconds, http_requests_total, metrics_response
from tiendapay.common.startup import log_startup_config
from tiendapay.common.tracing import instrument_app, setup_tracing
from tiendapay.services.payments.errors import PaymentError
from tiendapay.services.payments.gateway import WompiClient
from tiendapay.services.payments.schemas import PaymentRequest
from tiendapay.services.payments.service import PaymentRecords, TransactionInitiator, WebhookReceiver
from tiendapay.services.payments.signing import EventSignatureVerifier, IntegritySigner


STARTUP_FIELDS = [
    "wompi_env",
    "wompi_api_url",
    "wompi_public_key",
    "wompi_private_key",
    "wompi_event_secret",
    "wompi_integrity_secret",
    "base_url",
    "postgres_dsn",
    "gateway_timeout_seconds",
    "otel_exporter_otlp_endpoint",
]


def build_router(
    settings: Settings,
    gateway: WompiClient,
    initiator: TransactionInitiator,
    receiver: WebhookReceiver,
) -> APIRouter:
    router = APIRouter(prefix="/api/pagos")

    @router.get("/config")
    def public_config():
        """Public key for the storefront payment widget."""

        return {"publicKey": settings.wompi_public_key}

    @router.get("/acceptance-token")
    async def acceptance_token():
        token = await gateway.get_acceptance_token()
        return {"acceptanceToken": token.acceptance_token, "permalink": token.permalink}

    @router.post("/crear-transaccion")
    async def create_transaction(req: PaymentRequest):
        """Create a PSE transaction and return the bank redirect URL."""

        result = await initiator.initiate(req)
        return {
            "success": True,
            # Gateway envelope kept as-is; the storefront reads data.data.payment_method.
            "data": {"data": result.transaction.model_dump(mode="json")},
            "redirectUrl": result.redirect_url,
            "transactionId": result.gateway_transaction_id,
        }

    @router.get("/transaccion/{transaction_id}")
    async def get_transaction(transaction_id: str):
        transaction = await gateway.get_transaction(transaction_id)
        return {"success": True, "data": {"data": transaction.model_dump(mode="json")}}

    @router.get("/bancos-pse")
    async def list_banks():
        institutions = await gateway.list_payment_institutions()
        return {"success": True, "banks": [i.model_dump(mode="json") for i in institutions]}

    @router.post("/webhook")
    async def webhook(request: Request, x_event_checksum: str | None = Header(default=None)):
        """Gateway callback; anything but 2xx makes the gateway redeliver."""

        raw_body = await request.body()
        try:
            receiver.handle(raw_body, x_event_checksum)
        except PaymentError:
            raise
        except Exception:
            # Already logged by the receiver; a 500 asks the gateway to redeliver.
            return JSONResponse(status_code=500, content={"error": "webhook processing failed", "details": None})
        return {"success": True}

    return router


def create_app(
    settings: Settings | None = None,
    gateway: WompiClient | None = None,
    session_factory=None,
) -> FastAPI:
    """Wire settings, gateway client, signer, verifier and persistence into one app."""

    settings = settings or get_settings()
    configure_logging(settings.service_name, settings.log_level)
    setup_tracing(settings.service_name, settings.otel_exporter_otlp_endpoint)
    log_startup_config(settings, STARTUP_FIELDS)

    gateway = gateway or WompiClient(settings)
    records = PaymentRecords(session_factory or build_session_factory(settings.postgres_dsn))
    initiator = TransactionInitiator(
        gateway,
        IntegritySigner(settings.wompi_integrity_secret),
        confirmation_url=settings.confirmation_url,
        records=records,
    )
    receiver = WebhookReceiver(EventSignatureVerifier(settings.wompi_event_secret), records=records)

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        """Close the gateway connection pool with the app."""

        yield
        await gateway.aclose()

    app = FastAPI(title="Tiendapay Payments", lifespan=lifespan)
    instrument_app(app)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Record request count and latency for every HTTP call."""

        start = perf_counter()
        trace_id_ctx.set(request.headers.get("x-correlation-id") or str(uuid4()))
        route = request.url.path
        method = request.method
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            route_obj = request.scope.get("route")
            if route_obj is not None and getattr(route_obj, "path", None):
                route = route_obj.path
            return response
        finally:
            elapsed = max(0.0, perf_counter() - start)
            http_request_duration_seconds.labels(
                service=settings.service_name,
                route=route,
                method=method,
            ).observe(elapsed)
            http_requests_total.labels(
                service=settings.service_name,
                route=route,
                method=method,
                status_code=str(status_code),
            ).inc()

    @app.exception_handler(PaymentError)
    async def payment_error_handler(_: Request, exc: PaymentError):
        logger.info("request failed status=%s error=%s", exc.status_code, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(_: Request, exc: RequestValidationError):
        errors = [{"loc": list(e["loc"]), "msg": e["msg"]} for e in exc.errors()]
        return JSONResponse(status_code=400, content={"error": "missing or invalid fields", "details": errors})

    app.include_router(build_router(settings, gateway, initiator, receiver))

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        """Container health probe endpoint."""

        return {"ok": True}

    return app
