"""HTTP surface for payment creation, verification, listing and webhooks.

The process entry point owns the database engine and the shared outbound HTTP
client; both are created in the app lifespan and injected into the
orchestrator. Tests pass a ready-made `OrchestratorService` instead.
"""

from contextlib import asynccontextmanager
from time import perf_counter
from urllib.parse import urlencode
from uuid import uuid4

import httpx
from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse, RedirectResponse

from paygate.common.config import settings
from paygate.common.db import Base, make_engine, make_session_factory
from paygate.common.errors import ErrorKind, PaymentError, ValidationError
from paygate.common.logging import configure_logging, logger, trace_id_ctx
from paygate.common.metrics import (
    http_request_duration_seconds,
    http_requests_total,
    metrics_response,
    payment_latency_seconds,
    payment_requests_total,
)
from paygate.common.startup import log_startup_config
from paygate.common.tracing import instrument_app, setup_tracing
from paygate.services.orchestrator.schemas import (
    ListMeta,
    PaymentCreateRequest,
    PaymentListResponse,
    PaymentResponse,
    WebhookAck,
)
from paygate.services.orchestrator.service import OrchestratorService
from paygate.services.orchestrator.store import PaymentStore
from paygate.services.providers.registry import build_registry


STATUS_BY_KIND: dict[ErrorKind, int] = {
    ErrorKind.VALIDATION: 400,
    ErrorKind.AUTH: 401,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.INTERNAL: 500,
    ErrorKind.PROVIDER: 502,
    ErrorKind.VERIFICATION: 502,
    ErrorKind.TRANSPORT: 504,
}


def error_status(exc: PaymentError) -> int:
    if exc.kind == ErrorKind.VERIFICATION and exc.retryable:
        return 503
    return STATUS_BY_KIND[exc.kind]


def get_service(request: Request) -> OrchestratorService:
    return request.app.state.service


def create_app(service: OrchestratorService | None = None) -> FastAPI:
    """Build the FastAPI app; without `service`, the lifespan wires real dependencies."""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if service is not None:
            app.state.service = service
            yield
            return

        engine = make_engine(settings.database_url)
        if settings.create_schema:
            Base.metadata.create_all(engine)
        client = httpx.AsyncClient(timeout=settings.provider_timeout_seconds)
        app.state.service = OrchestratorService(
            PaymentStore(make_session_factory(engine)),
            build_registry(settings, client),
            redirect_url=f"{settings.frontend_url.rstrip('/')}/payment/callback",
            service_name=settings.service_name,
        )
        try:
            yield
        finally:
            await client.aclose()
            engine.dispose()

    app = FastAPI(title="PayGate Orchestrator", lifespan=lifespan)

    @app.middleware("http")
    async def metrics_middleware(request: Request, call_next):
        """Record request count and latency, and bind a trace id for logs."""

        trace_id_ctx.set(request.headers.get("x-trace-id") or str(uuid4()))
        start = perf_counter()
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
        return JSONResponse(status_code=error_status(exc), content=exc.to_dict())

    @app.exception_handler(RequestValidationError)
    async def request_validation_handler(_: Request, exc: RequestValidationError):
        messages = [
            f"{'.'.join(str(part) for part in err['loc'] if part != 'body')}: {err['msg']}"
            for err in exc.errors()
        ]
        return JSONResponse(status_code=400, content=ValidationError(messages).to_dict())

    @app.post("/api/payments", response_model=PaymentResponse, status_code=201)
    async def create_payment(req: PaymentCreateRequest, service: OrchestratorService = Depends(get_service)):
        """Create a payment and hand back the provider checkout URL."""

        payment_requests_total.labels(service=settings.service_name).inc()
        with payment_latency_seconds.labels(service=settings.service_name).time():
            payment = await service.create_payment(req)
        return PaymentResponse.model_validate(payment)

    @app.get("/api/payments", response_model=PaymentListResponse)
    def list_payments(
        status: str | None = None,
        email: str | None = None,
        limit: int = Query(default=10, ge=1, le=100),
        skip: int = Query(default=0, ge=0),
        service: OrchestratorService = Depends(get_service),
    ):
        """Page through payments, newest first, optionally filtered."""

        payments, total = service.list_payments(status=status, email=email, limit=limit, skip=skip)
        return PaymentListResponse(
            data=[PaymentResponse.model_validate(p) for p in payments],
            meta=ListMeta(total=total, limit=limit, skip=skip, has_more=skip + limit < total),
        )

    @app.get("/api/payments/verify/{reference}", response_model=PaymentResponse)
    async def verify_payment(reference: str, service: OrchestratorService = Depends(get_service)):
        """Reconcile one payment against its provider."""

        payment = await service.verify_payment(reference)
        return PaymentResponse.model_validate(payment)

    @app.get("/api/payments/callback")
    async def payment_callback(
        reference: str | None = None,
        trxref: str | None = None,
        tx_ref: str | None = None,
        service: OrchestratorService = Depends(get_service),
    ):
        """Provider redirect target: verify, then send the payer to the frontend."""

        ref = reference or trxref or tx_ref
        if not ref:
            raise ValidationError(["Payment reference is required."])
        frontend = settings.frontend_url.rstrip("/")
        try:
            payment = await service.verify_payment(ref)
        except PaymentError as exc:
            logger.info("callback_verify_failed reference=%s kind=%s", ref, exc.kind.value)
            query = urlencode({"reference": ref, "error": exc.message})
            return RedirectResponse(f"{frontend}/payment/failed?{query}", status_code=302)
        query = urlencode({"reference": ref, "status": payment.status})
        return RedirectResponse(f"{frontend}/payment/success?{query}", status_code=302)

    @app.get("/api/payments/{payment_id}", response_model=PaymentResponse)
    def get_payment(payment_id: str, service: OrchestratorService = Depends(get_service)):
        """Fetch one payment by internal id."""

        return PaymentResponse.model_validate(service.get_payment(payment_id))

    @app.post("/api/webhooks/{provider}", response_model=WebhookAck)
    async def receive_webhook(provider: str, request: Request, service: OrchestratorService = Depends(get_service)):
        """Authenticate and apply one provider notification."""

        signature = request.headers.get(service.webhooks.signature_header(provider))
        payload = await request.body()
        return service.handle_webhook(provider, payload, signature)

    @app.get("/metrics")
    def metrics():
        """Prometheus scrape endpoint."""

        return metrics_response()

    @app.get("/health")
    def health():
        """Container health probe endpoint."""

        return {"ok": True}

    return app


configure_logging()
setup_tracing(settings.service_name)
log_startup_config(
    settings.service_name,
    [
        "SERVICE_NAME",
        "DATABASE_URL",
        "FRONTEND_URL",
        "PROVIDER_TIMEOUT_SECONDS",
        "PAYSTACK_SECRET_KEY",
        "FLUTTERWAVE_SECRET_KEY",
    ],
)
app = create_app()
instrument_app(app)
