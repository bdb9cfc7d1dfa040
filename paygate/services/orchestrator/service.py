"""Orchestrator payment logic.

Drives the payment status machine: creation and provider initialization,
client-pull verification, and provider-push webhook reconciliation. The
service is stateless between calls; every status write goes through the
store's compare-and-update so the verify and webhook channels can race
safely and `completed` always wins over `failed`.
"""

from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import uuid4

from email_validator import EmailNotValidError, validate_email

from paygate.common.errors import (
    InternalError,
    NotFoundError,
    PaymentError,
    ValidationError,
    VerificationError,
)
from paygate.common.logging import logger, payment_reference_ctx
from paygate.common.metrics import (
    payment_failure_total,
    payment_success_total,
    stale_updates_skipped_total,
)
from paygate.common.state_machine import (
    COMPLETED,
    FAILED,
    INITIALIZED,
    PENDING,
    STATUSES,
    can_transition,
)
from paygate.services.orchestrator.models import Payment
from paygate.services.orchestrator.schemas import PaymentCreateRequest, WebhookAck
from paygate.services.orchestrator.store import PaymentStore
from paygate.services.orchestrator.webhooks import WebhookProcessor
from paygate.services.providers.base import EventKind, PaymentIntent
from paygate.services.providers.registry import ProviderRegistry


# Keeps amounts within 15 significant digits so they survive a float-backed column.
MAX_AMOUNT = Decimal("1e13")
MAX_PAGE_SIZE = 100
CENTS = Decimal("0.01")


def generate_reference() -> str:
    return f"PAY_{uuid4().hex[:16].upper()}"


def parse_amount(value: Any) -> Decimal | None:
    """Coerce a client-supplied amount; `None` when it is not a finite number."""

    if value is None or isinstance(value, bool):
        return None
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        return None
    return amount if amount.is_finite() else None


class OrchestratorService:
    """Owns payment status progression across create, verify and webhook paths."""

    def __init__(
        self,
        store: PaymentStore,
        registry: ProviderRegistry,
        *,
        redirect_url: str,
        service_name: str = "orchestrator",
    ) -> None:
        self.store = store
        self.registry = registry
        self.webhooks = WebhookProcessor(registry)
        self.redirect_url = redirect_url
        self.service_name = service_name

    def validate_request(self, req: PaymentCreateRequest) -> list[str]:
        """Return every violated input rule (empty when the request is valid)."""

        errors: list[str] = []
        amount = parse_amount(req.amount)
        if amount is None or amount <= 0:
            errors.append("Amount must be a positive number.")
        elif amount >= MAX_AMOUNT:
            errors.append("Amount is too large.")
        elif amount != amount.quantize(CENTS):
            errors.append("Amount must have at most two decimal places.")

        if not req.email:
            errors.append("Email is required.")
        else:
            try:
                validate_email(req.email, check_deliverability=False)
            except EmailNotValidError:
                errors.append("Invalid email address.")

        supported = self.registry.supported_currencies
        if not req.currency or req.currency.upper() not in supported:
            errors.append(f"Unsupported currency. Supported currencies are {', '.join(supported)}.")
        return errors

    async def create_payment(self, req: PaymentCreateRequest) -> Payment:
        """Validate, persist as `pending`, then initialize with the chosen provider.

        The record is stored before the provider call so a crash mid-call never
        leaves an untracked payment. Any initialization failure, including a
        timeout, moves the record to `failed` and is re-raised to the caller.
        """

        errors = self.validate_request(req)
        if req.reference and not errors and self.store.find_by_reference(req.reference) is not None:
            errors.append("Reference already exists.")
        if errors:
            logger.info("payment_rejected errors=%s", errors)
            raise ValidationError(errors)

        amount = parse_amount(req.amount).quantize(CENTS)
        currency = req.currency.upper()
        provider_name = self.registry.select_provider(currency)
        adapter = self.registry.get(provider_name)
        payment = self.store.create(
            Payment(
                id=str(uuid4()),
                reference=req.reference or generate_reference(),
                amount=amount,
                currency=currency,
                email=req.email,
                status=PENDING,
                provider=provider_name,
                payment_metadata=dict(req.metadata),
            )
        )
        payment_reference_ctx.set(payment.reference)
        logger.info("payment_created payment_id=%s provider=%s currency=%s", payment.id, provider_name, currency)

        intent = PaymentIntent(
            payment_id=payment.id,
            reference=payment.reference,
            amount=amount,
            currency=payment.currency,
            email=payment.email,
            metadata=payment.payment_metadata or {},
            redirect_url=self.redirect_url,
        )
        try:
            result = await adapter.initialize(intent)
        except PaymentError as exc:
            self._fail_initialization(payment, exc.message)
            raise
        except Exception as exc:
            logger.exception("initialize_unexpected_error provider=%s", provider_name)
            self._fail_initialization(payment, "Unexpected error during initialization")
            raise InternalError("Payment initialization failed") from exc

        return self._reconcile(
            payment,
            INITIALIZED,
            {
                "authorization_url": result.authorization_url,
                "provider_reference": result.provider_reference,
            },
            reason="provider_initialized",
            source="initialize",
        )

    def _fail_initialization(self, payment: Payment, error: str) -> None:
        payment_failure_total.labels(service=self.service_name, stage="initialize").inc()
        logger.warning("initialize_failed payment_id=%s provider=%s error=%s", payment.id, payment.provider, error)
        self._reconcile(payment, FAILED, {"error": error}, reason="initialize_failed", source="initialize")

    async def verify_payment(self, reference: str) -> Payment:
        """Reconcile one payment against its provider (client-pull path).

        A `completed` record is returned as stored without any outbound call.
        A failed verification leaves the stored status untouched.
        """

        payment = self.store.find_by_reference(reference)
        if payment is None:
            raise NotFoundError("Payment not found")
        payment_reference_ctx.set(payment.reference)
        if payment.status == COMPLETED:
            logger.info("verify_short_circuit payment_id=%s", payment.id)
            return payment

        adapter = self.registry.get(payment.provider)
        try:
            result = await adapter.verify(payment.reference)
        except PaymentError as exc:
            logger.warning(
                "verify_failed payment_id=%s provider=%s kind=%s error=%s",
                payment.id,
                payment.provider,
                exc.kind.value,
                exc.message,
            )
            raise VerificationError(exc) from exc

        self._check_amount(payment, result.amount, result.currency, source="verify")

        fields: dict[str, Any] = {"verified_at": datetime.now(timezone.utc)}
        if result.paid_at is not None:
            fields["paid_at"] = result.paid_at
        if result.status == payment.status:
            # No transition, but the verification itself is still recorded.
            logger.info("verify_status_unchanged payment_id=%s status=%s", payment.id, payment.status)
            return self.store.update(payment.id, fields) or payment
        return self._reconcile(payment, result.status, fields, reason=f"verified:{result.status}", source="verify")

    def _check_amount(self, payment: Payment, amount: Decimal | None, currency: str | None, source: str) -> None:
        if amount == payment.amount and (currency or "").upper() == payment.currency:
            return
        logger.warning(
            "%s_amount_mismatch payment_id=%s expected=%s %s reported=%s %s",
            source,
            payment.id,
            payment.amount,
            payment.currency,
            amount,
            currency,
        )

    def handle_webhook(self, provider_name: str, payload: bytes, signature: str | None) -> WebhookAck:
        """Authenticate a provider notification and apply it (provider-push path).

        `AuthError` propagates untouched so the HTTP layer can reject it.
        Deliveries for unknown references and unhandled event types are
        acknowledged without retry.
        """

        event = self.webhooks.process(provider_name, payload, signature)
        if event.kind == EventKind.UNHANDLED:
            return WebhookAck(event=event.kind.value)

        payment = self.store.find_by_reference(event.reference)
        if payment is None:
            logger.warning("webhook_unknown_reference provider=%s reference=%s", provider_name, event.reference)
            return WebhookAck(event=event.kind.value)
        payment_reference_ctx.set(payment.reference)
        if payment.provider != provider_name:
            logger.warning(
                "webhook_provider_mismatch payment_id=%s owner=%s sender=%s",
                payment.id,
                payment.provider,
                provider_name,
            )
            return WebhookAck(event=event.kind.value)

        self._check_amount(payment, event.amount, event.currency, source="webhook")
        new_status = COMPLETED if event.kind == EventKind.PAYMENT_COMPLETED else FAILED
        fields: dict[str, Any] = {}
        if event.paid_at is not None:
            fields["paid_at"] = event.paid_at
        before = payment.status
        updated = self._reconcile(
            payment, new_status, fields, reason=f"webhook:{event.provider_event}", source="webhook"
        )
        return WebhookAck(event=event.kind.value, applied=updated.status != before)

    def get_payment(self, payment_id: str) -> Payment:
        payment = self.store.find_by_id(payment_id)
        if payment is None:
            raise NotFoundError("Payment not found")
        return payment

    def list_payments(
        self,
        status: str | None = None,
        email: str | None = None,
        limit: int = 10,
        skip: int = 0,
    ) -> tuple[list[Payment], int]:
        errors = []
        if status is not None and status not in STATUSES:
            errors.append(f"Invalid status. Valid statuses are {', '.join(STATUSES)}.")
        if not 1 <= limit <= MAX_PAGE_SIZE:
            errors.append(f"Limit must be between 1 and {MAX_PAGE_SIZE}.")
        if skip < 0:
            errors.append("Skip must not be negative.")
        if errors:
            raise ValidationError(errors)
        return self.store.list_by_filter({"status": status, "email": email}, limit, skip)

    def _reconcile(
        self,
        payment: Payment,
        new_status: str,
        fields: dict[str, Any],
        reason: str,
        source: str,
    ) -> Payment:
        """Move `payment` to `new_status` unless the stored state already dominates.

        Losing a compare-and-update race triggers one re-read; whatever the
        winner wrote is then judged by the same rules.
        """

        current = payment
        for _ in range(2):
            if current.status == new_status:
                return current
            if not can_transition(current.status, new_status):
                stale_updates_skipped_total.labels(service=self.service_name, source=source).inc()
                logger.info(
                    "stale_update_skipped payment_id=%s current=%s requested=%s source=%s",
                    current.id,
                    current.status,
                    new_status,
                    source,
                )
                return current

            updated = self.store.update_status(current.id, current.status, new_status, fields, reason=reason)
            if updated is not None:
                logger.info(
                    "payment_transition payment_id=%s from=%s to=%s source=%s",
                    current.id,
                    current.status,
                    new_status,
                    source,
                )
                if new_status == COMPLETED:
                    payment_success_total.labels(service=self.service_name).inc()
                elif new_status == FAILED and source != "initialize":
                    payment_failure_total.labels(service=self.service_name, stage=source).inc()
                return updated

            current = self.store.find_by_id(current.id)
            if current is None:
                raise InternalError("Payment disappeared during update")
        return current
