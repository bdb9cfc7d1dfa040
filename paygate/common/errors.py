"""Error taxonomy shared by adapters, the orchestrator and the HTTP layer.

Every failure the core reports is a `PaymentError` subclass tagged with an
`ErrorKind`, so callers branch on `exc.kind` instead of inspecting ad-hoc
success flags.
"""

from enum import Enum


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    PROVIDER = "provider"
    TRANSPORT = "transport"
    AUTH = "auth"
    INTERNAL = "internal"
    VERIFICATION = "verification"


class PaymentError(Exception):
    """Base class for every error the payment core raises."""

    kind: ErrorKind = ErrorKind.INTERNAL
    retryable: bool = False

    def __init__(self, message: str, *, detail: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.detail = detail

    def to_dict(self) -> dict:
        body = {"error": self.kind.value, "message": self.message, "retryable": self.retryable}
        if self.detail:
            body["detail"] = self.detail
        return body


class ValidationError(PaymentError):
    """Input rejected; `errors` lists every violated rule, not just the first."""

    kind = ErrorKind.VALIDATION

    def __init__(self, errors: list[str]) -> None:
        super().__init__("Validation failed")
        self.errors = list(errors)

    def to_dict(self) -> dict:
        body = super().to_dict()
        body["errors"] = self.errors
        return body


class NotFoundError(PaymentError):
    kind = ErrorKind.NOT_FOUND


class ProviderError(PaymentError):
    """Business failure reported by the provider (invalid request, declined...)."""

    kind = ErrorKind.PROVIDER

    def __init__(self, message: str, *, provider: str, detail: str | None = None) -> None:
        super().__init__(message, detail=detail)
        self.provider = provider


class TransportError(PaymentError):
    """Network failure or timeout while talking to a provider."""

    kind = ErrorKind.TRANSPORT
    retryable = True

    def __init__(self, message: str, *, provider: str, detail: str | None = None) -> None:
        super().__init__(message, detail=detail)
        self.provider = provider


class AuthError(PaymentError):
    """Webhook signature missing or mismatched.

    The message is fixed by callers; the rejected payload is never attached.
    """

    kind = ErrorKind.AUTH


class InternalError(PaymentError):
    """Unexpected decode or store failure."""

    kind = ErrorKind.INTERNAL


class VerificationError(PaymentError):
    """Provider verification failed; the stored status was left untouched."""

    kind = ErrorKind.VERIFICATION

    def __init__(self, cause: PaymentError) -> None:
        super().__init__("Payment verification failed", detail=cause.detail or cause.message)
        self.cause = cause
        self.retryable = cause.retryable
