"""API request/response schemas for orchestrator endpoints."""

from datetime import datetime
from decimal import Decimal
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class PaymentCreateRequest(BaseModel):
    """Payment creation payload.

    Fields are deliberately loose: business rules are checked by the
    orchestrator so every violation can be reported in one response.
    """

    amount: Any = None
    currency: str = "NGN"
    email: str | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    reference: str | None = Field(default=None, min_length=1, max_length=100)


class PaymentResponse(BaseModel):
    """Payment record as returned to clients."""

    model_config = ConfigDict(from_attributes=True)

    id: str
    reference: str
    amount: Decimal
    currency: str
    email: str
    status: str
    provider: str
    provider_reference: str | None = None
    authorization_url: str | None = None
    metadata: dict[str, Any] = Field(
        default_factory=dict, validation_alias=AliasChoices("payment_metadata", "metadata")
    )
    error: str | None = None
    paid_at: datetime | None = None
    verified_at: datetime | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None


class ListMeta(BaseModel):
    total: int
    limit: int
    skip: int
    has_more: bool


class PaymentListResponse(BaseModel):
    data: list[PaymentResponse]
    meta: ListMeta


class WebhookAck(BaseModel):
    """Acknowledgement returned to the provider for an authenticated delivery."""

    received: bool = True
    event: str
    applied: bool = False
