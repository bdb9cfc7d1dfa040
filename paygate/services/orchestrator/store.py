"""SQLAlchemy-backed payment record store.

The store is the single source of truth and synchronization point for payment
state. Status writes are compare-and-update: they only land while the row
still holds the status the caller read, and never on a `completed` row.
"""

from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from paygate.common.errors import InternalError, ValidationError
from paygate.common.logging import logger
from paygate.common.state_machine import COMPLETED, validate_transition
from paygate.services.orchestrator.models import Payment, PaymentTimeline


LIST_FILTER_FIELDS = ("status", "email", "currency", "provider")


class PaymentStore:
    """Create/find/update/list operations keyed on `id` and `reference`."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    @contextmanager
    def _session(self):
        try:
            with self.session_factory() as db:
                yield db
        except SQLAlchemyError as exc:
            logger.exception("store_error error=%s", exc)
            raise InternalError("Payment store unavailable") from exc

    def create(self, payment: Payment) -> Payment:
        """Persist a new record together with its first timeline entry."""

        with self._session() as db:
            db.add(payment)
            try:
                db.flush()
            except IntegrityError as exc:
                # Lost a race with a concurrent create for the same reference.
                db.rollback()
                logger.info("payment_duplicate_reference reference=%s", payment.reference)
                raise ValidationError(["Reference already exists."]) from exc
            db.add(
                PaymentTimeline(
                    payment_id=payment.id,
                    from_state=None,
                    to_state=payment.status,
                    reason="payment_created",
                )
            )
            db.commit()
            db.refresh(payment)
            return payment

    def find_by_id(self, payment_id: str) -> Payment | None:
        with self._session() as db:
            return db.get(Payment, payment_id)

    def find_by_reference(self, reference: str) -> Payment | None:
        with self._session() as db:
            return db.execute(select(Payment).where(Payment.reference == reference)).scalar_one_or_none()

    def update(self, payment_id: str, fields: dict[str, Any]) -> Payment | None:
        """Blind update of non-status fields; `updated_at` is always refreshed."""

        if "status" in fields:
            raise ValueError("status changes must go through update_status")
        with self._session() as db:
            updated = db.execute(
                update(Payment)
                .where(Payment.id == payment_id)
                .values(**fields, updated_at=datetime.now(timezone.utc))
                .returning(Payment)
            ).scalar_one_or_none()
            db.commit()
            return updated

    def update_status(
        self,
        payment_id: str,
        expected: str,
        new: str,
        fields: dict[str, Any] | None = None,
        reason: str = "",
    ) -> Payment | None:
        """Apply one validated transition only if the row still holds `expected`.

        Returns the updated record, or `None` when another writer got there
        first (the caller re-reads and decides again).
        """

        validate_transition(expected, new)
        with self._session() as db:
            updated = db.execute(
                update(Payment)
                .where(
                    Payment.id == payment_id,
                    Payment.status == expected,
                    Payment.status != COMPLETED,
                )
                .values(**(fields or {}), status=new, updated_at=datetime.now(timezone.utc))
                .returning(Payment)
            ).scalar_one_or_none()
            if updated is None:
                db.rollback()
                return None
            db.add(PaymentTimeline(payment_id=payment_id, from_state=expected, to_state=new, reason=reason))
            db.commit()
            return updated

    def list_by_filter(self, filters: dict[str, Any], limit: int, skip: int) -> tuple[list[Payment], int]:
        """Return one page of records (newest first) and the total match count."""

        conditions = [
            getattr(Payment, field) == value
            for field, value in filters.items()
            if field in LIST_FILTER_FIELDS and value is not None
        ]
        with self._session() as db:
            total = db.execute(select(func.count()).select_from(Payment).where(*conditions)).scalar_one()
            rows = (
                db.execute(
                    select(Payment)
                    .where(*conditions)
                    .order_by(Payment.created_at.desc(), Payment.id)
                    .limit(limit)
                    .offset(skip)
                )
                .scalars()
                .all()
            )
            return list(rows), total

    def timeline(self, payment_id: str) -> list[PaymentTimeline]:
        with self._session() as db:
            return list(
                db.execute(
                    select(PaymentTimeline)
                    .where(PaymentTimeline.payment_id == payment_id)
                    .order_by(PaymentTimeline.created_at, PaymentTimeline.timeline_id)
                )
                .scalars()
                .all()
            )
