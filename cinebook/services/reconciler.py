"""
Payment outcome reconciler.

Provider signals, pushed (webhooks) or pulled (session lookup on read), are
reduced to one guarded transition per checkout session:

  pending_payment -> confirmed   session paid
  pending_payment -> expired     session expired
  pending_payment -> failed      asynchronous payment failed

Replaying a signal is harmless: only rows still pending are matched, so the
second application moves nothing and releases no seats. Every payment event
is still written to the payments audit log.

A ``payment_intent.payment_failed`` event is logged against its session but
does not fail the bookings: the hosted checkout stays open for another
attempt, and an abandoned session ends in ``checkout.session.expired`` or the
sweeper.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Optional

from sqlalchemy.orm import Session

from cinebook.core.exceptions import NotFound, PaymentProviderUnavailable
from cinebook.integrations.payments import PaymentGateway, from_minor_units
from cinebook.models.booking import Booking, BookingStatus
from cinebook.models.payment import Payment
from cinebook.services.ledger import BookingGroup, get_booking_by_session_ref
from cinebook.services.transitions import apply_transition

logger = logging.getLogger(__name__)

OUTCOME_STATUSES = frozenset({
    BookingStatus.confirmed,
    BookingStatus.expired,
    BookingStatus.failed,
})

PAID_STATES = ("paid", "no_payment_required")


def session_field(obj: Any, name: str, default=None):
    if obj is None:
        return default
    if isinstance(obj, dict):
        return obj.get(name, default)
    return getattr(obj, name, default)


# ---------------------------------------------------------------------------
# Transition + audit primitives
# ---------------------------------------------------------------------------


def update_booking_status_by_session(
    db: Session,
    session_ref: str,
    new_status: BookingStatus,
    txn_ref: Optional[str] = None,
) -> int:
    """
    Move every still-pending booking of ``session_ref`` to ``new_status``.
    Returns the number of rows moved (0 on replay).
    """
    if new_status not in OUTCOME_STATUSES:
        raise ValueError(f"{new_status.value} is not a payment outcome")

    moved = apply_transition(
        db,
        new_status,
        Booking.session_ref == session_ref,
        from_statuses=(BookingStatus.pending_payment,),
        txn_ref=txn_ref if new_status == BookingStatus.confirmed else None,
    )
    db.commit()

    if moved:
        logger.info(
            "Session %s: %d booking(s) -> %s", session_ref, len(moved), new_status.value
        )
    else:
        logger.info("Session %s: no pending bookings for %s", session_ref, new_status.value)
    return len(moved)


def record_payment_event(
    db: Session,
    session_ref: str,
    txn_ref: Optional[str],
    amount: Decimal,
    currency: Optional[str],
    provider_status: str,
    method: Optional[str],
) -> Payment:
    payment = Payment(
        session_ref=session_ref,
        txn_ref=txn_ref,
        amount=amount,
        currency=currency or "inr",
        status=provider_status,
        method=method or "card",
    )
    db.add(payment)
    db.commit()
    db.refresh(payment)
    return payment


def _record_session_payment(db: Session, session, provider_status: Optional[str] = None) -> Payment:
    methods = session_field(session, "payment_method_types") or []
    return record_payment_event(
        db,
        session_ref=session_field(session, "id"),
        txn_ref=session_field(session, "payment_intent"),
        amount=from_minor_units(session_field(session, "amount_total")),
        currency=session_field(session, "currency"),
        provider_status=provider_status or session_field(session, "payment_status") or "unknown",
        method=methods[0] if methods else None,
    )


def _has_paid_record(db: Session, session_ref: str) -> bool:
    return (
        db.query(Payment.id)
        .filter(Payment.session_ref == session_ref, Payment.status.in_(PAID_STATES))
        .first()
        is not None
    )


def _warn_if_paid_without_hold(db: Session, session_ref: str) -> None:
    """A paid session whose rows are no longer pending needs a manual refund."""
    lost = (
        db.query(Booking)
        .filter(
            Booking.session_ref == session_ref,
            Booking.status.in_((BookingStatus.expired, BookingStatus.cancelled, BookingStatus.failed)),
        )
        .count()
    )
    if lost:
        logger.warning(
            "Session %s was paid but %d booking(s) had already been released; refund required",
            session_ref, lost,
        )


# ---------------------------------------------------------------------------
# Push: webhook events
# ---------------------------------------------------------------------------


@dataclass
class EventResult:
    event_type: str
    transitioned: int = 0


def handle_provider_event(db: Session, event, gateway: PaymentGateway) -> EventResult:
    """Apply one verified provider event."""
    event_type = session_field(event, "type") or ""
    obj = session_field(session_field(event, "data"), "object")
    result = EventResult(event_type=event_type)

    if event_type == "checkout.session.completed":
        _record_session_payment(db, obj)
        if session_field(obj, "payment_status") in PAID_STATES:
            result.transitioned = update_booking_status_by_session(
                db, session_field(obj, "id"), BookingStatus.confirmed, session_field(obj, "payment_intent")
            )
            if not result.transitioned:
                _warn_if_paid_without_hold(db, session_field(obj, "id"))

    elif event_type == "checkout.session.async_payment_succeeded":
        _record_session_payment(db, obj)
        result.transitioned = update_booking_status_by_session(
            db, session_field(obj, "id"), BookingStatus.confirmed, session_field(obj, "payment_intent")
        )
        if not result.transitioned:
            _warn_if_paid_without_hold(db, session_field(obj, "id"))

    elif event_type == "checkout.session.async_payment_failed":
        _record_session_payment(db, obj, provider_status="failed")
        result.transitioned = update_booking_status_by_session(
            db, session_field(obj, "id"), BookingStatus.failed
        )

    elif event_type == "checkout.session.expired":
        result.transitioned = update_booking_status_by_session(
            db, session_field(obj, "id"), BookingStatus.expired
        )

    elif event_type == "payment_intent.payment_failed":
        intent_id = session_field(obj, "id")
        session = gateway.find_session_by_payment_intent(intent_id)
        if session is None:
            logger.warning("No checkout session found for failed payment intent %s", intent_id)
        else:
            methods = session_field(obj, "payment_method_types") or []
            record_payment_event(
                db,
                session_ref=session_field(session, "id"),
                txn_ref=intent_id,
                amount=from_minor_units(session_field(obj, "amount")),
                currency=session_field(obj, "currency"),
                provider_status="failed",
                method=methods[0] if methods else None,
            )

    else:
        logger.info("Ignoring provider event %s", event_type)

    return result


# ---------------------------------------------------------------------------
# Pull: reconcile on read
# ---------------------------------------------------------------------------


def outcome_for_session(session) -> Optional[BookingStatus]:
    status = session_field(session, "status")
    if status == "complete" and session_field(session, "payment_status") in PAID_STATES:
        return BookingStatus.confirmed
    if status == "expired":
        return BookingStatus.expired
    return None


def reconcile_session(db: Session, session_ref: str, gateway: PaymentGateway) -> int:
    """
    Best-effort live lookup of a checkout session, applying the same guarded
    transition a webhook would. Provider errors are logged, never raised.
    """
    if not gateway.enabled:
        return 0
    try:
        session = gateway.retrieve_session(session_ref)
    except PaymentProviderUnavailable:
        logger.warning("Skipping reconciliation of session %s: provider unavailable", session_ref)
        return 0

    outcome = outcome_for_session(session)
    if outcome is None:
        return 0

    moved = update_booking_status_by_session(
        db, session_ref, outcome, session_field(session, "payment_intent")
    )
    if outcome == BookingStatus.confirmed and not _has_paid_record(db, session_ref):
        _record_session_payment(db, session)
        if not moved:
            _warn_if_paid_without_hold(db, session_ref)
    return moved


def get_reconciled_booking(db: Session, session_ref: str, gateway: PaymentGateway) -> BookingGroup:
    """Reconcile the session with the provider, then return its purchase."""
    reconcile_session(db, session_ref, gateway)
    group = get_booking_by_session_ref(db, session_ref)
    if group is None:
        raise NotFound("No booking found for this session")
    return group
