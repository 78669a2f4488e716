import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from cinebook.db.session import get_db
from cinebook.api.deps import get_current_user_id, get_payment_gateway, verify_cron_secret
from cinebook.core.exceptions import BookingError
from cinebook.integrations.payments import PaymentGateway
from cinebook.schemas.common import SweepResult
from cinebook.schemas.payment import CheckoutRequest, CheckoutResponse, WebhookAck
from cinebook.services.checkout import start_checkout
from cinebook.services.reconciler import handle_provider_event, session_field
from cinebook.services.sweeper import expire_pending_bookings_before_show

logger = logging.getLogger(__name__)

checkout_router = APIRouter(prefix="/checkout", tags=["Checkout"])
webhook_router = APIRouter(prefix="/webhooks", tags=["Webhooks"])
cron_router = APIRouter(prefix="/cron", tags=["Cron"])


# ---------------------------------------------------------------------------
# POST /checkout: hosted checkout session
# ---------------------------------------------------------------------------


@checkout_router.post("/", response_model=CheckoutResponse)
def create_checkout(
    data: CheckoutRequest,
    db: Session = Depends(get_db),
    user_id: str = Depends(get_current_user_id),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Start payment for held seats.
    - With `booking_ids`: pay for existing PENDING_PAYMENT bookings of the caller.
    - Otherwise: hold `seat_ids` on the showtime first, then start checkout.
    Refused inside the payment window before the show.
    """
    return start_checkout(db, user_id=user_id, request=data, gateway=gateway)


# ---------------------------------------------------------------------------
# POST /webhooks/stripe: provider events
# ---------------------------------------------------------------------------


@webhook_router.post("/stripe", response_model=WebhookAck)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(None, alias="stripe-signature"),
    db: Session = Depends(get_db),
    gateway: PaymentGateway = Depends(get_payment_gateway),
):
    """
    Verify and apply one provider event. A bad signature is a 400; any
    processing failure is a 500 so the provider delivers the event again.
    """
    payload = await request.body()
    event = gateway.construct_event(payload, stripe_signature)

    try:
        result = handle_provider_event(db, event, gateway)
    except BookingError:
        db.rollback()
        raise
    except Exception:
        db.rollback()
        logger.exception("Webhook processing failed for event %s", session_field(event, "id"))
        return JSONResponse(
            status_code=500,
            content={"error": "webhook_processing_failed", "message": "Event not processed"},
        )

    return WebhookAck(event_type=result.event_type, transitioned=result.transitioned)


# ---------------------------------------------------------------------------
# POST /cron/expire-pending-bookings: external scheduler trigger
# ---------------------------------------------------------------------------


@cron_router.post(
    "/expire-pending-bookings",
    response_model=SweepResult,
    dependencies=[Depends(verify_cron_secret)],
)
def expire_pending_bookings(db: Session = Depends(get_db)):
    count = expire_pending_bookings_before_show(db)
    return SweepResult(expired_count=count, message=f"Expired {count} pending booking(s)")
