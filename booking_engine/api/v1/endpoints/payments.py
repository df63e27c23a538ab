import json
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api.deps.auth import get_current_business
from booking_engine.api.deps.database import get_db
from booking_engine.api.deps.services import get_booking_service
from booking_engine.core.config import settings
from booking_engine.core.exceptions import BookingEngineError
from booking_engine.models.business import Business
from booking_engine.schemas.booking import Booking
from booking_engine.schemas.payments import (
    PaymentResult,
    PaymentVerify,
    RefundRequest,
    RefundResult,
    WebhookAck,
)
from booking_engine.services.booking import BookingService
from booking_engine.services.payments import verify_webhook_signature

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.post("/verify", response_model=PaymentResult)
async def verify_payment(
    payment_data: PaymentVerify,
    db: AsyncSession = Depends(get_db),
    booking_service: BookingService = Depends(get_booking_service),
):
    """Confirm a booking after checking the gateway's payment signature."""
    try:
        booking = await booking_service.confirm_payment(
            payment_data.booking_id,
            payment_data.order_id,
            payment_data.payment_id,
            payment_data.signature,
        )
        return PaymentResult(booking=Booking.model_validate(booking))
    except BookingEngineError as e:
        await db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    except Exception as e:
        await db.rollback()
        logger.error("Failed to verify payment", exc_info=e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to verify payment",
        )


@router.post("/webhook", response_model=WebhookAck)
async def payment_webhook(
    request: Request,
    x_payment_signature: Optional[str] = Header(None),
    db: AsyncSession = Depends(get_db),
    booking_service: BookingService = Depends(get_booking_service),
):
    """Gateway events: payment.captured, payment.failed and refund.created."""
    body = await request.body()

    if not settings.PAYMENT_WEBHOOK_SECRET:
        logger.warning("Webhook rejected, PAYMENT_WEBHOOK_SECRET is not set")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Webhook secret not configured",
        )
    if not x_payment_signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Missing signature"
        )
    if not verify_webhook_signature(
        body, x_payment_signature, settings.PAYMENT_WEBHOOK_SECRET
    ):
        logger.warning("Invalid webhook signature")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid signature"
        )

    try:
        event = json.loads(body)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid payload"
        )

    try:
        await booking_service.handle_gateway_event(event)
        return WebhookAck(event=event.get("event"))
    except Exception as e:
        await db.rollback()
        logger.error("Webhook processing failed", gateway_event=event.get("event"), exc_info=e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Webhook processing failed",
        )


@router.post("/refund", response_model=RefundResult)
async def refund_booking(
    refund_data: RefundRequest,
    db: AsyncSession = Depends(get_db),
    current_business: Business = Depends(get_current_business),
    booking_service: BookingService = Depends(get_booking_service),
):
    """Record a gateway refund against a cancelled, paid booking."""
    try:
        booking, amount = await booking_service.refund_booking(
            refund_data.booking_id, refund_data.refund_id, current_business
        )
        return RefundResult(
            refund_id=booking.refund_id,
            refund_amount=amount,
            booking=Booking.model_validate(booking),
        )
    except BookingEngineError as e:
        await db.rollback()
        raise HTTPException(status_code=e.status_code, detail=e.to_detail())
    except Exception as e:
        await db.rollback()
        logger.error("Failed to process refund", exc_info=e)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to process refund",
        )
