from decimal import Decimal
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from booking_engine.schemas.booking import Booking


class PaymentVerify(BaseModel):
    booking_id: UUID
    order_id: str = Field(..., min_length=1)
    payment_id: str = Field(..., min_length=1)
    signature: str = Field(..., min_length=1)


class RefundRequest(BaseModel):
    booking_id: UUID
    # Identifier of the refund already issued by the gateway
    refund_id: str = Field(..., min_length=1)


class PaymentResult(BaseModel):
    success: bool = True
    booking: Booking


class RefundResult(BaseModel):
    success: bool = True
    refund_id: str
    refund_amount: Decimal
    booking: Booking


class WebhookAck(BaseModel):
    received: bool = True
    event: Optional[str] = None
