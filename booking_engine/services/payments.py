import hashlib
import hmac
from decimal import ROUND_HALF_UP, Decimal
from typing import Union

Amount = Union[Decimal, int, float, str]


def _sign(secret: str, message: Union[str, bytes]) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def verify_payment_signature(
    order_id: str, payment_id: str, signature: str, secret: str
) -> bool:
    """Check the gateway's HMAC-SHA256 over ``order_id|payment_id``."""
    expected = _sign(secret, f"{order_id}|{payment_id}")
    return hmac.compare_digest(expected, signature or "")


def verify_webhook_signature(body: Union[str, bytes], signature: str, secret: str) -> bool:
    """Check the gateway's HMAC-SHA256 over the raw webhook body."""
    return hmac.compare_digest(_sign(secret, body), signature or "")


def _percent_of(amount: Amount, percent: int) -> Decimal:
    amount = Decimal(str(amount))
    if percent <= 0:
        return Decimal("0")
    if percent >= 100:
        return amount
    return (amount * percent / 100).quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def calculate_payment_amount(base_amount: Amount, advance_percent: int) -> Decimal:
    """Amount charged up front; whole currency units for partial advances."""
    return _percent_of(base_amount, advance_percent)


def calculate_refund_amount(paid_amount: Amount, refund_percent: int) -> Decimal:
    return _percent_of(paid_amount, refund_percent)


def from_minor_units(value: int) -> Decimal:
    """Gateway amounts are in minor units (cents, paise)."""
    return Decimal(value) / 100
