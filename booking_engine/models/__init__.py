# Import all models to ensure they are registered with SQLAlchemy
from . import (
    availability,
    booking,
    business,
    customer,
    service,
)

__all__ = [
    "availability",
    "booking",
    "business",
    "customer",
    "service",
]
