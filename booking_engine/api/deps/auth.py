import hmac
from typing import Optional

import structlog
from fastapi import Depends
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from booking_engine.api.deps.database import get_db
from booking_engine.core.config import settings
from booking_engine.core.exceptions import UnauthorizedError
from booking_engine.models.business import Business

logger = structlog.get_logger(__name__)

# HTTP Bearer token extractor; missing headers are reported as 401 below
security = HTTPBearer(auto_error=False)


async def get_current_business(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Business:
    """Resolve the business owning the bearer API key."""
    if credentials is None:
        raise UnauthorizedError("Not authenticated")

    token = credentials.credentials
    result = await db.execute(
        select(Business).where(Business.api_key == token, Business.is_active.is_(True))
    )
    business = result.scalar_one_or_none()
    if business is None:
        logger.warning("Invalid API key", token_preview=token[:4] + "***")
        raise UnauthorizedError("Invalid API key")
    return business


async def verify_cron_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
) -> None:
    """Sweep triggers require the configured cron secret as bearer token.

    With no secret configured every call is rejected.
    """
    if not settings.CRON_SECRET:
        logger.warning("Cron call rejected, CRON_SECRET is not configured")
        raise UnauthorizedError("Unauthorized")
    if credentials is None or not hmac.compare_digest(
        credentials.credentials, settings.CRON_SECRET
    ):
        logger.warning("Cron call rejected, invalid token")
        raise UnauthorizedError("Unauthorized")
