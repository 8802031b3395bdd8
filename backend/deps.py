"""
Shared FastAPI dependencies.

Routers import the DB session, the gateway factory and the cron guard from
here so tests can swap any of them through app.dependency_overrides.
"""
import hmac
from typing import Callable, Optional

from fastapi import Header

from config import settings
from domain.errors import UnauthorizedError
from services.gateways import get_gateway


def get_gateway_factory() -> Callable:
    """Callable mapping a gateway name to a PaymentGateway instance."""
    return get_gateway


async def require_cron_secret(authorization: Optional[str] = Header(None)) -> None:
    """
    Require `Authorization: Bearer <CRON_SECRET>`.

    Fails closed: with no secret configured every caller is rejected.
    """
    if not settings.cron_secret:
        raise UnauthorizedError("Cron endpoint is disabled (CRON_SECRET not set)")

    scheme, _, token = (authorization or "").partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise UnauthorizedError("Missing bearer token")
    if not hmac.compare_digest(token.strip().encode(), settings.cron_secret.encode()):
        raise UnauthorizedError("Invalid cron secret")
