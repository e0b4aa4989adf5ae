import secrets

from fastapi import Header, HTTPException, Request, status

from waitlist.core.config import settings
from waitlist.services.waitlist_service import WaitlistService


def get_waitlist_service(request: Request) -> WaitlistService:
    """The engine built at startup and held on app.state"""
    service = getattr(request.app.state, "waitlist_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Waitlist service is not ready",
        )
    return service


def require_admin(x_admin_token: str | None = Header(default=None)) -> None:
    """Ensure the request carries the configured admin token"""
    if not settings.ADMIN_TOKEN or not x_admin_token or not secrets.compare_digest(x_admin_token, settings.ADMIN_TOKEN):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin privileges required"
        )


def rate_limited() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        detail={"error": "RATE_LIMIT_EXCEEDED", "message": "Too many requests, please try again later"},
    )
