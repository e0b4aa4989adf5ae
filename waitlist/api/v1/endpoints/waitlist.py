from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from typing import Optional

from waitlist.core.config import settings
from waitlist.core.deps import get_waitlist_service, rate_limited
from waitlist.core.exceptions import (
    DuplicateEmailError,
    NotFoundError,
    StorageUnavailableError,
    ValidationError,
)
from waitlist.schemas.waitlist import ShareRequest, WaitlistJoin, WaitlistJoinOut, WaitlistPositionOut
from waitlist.services.waitlist_service import WaitlistService
from waitlist.utils.rate_limiter import allow_for_client, allow_for_email

router = APIRouter(prefix="/waitlist", tags=["waitlist"])


def _storage_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"error": "STORAGE_UNAVAILABLE", "message": "Please try again shortly"},
    )


@router.post("", response_model=WaitlistJoinOut, status_code=201)
def join_waitlist(
    payload: WaitlistJoin,
    request: Request,
    ref: Optional[str] = Query(None, description="Referral code of the person who invited you"),
    service: WaitlistService = Depends(get_waitlist_service),
):
    client_host = request.client.host if request.client else None
    if not allow_for_client("join", client_host, settings.RATE_LIMIT_MAX_REQUESTS, settings.RATE_LIMIT_WINDOW_SECONDS):
        raise rate_limited()
    try:
        return service.join(payload.name, payload.email, referred_by=ref)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail={"error": "VALIDATION_ERROR", "message": e.message, "details": e.details})
    except DuplicateEmailError:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail={"error": "DUPLICATE_ENTRY", "message": "This email is already registered for the waitlist"},
        )
    except StorageUnavailableError as e:
        raise _storage_unavailable() from e


@router.get("/position", response_model=WaitlistPositionOut)
def get_position(
    email: Optional[str] = Query(None),
    service: WaitlistService = Depends(get_waitlist_service),
):
    try:
        return service.get_position(email)
    except ValidationError as e:
        raise HTTPException(status_code=400, detail={"error": e.error_code or "VALIDATION_ERROR", "message": e.message})
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail={"error": "NOT_FOUND", "message": e.message})
    except StorageUnavailableError as e:
        raise _storage_unavailable() from e


@router.post("/share", response_model=WaitlistPositionOut)
def record_share(payload: ShareRequest, service: WaitlistService = Depends(get_waitlist_service)):
    """Credit a social share to the entry registered under this email."""
    # Per-email limit so a known address cannot be pumped with share points
    if not allow_for_email("share", payload.email, settings.SHARE_MAX_PER_HOUR, 3600):
        raise rate_limited()
    try:
        return service.record_social_share(payload.email)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail={"error": "NOT_FOUND", "message": e.message})
    except StorageUnavailableError as e:
        raise _storage_unavailable() from e
