from fastapi import APIRouter, Depends, HTTPException, Request, status

from waitlist.core.config import settings
from waitlist.core.deps import get_waitlist_service, rate_limited
from waitlist.core.exceptions import NotificationError
from waitlist.schemas.waitlist import ContactRequest
from waitlist.services.waitlist_service import WaitlistService
from waitlist.utils.rate_limiter import allow_for_client

router = APIRouter(prefix="/contact", tags=["contact"])


@router.post("")
def submit_contact(
    payload: ContactRequest,
    request: Request,
    service: WaitlistService = Depends(get_waitlist_service),
):
    """Contact form: the message is forwarded to the support inbox"""
    client_host = request.client.host if request.client else None
    if not allow_for_client("contact", client_host, settings.CONTACT_MAX_PER_HOUR, 3600):
        raise rate_limited()
    try:
        service.submit_contact(payload.name, payload.email, payload.message)
    except NotificationError as e:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail={"error": "NOTIFICATION_FAILED", "message": "Could not send your message, please try again later"},
        ) from e
    return {"message": "Contact request received"}
