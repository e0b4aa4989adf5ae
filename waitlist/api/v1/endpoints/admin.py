from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import StreamingResponse
from typing import List, Optional
from datetime import datetime, timedelta
import csv
import io
import pytz

from waitlist.core.deps import get_waitlist_service, require_admin
from waitlist.core.exceptions import StorageUnavailableError
from waitlist.schemas.waitlist import RecomputeOut, ReferralSyncOut, WaitlistEntryOut, WaitlistStats
from waitlist.services.waitlist_service import WaitlistService

router = APIRouter(prefix="/admin/waitlist", tags=["admin"], dependencies=[Depends(require_admin)])


def _unavailable(e: StorageUnavailableError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=e.message)


@router.get("", response_model=List[WaitlistEntryOut])
def list_entries(service: WaitlistService = Depends(get_waitlist_service)):
    """All entries with computed referral counts, newest first"""
    try:
        return service.list_entries()
    except StorageUnavailableError as e:
        raise _unavailable(e) from e


@router.get("/stats", response_model=WaitlistStats)
def waitlist_stats(service: WaitlistService = Depends(get_waitlist_service)):
    try:
        return service.stats()
    except StorageUnavailableError as e:
        raise _unavailable(e) from e


@router.get("/signups")
def signup_stats(
    service: WaitlistService = Depends(get_waitlist_service),
    start: Optional[str] = None,
    end: Optional[str] = None,
    tz: str = "UTC",
):
    """Daily signup counts between start and end (inclusive)."""
    try:
        timezone = pytz.timezone(tz)
    except pytz.UnknownTimeZoneError:
        timezone = pytz.timezone("UTC")

    # default window: last 30 days
    now = datetime.now(timezone)
    try:
        end_dt = timezone.localize(datetime.fromisoformat(end)) if end else now
        start_dt = timezone.localize(datetime.fromisoformat(start)) if start else end_dt - timedelta(days=30)
    except ValueError:
        raise HTTPException(status_code=400, detail="start/end must be ISO dates")

    # Normalize to date boundaries (UTC for DB comparison)
    start_utc = start_dt.astimezone(pytz.UTC).replace(hour=0, minute=0, second=0, microsecond=0)
    end_utc = end_dt.astimezone(pytz.UTC).replace(hour=23, minute=59, second=59, microsecond=999999)

    try:
        index = service.signup_counts(start_utc, end_utc)
    except StorageUnavailableError as e:
        raise _unavailable(e) from e

    # Build full day range
    result = []
    day = start_dt.date()
    while day <= end_dt.date():
        result.append({"day": day.isoformat(), "count": index.get(day.isoformat(), 0)})
        day += timedelta(days=1)

    return {"start": start_dt.date().isoformat(), "end": end_dt.date().isoformat(), "tz": tz, "data": result}


@router.get("/export")
def export_entries(service: WaitlistService = Depends(get_waitlist_service)):
    """CSV export of the waitlist"""
    try:
        entries = service.list_entries()
    except StorageUnavailableError as e:
        raise _unavailable(e) from e

    output = io.StringIO()
    writer = csv.writer(output)
    writer.writerow([
        "id", "name", "email", "position", "referral_code", "referred_by",
        "referral_count", "points_earned", "milestones", "created_at",
    ])
    for entry in entries:
        writer.writerow([
            entry.id,
            entry.name,
            entry.email,
            "" if entry.position is None else entry.position,
            entry.referral_code,
            entry.referred_by or "",
            entry.referral_count,
            entry.points_earned,
            ";".join(entry.milestones),
            entry.created_at.isoformat(),
        ])

    return StreamingResponse(
        iter([output.getvalue()]),
        media_type="text/csv",
        headers={
            "Content-Disposition": f"attachment; filename=waitlist-{datetime.now().strftime('%Y%m%d')}.csv"
        }
    )


@router.post("/recompute", response_model=RecomputeOut)
def recompute_positions(service: WaitlistService = Depends(get_waitlist_service)):
    """Re-rank the whole population now"""
    try:
        return service.recompute_all()
    except StorageUnavailableError as e:
        raise _unavailable(e) from e


@router.post("/sync-referrals", response_model=ReferralSyncOut)
def sync_referral_counts(service: WaitlistService = Depends(get_waitlist_service)):
    """Converge stored referral counts with the entries that name each code"""
    try:
        return service.sync_referral_counts()
    except StorageUnavailableError as e:
        raise _unavailable(e) from e
