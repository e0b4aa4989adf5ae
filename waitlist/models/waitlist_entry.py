from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, JSON

from waitlist.core.database import Base


def _utcnow():
    return datetime.now(timezone.utc)


class WaitlistEntry(Base):
    __tablename__ = "waitlist_entries"

    id = Column(Integer, primary_key=True, autoincrement=True)
    name = Column(String, nullable=False)
    email = Column(String, nullable=False, unique=True, index=True)  # unique index ix_waitlist_entries_email
    position = Column(Integer, nullable=True)  # null until the population threshold is reached

    # Referrals
    referral_code = Column(String, nullable=False, unique=True, index=True)
    referred_by = Column(String, nullable=True, index=True)  # informational, not a FK
    referral_count = Column(Integer, nullable=False, default=0)

    # Points & milestones
    points_earned = Column(Integer, nullable=False, default=0)
    milestones = Column(JSON, nullable=False, default=list)
    notification_preferences = Column(JSON, nullable=True, default=lambda: {"email": True, "webhook": False})

    # Timestamps (microsecond precision, assigned in Python so ordering is stable)
    last_position_update = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow, index=True)
