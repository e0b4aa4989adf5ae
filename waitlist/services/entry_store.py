"""
Entry Store - durable waitlist records

Every method takes an open Session so callers can group several operations
into one transaction via EntryStore.transaction(). Connectivity failures are
surfaced as StorageUnavailableError; the store never retries on its own.
"""
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Callable, Generator, List, Optional, Tuple
import logging

from sqlalchemy import func, text
from sqlalchemy.exc import IntegrityError, OperationalError, DisconnectionError, TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from waitlist.core.database import SessionLocal
from waitlist.core.exceptions import DuplicateEmailError, StorageUnavailableError, ValidationError
from waitlist.models.waitlist_entry import WaitlistEntry
from waitlist.services.position_calculator import RankingRow

logger = logging.getLogger(__name__)

# Transaction-scoped advisory lock serialising position assignment on Postgres
POPULATION_LOCK_KEY = 715_150


class EntryStore:
    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, position_threshold: int = 150):
        self.session_factory = session_factory
        self.position_threshold = position_threshold

    @contextmanager
    def transaction(self) -> Generator[Session, None, None]:
        """Commit on success, roll back everything on any error."""
        db = self.session_factory()
        try:
            yield db
            db.commit()
        except (OperationalError, DisconnectionError, PoolTimeoutError) as e:
            db.rollback()
            logger.error(f"Storage unavailable: {e}")
            raise StorageUnavailableError("Database is unavailable", details=str(e)) from e
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def lock_population(self, db: Session) -> None:
        if db.get_bind().dialect.name == "postgresql":
            db.execute(text("SELECT pg_advisory_xact_lock(:key)"), {"key": POPULATION_LOCK_KEY})

    # --- Reads ---

    def get(self, db: Session, email: str) -> Optional[WaitlistEntry]:
        return db.query(WaitlistEntry).filter(WaitlistEntry.email == email.lower().strip()).first()

    def get_by_id(self, db: Session, entry_id: int, for_update: bool = False) -> Optional[WaitlistEntry]:
        query = db.query(WaitlistEntry).filter(WaitlistEntry.id == entry_id)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def get_by_referral_code(self, db: Session, referral_code: str, for_update: bool = False) -> Optional[WaitlistEntry]:
        query = db.query(WaitlistEntry).filter(WaitlistEntry.referral_code == referral_code)
        if for_update:
            query = query.with_for_update()
        return query.first()

    def referral_code_exists(self, db: Session, referral_code: str) -> bool:
        return self.get_by_referral_code(db, referral_code) is not None

    def count(self, db: Session) -> int:
        return db.query(func.count(WaitlistEntry.id)).scalar() or 0

    def count_unpositioned(self, db: Session) -> int:
        return db.query(func.count(WaitlistEntry.id)).filter(WaitlistEntry.position.is_(None)).scalar() or 0

    def count_referred_by(self, db: Session, referral_code: str) -> int:
        return (
            db.query(func.count(WaitlistEntry.id))
            .filter(WaitlistEntry.referred_by == referral_code)
            .scalar()
            or 0
        )

    def ranking_rows(self, db: Session) -> List[Tuple[RankingRow, Optional[int]]]:
        """Whole population as (ranking row, current position)."""
        rows = db.query(
            WaitlistEntry.id,
            WaitlistEntry.created_at,
            WaitlistEntry.points_earned,
            WaitlistEntry.position,
        ).all()
        return [(RankingRow(r.id, r.created_at, r.points_earned or 0), r.position) for r in rows]

    def _referral_counts(self, db: Session):
        return (
            db.query(
                WaitlistEntry.referred_by.label("code"),
                func.count(WaitlistEntry.id).label("referrals"),
            )
            .filter(WaitlistEntry.referred_by.isnot(None))
            .group_by(WaitlistEntry.referred_by)
            .subquery()
        )

    def list_entries(self, db: Session) -> List[Tuple[WaitlistEntry, int]]:
        """All entries with their computed referral count, newest first."""
        referrals = self._referral_counts(db)
        return (
            db.query(WaitlistEntry, func.coalesce(referrals.c.referrals, 0))
            .outerjoin(referrals, referrals.c.code == WaitlistEntry.referral_code)
            .order_by(WaitlistEntry.created_at.desc(), WaitlistEntry.id.desc())
            .all()
        )

    def referral_count_drift(self, db: Session) -> List[Tuple[WaitlistEntry, int]]:
        """Entries whose stored referral_count disagrees with the computed one."""
        return [
            (entry, computed)
            for entry, computed in self.list_entries(db)
            if (entry.referral_count or 0) != computed
        ]

    # --- Writes ---

    def create(
        self,
        db: Session,
        *,
        name: str,
        email: str,
        referral_code: str,
        referred_by: Optional[str] = None,
    ) -> WaitlistEntry:
        """Insert a new entry and decide its initial position.

        Below the threshold the position stays null. The entry that brings the
        population to the threshold first backfills every unpositioned entry
        in signup order, then takes position == count.
        """
        email = email.lower().strip()
        self.lock_population(db)

        if self.get(db, email) is not None:
            raise DuplicateEmailError("This email is already registered for the waitlist")

        count = self.count(db) + 1  # including this entry
        position = None
        if count >= self.position_threshold:
            if self.count_unpositioned(db) > 0:
                assigned = self.assign_sequential_positions(db)
                logger.info(f"Waitlist reached {count} entries; backfilled {assigned} positions")
            position = count

        entry = WaitlistEntry(
            name=name,
            email=email,
            position=position,
            referral_code=referral_code,
            referred_by=referred_by,
            referral_count=0,
            points_earned=0,
            milestones=[],
        )
        if position is not None:
            entry.last_position_update = datetime.now(timezone.utc)
        db.add(entry)
        try:
            db.flush()
        except IntegrityError as e:
            if "referral_code" in str(e.orig):
                raise
            raise DuplicateEmailError("This email is already registered for the waitlist", details=str(e.orig)) from e
        return entry

    def assign_sequential_positions(self, db: Session) -> int:
        """Number unpositioned entries by signup order, after the current maximum.

        Entries that already hold a position are left alone, so re-running
        this never assigns a position twice.
        """
        start = db.query(func.max(WaitlistEntry.position)).scalar() or 0
        unpositioned = (
            db.query(WaitlistEntry)
            .filter(WaitlistEntry.position.is_(None))
            .order_by(WaitlistEntry.created_at.asc(), WaitlistEntry.id.asc())
            .all()
        )
        now = datetime.now(timezone.utc)
        for offset, entry in enumerate(unpositioned, start=1):
            entry.position = start + offset
            entry.last_position_update = now
        db.flush()
        return len(unpositioned)

    def update_position(self, db: Session, entry_id: int, position: Optional[int]) -> None:
        db.query(WaitlistEntry).filter(WaitlistEntry.id == entry_id).update(
            {
                WaitlistEntry.position: position,
                WaitlistEntry.last_position_update: datetime.now(timezone.utc),
            },
            synchronize_session="fetch",
        )

    def update_points_and_milestones(
        self,
        db: Session,
        entry_id: int,
        points_delta: int,
        milestone: Optional[str] = None,
    ) -> Optional[bool]:
        """Add points and record the milestone if absent.

        Returns whether the milestone was newly added, or None when the entry
        does not exist.
        """
        if points_delta < 0:
            raise ValidationError("Points can only increase", details=f"points_delta={points_delta}")
        entry = self.get_by_id(db, entry_id, for_update=True)
        if entry is None:
            return None
        entry.points_earned = (entry.points_earned or 0) + points_delta
        added = False
        current = list(entry.milestones or [])
        if milestone and milestone not in current:
            # JSON columns are not mutation-tracked; assign a new list
            entry.milestones = current + [milestone]
            added = True
        db.flush()
        return added

    def increment_referral_count(self, db: Session, entry_id: int) -> int:
        """Increment referral_count; returns the count before the increment."""
        entry = self.get_by_id(db, entry_id, for_update=True)
        previous = entry.referral_count or 0
        entry.referral_count = previous + 1
        db.flush()
        return previous

    def signup_counts_by_day(self, db: Session, start: datetime, end: datetime):
        day = func.date(WaitlistEntry.created_at)
        return (
            db.query(day.label("day"), func.count(WaitlistEntry.id))
            .filter(WaitlistEntry.created_at >= start, WaitlistEntry.created_at <= end)
            .group_by(day)
            .order_by(day)
            .all()
        )
