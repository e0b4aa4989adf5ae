"""
Waitlist engine

One WaitlistService owns one recompute queue. It is built once at startup
and injected into the HTTP layer; tests build their own with a test store,
an inline queue and a recording notifier.
"""
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, List, Optional
import logging
import secrets

from pydantic import ValidationError as PydanticValidationError

from waitlist.core.config import settings
from waitlist.core.exceptions import NotFoundError, NotificationError, ValidationError
from waitlist.core.rules import Milestone, WaitlistRules
from waitlist.schemas.waitlist import (
    QueueStats,
    RecomputeOut,
    ReferralSyncOut,
    WaitlistEntryOut,
    WaitlistJoin,
    WaitlistJoinOut,
    WaitlistPositionOut,
    WaitlistStats,
)
from waitlist.services.entry_store import EntryStore
from waitlist.services.notification_service import CeleryNotifier, NullNotifier
from waitlist.services.points_service import PointsService
from waitlist.services.ranking_service import RankingService, RecomputeResult
from waitlist.services.recompute_queue import RecomputeQueue
from waitlist.utils.audit import audit

logger = logging.getLogger(__name__)

REFERRAL_CODE_ATTEMPTS = 5


@dataclass
class _Welcome:
    email: str
    name: str
    referral_code: str
    position: Optional[int]


class WaitlistService:
    def __init__(self, store: EntryStore, rules: WaitlistRules, notifier=None, executor=None):
        self.store = store
        self.rules = rules
        self.notifier = notifier or NullNotifier()
        self.queue = RecomputeQueue(self._recompute_batch, executor=executor)
        self.points = PointsService(store, rules, on_change=self.queue.enqueue)
        self.ranking = RankingService(store, rules)

    # --- Signup ---

    def generate_referral_code(self) -> str:
        return secrets.token_hex(4).upper()

    def join(self, name: str, email: str, referred_by: Optional[str] = None) -> WaitlistJoinOut:
        try:
            payload = WaitlistJoin(name=name, email=email)
        except PydanticValidationError as e:
            raise ValidationError(
                "Please check your input and try again",
                details=e.errors(include_url=False, include_context=False),
                error_code="VALIDATION_ERROR",
            ) from e
        referred_by = (referred_by or "").strip() or None
        early_bird_points = self.rules.milestone_points

        # Entry, early-bird bonus and referral credit commit together or not at all
        with self.store.transaction() as db:
            referral_code = self._unused_referral_code(db)
            entry = self.store.create(
                db,
                name=payload.name,
                email=payload.email,
                referral_code=referral_code,
                referred_by=referred_by,
            )
            welcome = _Welcome(entry.email, entry.name, entry.referral_code, entry.position)
            entry_id = entry.id
            early_bird = welcome.position is None and self.points.grant_milestone(
                db, entry_id, Milestone.EARLY_BIRD, early_bird_points
            )
            credit = self.points.credit_referral(db, referred_by) if referred_by else None
            total = self.store.count(db)

        audit("WAITLIST_JOINED", email=welcome.email, entry_id=entry_id, referred=bool(referred_by),
              position=welcome.position)
        logger.info(f"Entry {entry_id} joined the waitlist (position {welcome.position})")

        if early_bird:
            self.points.milestone_awarded(entry_id, Milestone.EARLY_BIRD.value, early_bird_points)
        if credit is not None:
            self.points.referral_credited(credit)
        self._notify_welcome(welcome, total)
        return WaitlistJoinOut(id=entry_id, position=welcome.position, referral_code=welcome.referral_code, total=total)

    def _unused_referral_code(self, db) -> str:
        for _ in range(REFERRAL_CODE_ATTEMPTS):
            code = self.generate_referral_code()
            if not self.store.referral_code_exists(db, code):
                return code
        raise RuntimeError("Could not generate a unique referral code")

    # --- Reads ---

    def get_position(self, email: str) -> WaitlistPositionOut:
        if not email or not email.strip():
            raise ValidationError("Email is required", error_code="MISSING_EMAIL")
        with self.store.transaction() as db:
            entry = self.store.get(db, email)
            if entry is None:
                raise NotFoundError("User not found in waitlist")
            return WaitlistPositionOut(
                position=entry.position,
                total=self.store.count(db),
                referral_code=entry.referral_code,
                referral_count=self.store.count_referred_by(db, entry.referral_code),
                points_earned=entry.points_earned or 0,
                milestones=list(entry.milestones or []),
            )

    def list_entries(self) -> List[WaitlistEntryOut]:
        with self.store.transaction() as db:
            return [
                WaitlistEntryOut.model_validate(entry).model_copy(update={"referral_count": referrals})
                for entry, referrals in self.store.list_entries(db)
            ]

    def stats(self) -> WaitlistStats:
        with self.store.transaction() as db:
            rows = self.store.list_entries(db)
            milestone_counts: Dict[str, int] = {m.value: 0 for m in Milestone}
            for entry, _ in rows:
                for milestone in entry.milestones or []:
                    milestone_counts[milestone] = milestone_counts.get(milestone, 0) + 1
            return WaitlistStats(
                total=len(rows),
                positioned=sum(1 for entry, _ in rows if entry.position is not None),
                threshold=self.rules.position_threshold,
                total_referrals=sum(referrals for _, referrals in rows),
                total_points=sum(entry.points_earned or 0 for entry, _ in rows),
                milestones=milestone_counts,
                queue=QueueStats(**self.queue.stats()),
            )

    def signup_counts(self, start_utc: datetime, end_utc: datetime) -> Dict[str, int]:
        """Signups per UTC day between the two instants, keyed by ISO date."""
        with self.store.transaction() as db:
            rows = self.store.signup_counts_by_day(db, start_utc, end_utc)
        index = {}
        for day, count in rows:
            # SQLite returns strings, Postgres returns dates
            key = day.isoformat() if hasattr(day, "isoformat") else str(day)
            index[key] = int(count)
        return index

    # --- Points ---

    def record_social_share(self, email: str) -> WaitlistPositionOut:
        with self.store.transaction() as db:
            entry = self.store.get(db, email)
            if entry is None:
                raise NotFoundError("User not found in waitlist")
            entry_id = entry.id
        self.points.record_social_share(entry_id)
        return self.get_position(email)

    def award_points(self, entry_id: int, points: int, milestone: Optional[str] = None) -> bool:
        return self.points.award_points(entry_id, points, milestone)

    def process_referral(self, referral_code: str) -> Optional[int]:
        return self.points.process_referral(referral_code)

    # --- Contact ---

    def submit_contact(self, name: str, email: str, message: str) -> None:
        """Forward a contact form message to support.

        Unlike waitlist notifications, a dispatch failure is the caller's
        problem here: NotificationError propagates.
        """
        # Message body stays out of the logs
        logger.info(f"Contact request received from {email}")
        audit("CONTACT_SUBMITTED", email=email)
        self.notifier.contact_message(name, email, message)

    # --- Recompute ---

    def _recompute_batch(self, entry_ids) -> None:
        result = self.ranking.recompute(entry_ids)
        self._notify_moves(result)
        for entry_id in result.top_candidates:
            self.points.award_milestone(entry_id, Milestone.TOP_HUNDRED)

    def recompute_all(self) -> RecomputeOut:
        result = self.ranking.recompute()
        return RecomputeOut(entries=result.entries, changed=result.changed)

    def sync_referral_counts(self) -> ReferralSyncOut:
        """Converge stored referral_count with the computed count."""
        corrected = 0
        with self.store.transaction() as db:
            for entry, computed in self.store.referral_count_drift(db):
                logger.warning(
                    f"Entry {entry.id} referral_count {entry.referral_count} != computed {computed}; correcting"
                )
                entry.referral_count = computed
                corrected += 1
        return ReferralSyncOut(corrected=corrected)

    def close(self) -> None:
        self.queue.shutdown()

    # --- Notifications (always after commit, never raised) ---

    def _notify_welcome(self, welcome: _Welcome, total: int) -> None:
        try:
            self.notifier.send_welcome(welcome.email, welcome.name, welcome.referral_code, welcome.position, total)
        except NotificationError as e:
            logger.warning(f"Welcome notification dropped: {e.message} ({e.details})")

    def _notify_moves(self, result: RecomputeResult) -> None:
        for change in result.moved:
            try:
                self.notifier.position_changed(change.email, change.position, result.entries)
            except NotificationError as e:
                logger.warning(f"Position notification for entry {change.entry_id} dropped: {e.message} ({e.details})")


def build_waitlist_service() -> WaitlistService:
    rules = WaitlistRules.from_settings(settings)
    executor = None
    if settings.RECOMPUTE_IN_BACKGROUND:
        executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="position-recompute")
    notifier = CeleryNotifier() if settings.NOTIFICATIONS_ENABLED else NullNotifier()
    return WaitlistService(
        store=EntryStore(position_threshold=rules.position_threshold),
        rules=rules,
        notifier=notifier,
        executor=executor,
    )
