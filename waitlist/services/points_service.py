"""
Points & Milestone Engine

Point grants and referral credits run in one store transaction each; the
affected entry is handed to `on_change` (the recompute queue) only after the
transaction has committed.

`grant_milestone` and `credit_referral` work on an open session so a caller
can fold them into a larger transaction (signup does). Such a caller reports
the result with `milestone_awarded` / `referral_credited` once it commits.
"""
from dataclasses import dataclass
from typing import Callable, Optional
import logging

from sqlalchemy.orm import Session

from waitlist.core.exceptions import NotFoundError, ValidationError
from waitlist.core.rules import REFERRAL_MILESTONES, Milestone, WaitlistRules
from waitlist.services.entry_store import EntryStore
from waitlist.utils.audit import audit

logger = logging.getLogger(__name__)


@dataclass
class ReferralCredit:
    referrer_id: int
    referral_count: int
    points: int
    # Set only when this credit newly recorded the milestone
    milestone: Optional[str] = None


class PointsService:
    def __init__(self, store: EntryStore, rules: WaitlistRules, on_change: Callable[[int], None]):
        self.store = store
        self.rules = rules
        self.on_change = on_change

    def award_points(self, entry_id: int, points: int, milestone: Optional[str] = None) -> bool:
        """Add points, recording the milestone at most once.

        Points are added on every call even when the milestone is already
        present. Returns whether the milestone was newly recorded.
        """
        if points < 0:
            raise ValidationError("Points must be non-negative", details=f"points={points}")
        milestone = _milestone_value(milestone)
        with self.store.transaction() as db:
            added = self.store.update_points_and_milestones(db, entry_id, points, milestone)
            if added is None:
                raise NotFoundError(f"Waitlist entry {entry_id} not found")

        if added:
            audit("MILESTONE_AWARDED", entry_id=entry_id, milestone=milestone, points=points)
        self.on_change(entry_id)
        return added

    def award_milestone(self, entry_id: int, milestone: str, points: Optional[int] = None) -> bool:
        """One-time milestone bonus: a no-op, points included, if already held."""
        milestone = _milestone_value(milestone)
        points = self.rules.milestone_points if points is None else points
        with self.store.transaction() as db:
            added = self.grant_milestone(db, entry_id, milestone, points)
        if added:
            self.milestone_awarded(entry_id, milestone, points)
        return added

    def grant_milestone(self, db: Session, entry_id: int, milestone: str, points: Optional[int] = None) -> bool:
        milestone = _milestone_value(milestone)
        points = self.rules.milestone_points if points is None else points
        entry = self.store.get_by_id(db, entry_id, for_update=True)
        if entry is None:
            raise NotFoundError(f"Waitlist entry {entry_id} not found")
        if milestone in (entry.milestones or []):
            return False
        self.store.update_points_and_milestones(db, entry_id, points, milestone)
        return True

    def milestone_awarded(self, entry_id: int, milestone: str, points: int) -> None:
        audit("MILESTONE_AWARDED", entry_id=entry_id, milestone=milestone, points=points)
        logger.info(f"Awarded milestone {milestone} (+{points}) to entry {entry_id}")
        self.on_change(entry_id)

    def process_referral(self, referral_code: Optional[str]) -> Optional[int]:
        """Credit the owner of `referral_code`. Unknown codes are ignored.

        Returns the referrer's entry id, or None when nothing was credited.
        """
        if not referral_code:
            return None
        with self.store.transaction() as db:
            credit = self.credit_referral(db, referral_code)
        if credit is None:
            return None
        self.referral_credited(credit)
        return credit.referrer_id

    def credit_referral(self, db: Session, referral_code: str) -> Optional[ReferralCredit]:
        """Bump the referrer's count and award referral points in `db`.

        The milestone is chosen from the count before the increment.
        """
        referrer = self.store.get_by_referral_code(db, referral_code, for_update=True)
        if referrer is None:
            logger.warning(f"Ignoring unknown referral code {referral_code!r}")
            return None
        referrer_id = referrer.id
        previous = self.store.increment_referral_count(db, referrer_id)
        milestone = REFERRAL_MILESTONES.get(previous)
        milestone = milestone.value if milestone else None
        added = self.store.update_points_and_milestones(
            db, referrer_id, self.rules.referral_points, milestone
        )
        return ReferralCredit(
            referrer_id=referrer_id,
            referral_count=previous + 1,
            points=self.rules.referral_points,
            milestone=milestone if added else None,
        )

    def referral_credited(self, credit: ReferralCredit) -> None:
        audit("REFERRAL_CREDITED", entry_id=credit.referrer_id, referral_count=credit.referral_count,
              points=credit.points)
        if credit.milestone:
            audit("MILESTONE_AWARDED", entry_id=credit.referrer_id, milestone=credit.milestone,
                  points=credit.points)
        logger.info(f"Referral credited to entry {credit.referrer_id} (referral #{credit.referral_count})")
        self.on_change(credit.referrer_id)

    def record_social_share(self, entry_id: int) -> None:
        self.award_points(entry_id, self.rules.social_share_points)


def _milestone_value(milestone) -> Optional[str]:
    if isinstance(milestone, Milestone):
        return milestone.value
    return milestone
