"""
Ranking constants and milestone identifiers
"""
import enum
from dataclasses import dataclass

from waitlist.core.config import Settings, settings as default_settings


class Milestone(str, enum.Enum):
    EARLY_BIRD = "early_bird"
    FIRST_REFERRAL = "first_referral"
    FIVE_REFERRALS = "five_referrals"
    TEN_REFERRALS = "ten_referrals"
    TOP_HUNDRED = "top_hundred"


# Keyed by the referrer's referral_count *before* the increment
REFERRAL_MILESTONES = {
    0: Milestone.FIRST_REFERRAL,
    4: Milestone.FIVE_REFERRALS,
    9: Milestone.TEN_REFERRALS,
}


@dataclass(frozen=True)
class WaitlistRules:
    position_threshold: int = 150
    referral_points: int = 100
    social_share_points: int = 50
    milestone_points: int = 200
    points_weight: int = 1000
    top_milestone_cutoff: int = 100

    @classmethod
    def from_settings(cls, settings: Settings = default_settings) -> "WaitlistRules":
        return cls(
            position_threshold=settings.WAITLIST_POSITION_THRESHOLD,
            referral_points=settings.REFERRAL_POINTS,
            social_share_points=settings.SOCIAL_SHARE_POINTS,
            milestone_points=settings.MILESTONE_POINTS,
            points_weight=settings.POINTS_WEIGHT,
            top_milestone_cutoff=settings.TOP_MILESTONE_CUTOFF,
        )
