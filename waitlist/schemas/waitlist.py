from pydantic import BaseModel, EmailStr, field_validator
from typing import List, Optional, Dict
from datetime import datetime


class WaitlistJoin(BaseModel):
    name: str
    email: EmailStr

    @field_validator('name')
    @classmethod
    def name_min_length(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError('Name must be at least 2 characters')
        return v

    @field_validator('email')
    @classmethod
    def normalize_email(cls, v):
        return v.lower().strip()


class ShareRequest(BaseModel):
    email: EmailStr


class ContactRequest(BaseModel):
    name: str
    email: EmailStr
    message: str
    consent: bool

    @field_validator('name')
    @classmethod
    def name_min_length(cls, v):
        v = v.strip()
        if len(v) < 2:
            raise ValueError('Name must be at least 2 characters')
        return v

    @field_validator('message')
    @classmethod
    def message_min_length(cls, v):
        v = v.strip()
        if len(v) < 10:
            raise ValueError('Message must be at least 10 characters')
        return v

    @field_validator('consent')
    @classmethod
    def consent_given(cls, v):
        if v is not True:
            raise ValueError('Consent is required')
        return v


class WaitlistJoinOut(BaseModel):
    id: int
    position: Optional[int]
    referral_code: str
    total: int


class WaitlistPositionOut(BaseModel):
    position: Optional[int]
    total: int
    referral_code: str
    referral_count: int
    points_earned: int
    milestones: List[str]


class WaitlistEntryOut(BaseModel):
    id: int
    name: str
    email: str
    position: Optional[int]
    referral_code: str
    referred_by: Optional[str]
    referral_count: int
    points_earned: int
    milestones: List[str]
    last_position_update: Optional[datetime]
    created_at: datetime

    class Config:
        from_attributes = True


class QueueStats(BaseModel):
    pending: int
    draining: bool
    batches_processed: int
    batches_failed: int


class WaitlistStats(BaseModel):
    total: int
    positioned: int
    threshold: int
    total_referrals: int
    total_points: int
    milestones: Dict[str, int]
    queue: QueueStats


class RecomputeOut(BaseModel):
    entries: int
    changed: int


class ReferralSyncOut(BaseModel):
    corrected: int
