"""Pydantic schemas for review locks, assignments and scoring."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


class LockAcquireRequest(BaseModel):
    lock_type: str = "review"
    lock_duration: Optional[int] = None


class LockExtendRequest(BaseModel):
    extend_by: Optional[int] = None


class LockOut(BaseModel):
    application_id: str
    judge_id: str
    session_id: str
    lock_type: str
    acquired_at: datetime
    expires_at: datetime
    last_activity_at: datetime

    model_config = ConfigDict(from_attributes=True)


class LockGrantOut(BaseModel):
    lock: LockOut
    expires_at: datetime
    time_remaining: int

    model_config = ConfigDict(from_attributes=True)


class LockDeniedOut(BaseModel):
    error: str
    locked_by: Optional[str] = None
    expires_at: Optional[datetime] = None
    time_remaining: int = 0


class LockStatusOut(BaseModel):
    application_id: str
    is_locked: bool
    locked_by: Optional[str] = None
    judge_id: Optional[str] = None
    lock_type: Optional[str] = None
    acquired_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    time_remaining: int = 0
    judge_has_lock: bool = False

    model_config = ConfigDict(from_attributes=True)


class LockReleaseOut(BaseModel):
    application_id: str
    released: bool


class PaginationOut(BaseModel):
    current_page: int
    total_pages: int
    total_items: int
    items_per_page: int


class DistributionInfo(BaseModel):
    judge_position: Optional[int]
    total_judges: int
    total_applications: int
    target: int
    expertise_matches: int
    overflow_applications: int
    uncovered_sectors: list[str] = Field(default_factory=list)
    distribution_method: str = "hybrid_expertise_equal_workload"


class AssignmentPage(BaseModel):
    judge_id: str
    application_ids: list[str]
    pagination: PaginationOut
    distribution: DistributionInfo


class ApplicationReviewView(BaseModel):
    id: UUID
    business_name: str
    category: Optional[str] = None
    sector: str
    workflow_stage: str
    business_description: Optional[str] = None
    details: dict[str, Any] = Field(default_factory=dict)
    created_at: datetime


class ReviewStartRequest(BaseModel):
    lock_type: str = "review"
    lock_duration: Optional[int] = None


class ReviewStartOut(BaseModel):
    lock: LockGrantOut
    application: ApplicationReviewView


class ScoreCreate(BaseModel):
    scoring_round: Literal["first_round", "final_round"] = "first_round"
    innovation_differentiation: int = Field(ge=1, le=20)
    market_traction_growth: int = Field(ge=1, le=20)
    impact_job_creation: int = Field(ge=1, le=25)
    financial_health_governance: int = Field(ge=1, le=15)
    inclusion_sustainability: int = Field(ge=1, le=10)
    scalability_award_use: int = Field(ge=1, le=10)
    comments: Optional[str] = Field(default=None, max_length=1000)


class ScoreOut(BaseModel):
    id: UUID
    application_id: UUID
    judge_id: UUID
    scoring_round: str
    innovation_differentiation: int
    market_traction_growth: int
    impact_job_creation: int
    financial_health_governance: int
    inclusion_sustainability: int
    scalability_award_use: int
    total_score: int
    comments: Optional[str] = None
    scored_at: datetime
    lock_released: bool = True

    model_config = ConfigDict(from_attributes=True)


class ConflictCreate(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=1000)


class ConflictOut(BaseModel):
    id: UUID
    application_id: UUID
    judge_id: UUID
    reason: Optional[str] = None
    declared_at: datetime
    lock_released: bool = True

    model_config = ConfigDict(from_attributes=True)
