"""Pydantic schemas for the judge review coordination API."""

# purpose: aggregate request and response schemas for FastAPI surfaces and services
# status: active

from .review import (
    ApplicationReviewView,
    AssignmentPage,
    ConflictCreate,
    ConflictOut,
    DistributionInfo,
    LockAcquireRequest,
    LockDeniedOut,
    LockExtendRequest,
    LockGrantOut,
    LockOut,
    LockReleaseOut,
    LockStatusOut,
    PaginationOut,
    ReviewStartOut,
    ReviewStartRequest,
    ScoreCreate,
    ScoreOut,
)

__all__ = [
    "ApplicationReviewView",
    "AssignmentPage",
    "ConflictCreate",
    "ConflictOut",
    "DistributionInfo",
    "LockAcquireRequest",
    "LockDeniedOut",
    "LockExtendRequest",
    "LockGrantOut",
    "LockOut",
    "LockReleaseOut",
    "LockStatusOut",
    "PaginationOut",
    "ReviewStartOut",
    "ReviewStartRequest",
    "ScoreCreate",
    "ScoreOut",
]
