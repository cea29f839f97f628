"""Read-only snapshots of the application and judge registries."""

from __future__ import annotations

import os
from collections import defaultdict

from sqlalchemy.orm import Session

from .. import models
from ..sectors import REVIEWABLE_STAGES, sectors_for_expertise
from .distribution import (
    ApplicationSnapshot,
    DistributionPlan,
    JudgeSnapshot,
    plan_distribution,
)
from .lock_store import as_utc

# purpose: freeze registry rows into the snapshots one distribution epoch runs over
# status: active
# depends_on: backend.judging.models.Judge, backend.judging.models.Application

DISTRIBUTION_SEED = os.getenv("DISTRIBUTION_SEED") or None


def active_judge_snapshots(db: Session) -> list[JudgeSnapshot]:
    judges = (
        db.query(models.Judge)
        .filter(models.Judge.is_active.is_(True))
        .order_by(models.Judge.created_at.asc())
        .all()
    )
    return [
        JudgeSnapshot(
            judge_id=str(judge.id),
            expertise_sectors=sectors_for_expertise(judge.expertise_sectors or []),
            created_at=as_utc(judge.created_at) if judge.created_at else None,
            max_applications=judge.max_applications,
        )
        for judge in judges
    ]


def reviewable_application_snapshots(db: Session) -> list[ApplicationSnapshot]:
    applications = (
        db.query(models.Application)
        .filter(models.Application.workflow_stage.in_(sorted(REVIEWABLE_STAGES)))
        .order_by(models.Application.created_at.asc())
        .all()
    )
    return [
        ApplicationSnapshot(
            application_id=str(application.id),
            sector=application.sector,
            created_at=as_utc(application.created_at) if application.created_at else None,
        )
        for application in applications
    ]


def conflict_exclusions(db: Session) -> dict[str, set[str]]:
    exclusions: dict[str, set[str]] = defaultdict(set)
    for declaration in db.query(models.ConflictDeclaration).all():
        exclusions[str(declaration.judge_id)].add(str(declaration.application_id))
    return dict(exclusions)


def current_plan(db: Session, *, seed: str | None = DISTRIBUTION_SEED) -> DistributionPlan:
    """Run one distribution epoch over the registries as they stand now."""

    return plan_distribution(
        reviewable_application_snapshots(db),
        active_judge_snapshots(db),
        exclusions=conflict_exclusions(db),
        seed=seed,
    )
