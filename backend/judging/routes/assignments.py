"""Judge assignment API routes."""

from __future__ import annotations

import math
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.orm import Session

from .. import models, schemas
from ..auth import get_current_judge
from ..database import get_db
from ..services import registry
from ..services.distribution import DistributionError, NoActiveJudges

# purpose: serve each judge their slice of the current distribution epoch
# status: active
# depends_on: backend.judging.services.registry, backend.judging.services.distribution

router = APIRouter(prefix="/api/judges", tags=["assignments"])


@router.get("/{judge_id}/assignments", response_model=schemas.AssignmentPage)
def list_assignments(
    judge_id: UUID,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
    judge: models.Judge = Depends(get_current_judge),
):
    if judge_id != judge.id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Access denied")
    try:
        plan = registry.current_plan(db)
    except NoActiveJudges as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except DistributionError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc

    key = str(judge_id)
    assigned = plan.for_judge(key)
    overflow = set(plan.overflow)
    start = (page - 1) * limit
    total_applications = sum(plan.counts().values()) + len(plan.unassigned)

    return schemas.AssignmentPage(
        judge_id=key,
        application_ids=assigned[start : start + limit],
        pagination=schemas.PaginationOut(
            current_page=page,
            total_pages=math.ceil(len(assigned) / limit),
            total_items=len(assigned),
            items_per_page=limit,
        ),
        distribution=schemas.DistributionInfo(
            judge_position=plan.position(key),
            total_judges=len(plan.judge_order),
            total_applications=total_applications,
            target=plan.targets.get(key, 0),
            expertise_matches=sum(1 for app_id in assigned if app_id in plan.expertise_matched),
            overflow_applications=sum(1 for app_id in assigned if app_id in overflow),
            uncovered_sectors=plan.uncovered_sectors,
        ),
    )
