"""Resolve the calling judge from gateway-supplied identity headers."""

from uuid import UUID

from fastapi import Depends, Header, HTTPException, status
from sqlalchemy.orm import Session

from . import models
from .database import get_db

# purpose: turn X-Judge-Id / X-User-Id headers into an active Judge row
# status: active


def _parse_uuid(value: str, header: str) -> UUID:
    try:
        return UUID(value)
    except ValueError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=f"{header} header is not a valid identifier",
        ) from exc


def get_current_judge(
    x_judge_id: str | None = Header(default=None),
    x_user_id: str | None = Header(default=None),
    db: Session = Depends(get_db),
) -> models.Judge:
    if not x_judge_id or not x_user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Authentication required")
    judge_id = _parse_uuid(x_judge_id, "X-Judge-Id")
    user_id = _parse_uuid(x_user_id, "X-User-Id")

    judge = db.get(models.Judge, judge_id)
    if not judge or judge.user_id != user_id:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Judge access required")
    if not judge.is_active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Judge account is inactive")
    return judge
