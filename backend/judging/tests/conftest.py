import os
os.environ["TESTING"] = "1"
os.environ["DATABASE_URL"] = "sqlite:///./test.db"
import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import sys
from pathlib import Path

import uuid
from datetime import datetime, timedelta, timezone

sys.path.append(str(Path(__file__).resolve().parents[2]))

from judging import models, pubsub
from judging.main import app
from judging.database import Base, get_db

SQLALCHEMY_DATABASE_URL = "sqlite:///./test.db"
engine = create_engine(
    SQLALCHEMY_DATABASE_URL,
    connect_args={"check_same_thread": False, "timeout": 30},
)
TestingSessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

Base.metadata.drop_all(bind=engine)
Base.metadata.create_all(bind=engine)

def override_get_db():
    db = TestingSessionLocal()
    try:
        yield db
    finally:
        db.close()

app.dependency_overrides[get_db] = override_get_db


@pytest.fixture(autouse=True)
def clean_tables():
    with engine.begin() as connection:
        for table in reversed(Base.metadata.sorted_tables):
            connection.execute(table.delete())
    # fakeredis clients are bound to the event loop of the TestClient that created them
    pubsub._redis = None
    yield


@pytest.fixture
def client():
    with TestClient(app) as c:
        yield c


@pytest.fixture
def db():
    session = TestingSessionLocal()
    try:
        yield session
    finally:
        session.close()


_EPOCH = datetime(2026, 1, 1, tzinfo=timezone.utc)


def make_judge(session, *, expertise=(), order=0, is_active=True, name=None):
    """
    judging: purpose: persist a judge whose stable position is fixed by ``order``
    judging: outputs: committed models.Judge
    """

    judge = models.Judge(
        user_id=uuid.uuid4(),
        display_name=name or f"judge-{order}",
        expertise_sectors=list(expertise),
        is_active=is_active,
        created_at=_EPOCH + timedelta(minutes=order),
    )
    session.add(judge)
    session.commit()
    session.refresh(judge)
    return judge


def make_application(session, *, sector="Fashion", order=0, stage="submitted", details=None):
    application = models.Application(
        business_name=f"Business {order}",
        category="small",
        sector=sector,
        workflow_stage=stage,
        business_description="We make things.",
        details=details if details is not None else {"employees": 12},
        created_at=_EPOCH + timedelta(seconds=order),
    )
    session.add(application)
    session.commit()
    session.refresh(application)
    return application


def judge_headers(judge):
    return {"X-Judge-Id": str(judge.id), "X-User-Id": str(judge.user_id)}
