from __future__ import annotations

import os
import sys
import tempfile
from datetime import datetime
from pathlib import Path
from typing import Dict, Iterator

# Ensure project root is on sys.path
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Point the engine at a throwaway database before the app module is imported
_DB_DIR = tempfile.mkdtemp(prefix="gym-admin-tests-")
os.environ["GYM_DATABASE_URL"] = f"sqlite:///{Path(_DB_DIR) / 'test.db'}"
os.environ["GYM_ADMIN_TOKEN"] = "test-admin-token"
os.environ["GYM_MEMBER_TOKEN"] = "test-member-token"
os.environ.pop("GYM_WEBHOOK_SECRET", None)
os.environ.pop("GYM_PLAN_CATALOG_PATH", None)

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from gym_admin.config import get_settings

get_settings.cache_clear()  # type: ignore[attr-defined]

from gym_admin.database import Base, SessionLocal, engine
from gym_admin.deps import get_now
from gym_admin.main import app
from gym_admin.models import Member, Trainer
from gym_admin.plans import get_catalog


ADMIN_TOKEN = "test-admin-token"
MEMBER_TOKEN = "test-member-token"

# A Monday morning; every test starts its clock here unless it moves it
DEFAULT_NOW = datetime(2025, 3, 10, 10, 0, 0)


class Clock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture(autouse=True)
def _fresh_schema() -> Iterator[None]:
    get_catalog.cache_clear()  # type: ignore[attr-defined]
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield


@pytest.fixture()
def now() -> datetime:
    return DEFAULT_NOW


@pytest.fixture()
def db() -> Iterator[Session]:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.rollback()
        session.close()


@pytest.fixture()
def clock() -> Clock:
    return Clock(DEFAULT_NOW)


@pytest.fixture()
def client(clock: Clock) -> Iterator[TestClient]:
    app.dependency_overrides[get_now] = clock
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_now, None)


def admin_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}


def member_headers(member_id: str) -> Dict[str, str]:
    return {"Authorization": f"Bearer {MEMBER_TOKEN}", "X-Member-Id": member_id}


def make_member(db: Session, member_id: str = "m1", name: str = "홍길동") -> Member:
    member = Member(id=member_id, name=name, phone="010-0000-0000", created_at=DEFAULT_NOW)
    db.add(member)
    db.commit()
    return member


def make_trainer(db: Session, trainer_id: str = "t1", name: str = "김트레이너") -> Trainer:
    trainer = Trainer(id=trainer_id, name=name, specialty="weights")
    db.add(trainer)
    db.commit()
    return trainer
