"""Shared fixtures for the schoolfocus test suite."""

from __future__ import annotations

import datetime as dt

import pytest
from sqlalchemy.ext.asyncio import create_async_engine
from sqlalchemy.pool import StaticPool

from schoolfocus.ai_suggestions import ClassifiedWebsite
from schoolfocus.config import Settings
from schoolfocus.database import Base, create_session_maker
from schoolfocus.models import Activity, User
from schoolfocus.reference import Taxonomy, load_reference_data
from schoolfocus.services import build_services
from schoolfocus.errors import ClassifierError

ORG_ID = 1
OTHER_ORG_ID = 2
NOW = dt.datetime(2025, 6, 16, 12, 0, tzinfo=dt.timezone.utc)


class FakeClock:
    """Monotonic clock that only moves when told to."""

    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeClassifier:
    """Returns canned verdicts (or raises) and records every batch it saw."""

    def __init__(self, verdicts: list[ClassifiedWebsite] | None = None, error: Exception | None = None) -> None:
        self.verdicts = verdicts or []
        self.error = error
        self.calls: list[list[str]] = []

    async def classify(self, websites, taxonomy):
        self.calls.append([w.domain for w in websites])
        if self.error is not None:
            raise self.error
        return list(self.verdicts)


def make_activity(
    url: str | None,
    start: dt.datetime,
    seconds: float,
    user_id: str = "student-1",
    organization_id: int | None = ORG_ID,
    app_name: str = "Google Chrome",
) -> Activity:
    end = start + dt.timedelta(seconds=seconds)
    return Activity(
        user_id=user_id,
        organization_id=organization_id,
        app_name=app_name,
        url=url,
        start_time=start,
        end_time=end,
        duration_seconds=int(seconds),
    )


@pytest.fixture()
def settings() -> Settings:
    return Settings(
        _env_file=None,
        DATABASE_URL="sqlite+aiosqlite://",
        SCHEDULER_ENABLED=False,
        RULE_CACHE_TTL_SECONDS=300.0,
        OPENAI_API_KEY=None,
    )


@pytest.fixture()
def reference():
    return load_reference_data()


@pytest.fixture()
def taxonomy(reference) -> Taxonomy:
    return Taxonomy.from_seeds(reference.subcategories)


@pytest.fixture()
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    from schoolfocus import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_maker(engine):
    return create_session_maker(engine)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def classifier() -> FakeClassifier:
    return FakeClassifier(error=ClassifierError("no classifier configured in tests"))


@pytest.fixture()
async def services(settings, session_maker, classifier, clock, reference):
    services = build_services(settings, session_maker, classifier=classifier, clock=clock, reference=reference)
    await services.initialize()
    return services


@pytest.fixture()
def store(services):
    return services.store


@pytest.fixture()
def resolver(services):
    return services.resolver


@pytest.fixture()
async def student(session_maker) -> User:
    async with session_maker.begin() as session:
        user = User(id="student-1", email="student@school.test", name="Student", role="student", organization_id=ORG_ID)
        session.add(user)
    return user
