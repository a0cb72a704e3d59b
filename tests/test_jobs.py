"""Tests for the daily job scheduler."""

from __future__ import annotations

import asyncio
import datetime as dt
from zoneinfo import ZoneInfo

from schoolfocus.errors import ClassifierError
from schoolfocus.jobs import JobScheduler, run_ai_job, run_learning_job, seconds_until

from conftest import NOW, FakeClassifier, make_activity

LA = ZoneInfo("America/Los_Angeles")


class TestSecondsUntil:
    def test_later_today(self) -> None:
        now = dt.datetime(2025, 6, 16, 1, 30, tzinfo=LA)
        assert seconds_until(2, now) == 30 * 60

    def test_tomorrow_when_hour_has_passed(self) -> None:
        now = dt.datetime(2025, 6, 16, 2, 0, tzinfo=LA)
        assert seconds_until(2, now) == 24 * 3600


class TestJobRuns:
    async def test_learning_job_returns_count(self, services, store) -> None:
        start = dt.datetime.now(dt.timezone.utc).replace(hour=10, minute=0, second=0, microsecond=0)
        await store.add_activities([
            make_activity("https://mathsite.org", start - dt.timedelta(days=day + 1), 900) for day in range(6)
        ])

        assert await run_learning_job(services) == 1

    async def test_learning_job_swallows_errors(self, services, monkeypatch) -> None:
        async def boom(*args, **kwargs):
            raise RuntimeError("database is down")

        monkeypatch.setattr(services.learner, "learn_from_usage_patterns", boom)

        assert await run_learning_job(services) == 0

    async def test_ai_job_swallows_classifier_errors(self, services, store) -> None:
        await store.add_activities([
            make_activity("https://unknown-a.org", dt.datetime.now(dt.timezone.utc) - dt.timedelta(hours=i + 1), 60)
            for i in range(3)
        ])
        services.ai_generator.classifier = FakeClassifier(error=ClassifierError("no key"))

        assert await run_ai_job(services) == 0


class TestJobScheduler:
    async def test_start_and_stop(self, services) -> None:
        scheduler = JobScheduler(services, clock=lambda tz: NOW.astimezone(tz))

        scheduler.start()
        assert scheduler.running
        await asyncio.sleep(0)

        await scheduler.stop()
        assert not scheduler.running

    async def test_initial_learning_runs_after_delay(self, services, monkeypatch) -> None:
        calls = []

        async def learn(*args, **kwargs):
            calls.append(True)
            return []

        monkeypatch.setattr(services.learner, "learn_from_usage_patterns", learn)
        services.settings.LEARNING_STARTUP_DELAY_SECONDS = 0
        scheduler = JobScheduler(services, clock=lambda tz: NOW.astimezone(tz))

        scheduler.start()
        await asyncio.sleep(0.05)
        await scheduler.stop()

        assert calls == [True]
