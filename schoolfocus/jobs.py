"""
Background jobs
Daily usage-pattern learning (2 AM) and AI categorization (3 AM), run as asyncio tasks
"""

import asyncio
import logging
from datetime import datetime, timedelta, tzinfo
from typing import Awaitable, Callable, Optional
from zoneinfo import ZoneInfo

from schoolfocus.errors import ClassifierError
from schoolfocus.services import Services

logger = logging.getLogger(__name__)


def seconds_until(hour: int, now: datetime) -> float:
    """Seconds from now until the next hour:00 in now's timezone"""
    target = now.replace(hour=hour, minute=0, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


async def run_learning_job(services: Services) -> int:
    logger.info("[LearningJob] Starting daily usage pattern analysis...")
    try:
        suggestions = await services.learner.learn_from_usage_patterns()
    except Exception:
        logger.exception("[LearningJob] Error during learning analysis")
        return 0

    logger.info("[LearningJob] Generated %d categorization suggestions", len(suggestions))
    for s in suggestions[:5]:
        logger.info(
            "[LearningJob] Suggestion: %s - %s -> %s (confidence: %s)",
            s.domain, s.current_category.value, s.suggested_category.value, s.confidence,
        )
    return len(suggestions)


async def run_ai_job(services: Services) -> int:
    logger.info("[AICategorizationJob] Starting daily AI website categorization...")
    try:
        suggestions = await services.ai_generator.run_daily_analysis()
    except ClassifierError as exc:
        logger.error("[AICategorizationJob] Classifier unavailable: %s", exc)
        return 0
    except Exception:
        logger.exception("[AICategorizationJob] Error during AI categorization")
        return 0

    logger.info("[AICategorizationJob] Generated %d AI categorization suggestions", len(suggestions))
    for s in suggestions[:3]:
        logger.info("[AICategorizationJob] Suggested: %s -> %s (confidence: %s)", s.domain, s.category.value, s.confidence)
    return len(suggestions)


class JobScheduler:
    """Runs each job once a day at a fixed local hour until stopped"""

    def __init__(self, services: Services, clock: Optional[Callable[[tzinfo], datetime]] = None):
        self.services = services
        self.settings = services.settings
        self.tz = ZoneInfo(self.settings.SCHEDULER_TIMEZONE)
        self._clock = clock or datetime.now
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks)

    def start(self) -> None:
        if self.running:
            return

        self._tasks = [
            asyncio.create_task(
                self._daily(self.settings.LEARNING_JOB_HOUR, run_learning_job),
                name="learning_job",
            ),
            asyncio.create_task(
                self._daily(self.settings.AI_JOB_HOUR, run_ai_job),
                name="ai_categorization_job",
            ),
            asyncio.create_task(self._initial_learning(), name="initial_learning_job"),
        ]
        logger.info(
            "Jobs scheduled: learning daily at %02d:00, AI categorization daily at %02d:00 (%s)",
            self.settings.LEARNING_JOB_HOUR, self.settings.AI_JOB_HOUR, self.settings.SCHEDULER_TIMEZONE,
        )

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        for task in self._tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass
        self._tasks = []
        logger.info("Jobs stopped")

    async def _daily(self, hour: int, job: Callable[[Services], Awaitable[int]]) -> None:
        while True:
            await asyncio.sleep(seconds_until(hour, self._clock(self.tz)))
            await job(self.services)

    async def _initial_learning(self) -> None:
        await asyncio.sleep(self.settings.LEARNING_STARTUP_DELAY_SECONDS)
        logger.info("[LearningJob] Running initial usage pattern analysis...")
        await run_learning_job(self.services)
