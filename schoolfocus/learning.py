"""
Usage-Pattern Learner
Mines recent activity per domain and proposes re-categorizations for admin review
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Optional
from zoneinfo import ZoneInfo

from schoolfocus.categorization import normalize_domain
from schoolfocus.models import CategorizationSuggestion
from schoolfocus.schemas import CategoryType, SuggestionSource, SuggestionStatus
from schoolfocus.store import RuleStore
from schoolfocus.website_categories import WebsiteCategoryService

logger = logging.getLogger(__name__)

FOCUS_SESSION_SECONDS = 300      # sessions longer than 5 min count as focused
LONG_SESSION_SECONDS = 600
SHORT_SESSION_SECONDS = 120
WORK_HOURS = (9, 17)
SCORE_DELTA = 0.2

# Productivity score implied by a stored category
CATEGORY_SCORES = {
    CategoryType.productive: 0.8,
    CategoryType.neutral: 0.5,
    CategoryType.distracting: 0.2,
}


@dataclass
class DomainStats:
    domain: str
    visit_count: int
    avg_duration: float
    unique_users: int
    days_visited: int
    focus_score: float
    avg_hour: float


@dataclass
class LearnedSuggestion:
    domain: str
    current_category: CategoryType
    suggested_category: CategoryType
    current_score: float
    suggested_score: float
    confidence: float
    needs_review: bool
    reason: str
    evidence: dict[str, Any] = field(default_factory=dict)


def aggregate_domain_stats(rows, min_visits: int, tz: timezone | ZoneInfo = timezone.utc) -> list[DomainStats]:
    """Group (user_id, url, start_time, end_time) rows by domain, busiest first"""
    sessions: dict[str, list] = defaultdict(list)
    for user_id, url, start_time, end_time in rows:
        domain = normalize_domain(url)
        if domain:
            sessions[domain].append((user_id, start_time, end_time))

    stats = []
    for domain, visits in sessions.items():
        if len(visits) < min_visits:
            continue

        durations = [(end - start).total_seconds() for _, start, end in visits]
        local_starts = [_as_utc(start).astimezone(tz) for _, start, _ in visits]
        stats.append(DomainStats(
            domain=domain,
            visit_count=len(visits),
            avg_duration=sum(durations) / len(durations),
            unique_users=len({user_id for user_id, _, _ in visits}),
            days_visited=len({start.date() for start in local_starts}),
            focus_score=sum(1 for d in durations if d > FOCUS_SESSION_SECONDS) / len(durations),
            avg_hour=sum(start.hour for start in local_starts) / len(local_starts),
        ))

    stats.sort(key=lambda s: (-s.visit_count, s.domain))
    return stats


def classify_usage(stats: DomainStats) -> tuple[CategoryType, float, bool, str]:
    """(suggested category, suggested score, needs review, reason) for one domain"""
    long_and_focused = stats.avg_duration > LONG_SESSION_SECONDS and stats.focus_score > 0.7
    short_and_scattered = stats.avg_duration < SHORT_SESSION_SECONDS and stats.focus_score < 0.3

    if long_and_focused and WORK_HOURS[0] <= stats.avg_hour <= WORK_HOURS[1]:
        category, reason, needs_review = CategoryType.productive, "Long focused sessions during school hours", False
    elif short_and_scattered:
        category, reason, needs_review = CategoryType.distracting, "Short scattered visits", False
    elif stats.unique_users >= 3 and stats.days_visited >= 5:
        # High engagement across users; a human decides what it is
        category, reason, needs_review = CategoryType.neutral, "popular", True
    else:
        category, reason, needs_review = CategoryType.neutral, "No clear usage pattern", False

    if long_and_focused:
        score = 0.8
    elif short_and_scattered:
        score = 0.2
    else:
        score = 0.5
    return category, score, needs_review, reason


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; everything is stored as UTC
    return value if value.tzinfo else value.replace(tzinfo=timezone.utc)


class UsagePatternLearner:
    def __init__(
        self,
        store: RuleStore,
        website_categories: WebsiteCategoryService,
        lookback_days: int = 30,
        min_visits: int = 5,
        max_domains: int = 50,
        tz: str = "UTC",
    ):
        self.store = store
        self.website_categories = website_categories
        self.lookback_days = lookback_days
        self.min_visits = min_visits
        self.max_domains = max_domains
        self.tz = ZoneInfo(tz)

    async def learn_from_usage_patterns(
        self,
        organization_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[LearnedSuggestion]:
        """Analyze recent activity and persist pending suggestions; returns what was stored"""
        now = now or datetime.now(timezone.utc)
        since = now - timedelta(days=self.lookback_days)

        rows = await self.store.fetch_url_activity(since, organization_id)
        domain_stats = aggregate_domain_stats(rows, self.min_visits, self.tz)[: self.max_domains]
        logger.info("[LearningService] Found %d domains to analyze", len(domain_stats))

        suggestions = []
        for stats in domain_stats:
            suggestion = await self._suggest(stats, organization_id)
            if suggestion is not None:
                suggestions.append(suggestion)

        if suggestions:
            await self.store.add_suggestions(
                self._to_row(s, organization_id) for s in suggestions
            )
            logger.info("[LearningService] Stored %d categorization suggestions", len(suggestions))
        return suggestions

    async def _suggest(self, stats: DomainStats, organization_id: Optional[int]) -> Optional[LearnedSuggestion]:
        suggested_category, suggested_score, needs_review, reason = classify_usage(stats)

        stored = await self.website_categories.find_for_domain(stats.domain, organization_id)
        current_category = CategoryType(stored.category) if stored else CategoryType.neutral
        current_score = CATEGORY_SCORES[current_category]

        differs = (
            suggested_category != current_category
            or abs(suggested_score - current_score) > SCORE_DELTA
            or (needs_review and stored is None)
        )
        if not differs:
            return None

        if suggested_category == CategoryType.productive:
            confidence = stats.focus_score
        elif suggested_category == CategoryType.distracting:
            confidence = 1.0 - stats.focus_score
        else:
            confidence = 0.5

        return LearnedSuggestion(
            domain=stats.domain,
            current_category=current_category,
            suggested_category=suggested_category,
            current_score=current_score,
            suggested_score=suggested_score,
            confidence=round(confidence, 4),
            needs_review=needs_review,
            reason=reason,
            evidence={
                "avg_duration_seconds": round(stats.avg_duration),
                "visit_count": stats.visit_count,
                "unique_users": stats.unique_users,
                "days_visited": stats.days_visited,
                "focus_score": round(stats.focus_score, 4),
                "avg_hour": round(stats.avg_hour, 2),
                "current_category": current_category.value,
                "suggested_score": suggested_score,
            },
        )

    @staticmethod
    def _to_row(suggestion: LearnedSuggestion, organization_id: Optional[int]) -> CategorizationSuggestion:
        return CategorizationSuggestion(
            pattern=suggestion.domain,
            suggested_category=suggestion.suggested_category.value,
            confidence=suggestion.confidence,
            reason=suggestion.reason,
            evidence=suggestion.evidence,
            status=SuggestionStatus.pending.value,
            source=SuggestionSource.learning.value,
            needs_review=suggestion.needs_review,
            organization_id=organization_id,
        )
