"""Tests for the usage-pattern learner."""

from __future__ import annotations

import datetime as dt

from schoolfocus.learning import DomainStats, aggregate_domain_stats, classify_usage
from schoolfocus.models import CategorizationSuggestion
from schoolfocus.schemas import CategoryType

from conftest import NOW, make_activity


def _visits(url: str, count: int, seconds: float, users: int = 1, hour: int = 10):
    """One visit per day going back from NOW, spread round-robin over users."""
    return [
        make_activity(
            url,
            dt.datetime(2025, 6, 16, hour, 0, tzinfo=dt.timezone.utc) - dt.timedelta(days=day),
            seconds,
            user_id=f"student-{day % users}",
        )
        for day in range(count)
    ]


def _stats(**overrides) -> DomainStats:
    values = dict(
        domain="example.org", visit_count=10, avg_duration=300.0, unique_users=1,
        days_visited=1, focus_score=0.5, avg_hour=12.0,
    )
    values.update(overrides)
    return DomainStats(**values)


class TestAggregateDomainStats:
    def test_groups_by_normalized_domain(self) -> None:
        start = dt.datetime(2025, 6, 16, 9, 0)
        rows = [
            ("u1", "https://www.example.org/a", start, start + dt.timedelta(seconds=600)),
            ("u2", "https://example.org/b", start + dt.timedelta(days=1), start + dt.timedelta(days=1, seconds=100)),
        ]

        [stats] = aggregate_domain_stats(rows, min_visits=2)

        assert stats.domain == "example.org"
        assert stats.visit_count == 2
        assert stats.avg_duration == 350.0
        assert stats.unique_users == 2
        assert stats.days_visited == 2
        assert stats.focus_score == 0.5
        assert stats.avg_hour == 9.0

    def test_min_visits_and_ordering(self) -> None:
        start = dt.datetime(2025, 6, 16, 9, 0)
        end = start + dt.timedelta(minutes=1)
        rows = [("u", "https://a.org", start, end)] * 2 + [("u", "https://b.org", start, end)] * 3 + [
            ("u", "https://c.org", start, end)
        ]

        stats = aggregate_domain_stats(rows, min_visits=2)

        assert [s.domain for s in stats] == ["b.org", "a.org"]


class TestClassifyUsage:
    def test_long_focused_school_hours_is_productive(self) -> None:
        category, score, needs_review, _ = classify_usage(_stats(avg_duration=900, focus_score=0.9, avg_hour=10))
        assert (category, score, needs_review) == (CategoryType.productive, 0.8, False)

    def test_long_focused_at_night_keeps_high_score(self) -> None:
        category, score, _, _ = classify_usage(_stats(avg_duration=900, focus_score=0.9, avg_hour=22))
        assert category == CategoryType.neutral
        assert score == 0.8

    def test_short_scattered_is_distracting(self) -> None:
        category, score, _, _ = classify_usage(_stats(avg_duration=60, focus_score=0.1))
        assert (category, score) == (CategoryType.distracting, 0.2)

    def test_popular_needs_review(self) -> None:
        category, score, needs_review, reason = classify_usage(_stats(unique_users=3, days_visited=5))
        assert (category, score, needs_review, reason) == (CategoryType.neutral, 0.5, True, "popular")


class TestUsagePatternLearner:
    async def test_suggests_productive(self, services, store) -> None:
        await store.add_activities(_visits("https://mathsite.org/algebra", 6, 900))

        [suggestion] = await services.learner.learn_from_usage_patterns(now=NOW)

        assert suggestion.domain == "mathsite.org"
        assert suggestion.current_category == CategoryType.neutral
        assert suggestion.suggested_category == CategoryType.productive
        assert suggestion.confidence == 1.0
        assert suggestion.needs_review is False

    async def test_suggests_distracting(self, services, store) -> None:
        await store.add_activities(_visits("https://memes.example/hot", 6, 60))

        [suggestion] = await services.learner.learn_from_usage_patterns(now=NOW)

        assert suggestion.suggested_category == CategoryType.distracting
        assert suggestion.suggested_score == 0.2
        assert suggestion.confidence == 1.0

    async def test_popular_without_rule_is_flagged(self, services, store) -> None:
        await store.add_activities(_visits("https://forum.example", 6, 200, users=3))

        [suggestion] = await services.learner.learn_from_usage_patterns(now=NOW)

        assert suggestion.suggested_category == CategoryType.neutral
        assert suggestion.needs_review is True
        assert suggestion.reason == "popular"
        assert suggestion.confidence == 0.5

    async def test_popular_with_neutral_rule_is_not_resuggested(self, services, store) -> None:
        await services.website_categories.create_category("forum.example", "neutral")
        await store.add_activities(_visits("https://forum.example", 6, 200, users=3))

        assert await services.learner.learn_from_usage_patterns(now=NOW) == []

    async def test_agreement_is_not_resuggested(self, services, store) -> None:
        await services.website_categories.create_category("mathsite.org", "productive")
        await store.add_activities(_visits("https://mathsite.org/algebra", 6, 900))

        assert await services.learner.learn_from_usage_patterns(now=NOW) == []

    async def test_disagreement_with_stored_rule(self, services, store) -> None:
        await services.website_categories.create_category("mathsite.org", "distracting")
        await store.add_activities(_visits("https://mathsite.org/algebra", 6, 900))

        [suggestion] = await services.learner.learn_from_usage_patterns(now=NOW)

        assert suggestion.current_category == CategoryType.distracting
        assert suggestion.current_score == 0.2
        assert suggestion.suggested_category == CategoryType.productive

    async def test_too_few_visits_ignored(self, services, store) -> None:
        await store.add_activities(_visits("https://mathsite.org", 4, 900))

        assert await services.learner.learn_from_usage_patterns(now=NOW) == []

    async def test_old_activity_ignored(self, services, store) -> None:
        await store.add_activities(_visits("https://mathsite.org", 6, 900))

        later = NOW + dt.timedelta(days=60)

        assert await services.learner.learn_from_usage_patterns(now=later) == []

    async def test_persists_pending_learning_suggestions(self, services, store) -> None:
        await store.add_activities(_visits("https://mathsite.org/algebra", 6, 900))

        await services.learner.learn_from_usage_patterns(now=NOW)
        await services.learner.learn_from_usage_patterns(now=NOW)

        rows: list[CategorizationSuggestion] = await store.list_suggestions()
        assert len(rows) == 2
        assert {row.source for row in rows} == {"learning"}
        assert rows[0].evidence["visit_count"] == 6
        assert set(rows[0].evidence) == {
            "avg_duration_seconds", "visit_count", "unique_users", "days_visited",
            "focus_score", "avg_hour", "current_category", "suggested_score",
        }

    async def test_max_domains_cap(self, services, store) -> None:
        await store.add_activities(_visits("https://mathsite.org", 7, 900))
        await store.add_activities(_visits("https://memes.example", 6, 60))
        services.learner.max_domains = 1

        suggestions = await services.learner.learn_from_usage_patterns(now=NOW)

        assert [s.domain for s in suggestions] == ["mathsite.org"]

    async def test_organization_filter(self, services, store) -> None:
        await store.add_activities(_visits("https://mathsite.org", 6, 900))

        assert await services.learner.learn_from_usage_patterns(organization_id=99, now=NOW) == []
