"""Tests for the static-list, context and keyword heuristics."""

from __future__ import annotations

import pytest

from schoolfocus.categorization import (
    HeuristicCategorizer,
    domain_matches,
    extract_domain,
    normalize_domain,
)
from schoolfocus.schemas import CategoryType


@pytest.fixture()
def heuristics(reference, taxonomy) -> HeuristicCategorizer:
    return HeuristicCategorizer(reference, taxonomy)


class TestDomains:
    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://WWW.Example.com/path?q=1", "www.example.com"),
            ("http://localhost:3000/app", "localhost"),
            ("not a url", "not a url"),
        ],
    )
    def test_extract_domain(self, url: str, expected: str) -> None:
        assert extract_domain(url) == expected

    @pytest.mark.parametrize(
        ("url", "expected"),
        [
            ("https://www.khanacademy.org/math", "khanacademy.org"),
            ("www.example.com/path", "example.com"),
            ("https://docs.python.org", "docs.python.org"),
        ],
    )
    def test_normalize_domain(self, url: str, expected: str) -> None:
        assert normalize_domain(url) == expected

    def test_domain_matches_subdomains_only(self) -> None:
        assert domain_matches("x.com", "x.com")
        assert domain_matches("mobile.x.com", "x.com")
        assert not domain_matches("dropbox.com", "x.com")


class TestKnownDomains:
    def test_productive_list(self, heuristics) -> None:
        result = heuristics.categorize_known_domain("www.khanacademy.org", "https://www.khanacademy.org")
        assert result.category == CategoryType.productive
        assert result.confidence == 0.8
        assert result.subcategory == "school"

    def test_distracting_list(self, heuristics) -> None:
        result = heuristics.categorize_known_domain("netflix.com", "https://netflix.com/browse")
        assert result.category == CategoryType.distracting
        assert result.confidence == 0.8
        assert result.subcategory == "entertainment"

    def test_unlisted_domain(self, heuristics) -> None:
        assert heuristics.categorize_known_domain("example.org", "https://example.org") is None

    def test_localhost(self, heuristics) -> None:
        result = heuristics.categorize_local("localhost")
        assert result.category == CategoryType.productive
        assert result.confidence == 0.95
        assert heuristics.categorize_local("example.com") is None


class TestContextDependentSites:
    def test_youtube_educational(self, heuristics) -> None:
        result = heuristics.categorize_known_domain("youtube.com", "https://youtube.com/watch?v=x", "Python Tutorial")
        assert result.category == CategoryType.productive
        assert result.confidence == 0.8

    def test_youtube_entertainment(self, heuristics) -> None:
        result = heuristics.categorize_known_domain("youtube.com", "https://youtube.com/watch?v=x", "Funny prank compilation")
        assert result.category == CategoryType.distracting
        assert result.subcategory == "entertainment"

    def test_youtube_mixed_is_inconclusive(self, heuristics) -> None:
        result = heuristics.categorize_known_domain("youtube.com", "https://youtube.com/watch?v=x", "Gaming tutorial")
        assert result.category == CategoryType.neutral
        assert result.confidence == 0.6

    def test_twitter_defaults_to_distracting(self, heuristics) -> None:
        result = heuristics.categorize_known_domain("x.com", "https://x.com/home", "Home / X")
        assert result.category == CategoryType.distracting
        assert result.subcategory == "scrolling"

    def test_twitter_academic(self, heuristics) -> None:
        result = heuristics.categorize_known_domain("twitter.com", "https://twitter.com/search?q=academic", None)
        assert result.category == CategoryType.neutral
        assert result.confidence == 0.6

    def test_productive_subreddit(self, heuristics) -> None:
        result = heuristics.categorize_known_domain("reddit.com", "https://reddit.com/r/learnprogramming", None)
        assert result.category == CategoryType.productive

    def test_other_subreddit_is_neutral(self, heuristics) -> None:
        result = heuristics.categorize_known_domain("reddit.com", "https://reddit.com/r/pics", None)
        assert result.category == CategoryType.neutral
        assert result.confidence == 0.6


class TestAppHeuristic:
    def test_browser_defers_to_url(self, heuristics) -> None:
        result = heuristics.categorize_by_app("Google Chrome")
        assert result.category == CategoryType.neutral
        assert result.confidence == 0.5

    def test_productive_app(self, heuristics) -> None:
        result = heuristics.categorize_by_app("Visual Studio Code")
        assert result.category == CategoryType.productive
        assert result.confidence == 0.85

    def test_distracting_app(self, heuristics) -> None:
        result = heuristics.categorize_by_app("Discord", "Gaming Night")
        assert result.category == CategoryType.distracting
        assert result.confidence == 0.85

    def test_study_group(self, heuristics) -> None:
        result = heuristics.categorize_by_app("Discord", "Study Group Session")
        assert result.category == CategoryType.neutral
        assert result.confidence == 0.6

    def test_system_app(self, heuristics) -> None:
        result = heuristics.categorize_by_app("Finder")
        assert result.category == CategoryType.neutral
        assert result.confidence == 1.0

    def test_unknown_app(self, heuristics) -> None:
        result = heuristics.categorize_by_app("Some New Tool")
        assert result.category == CategoryType.neutral
        assert result.confidence == 0.5

    def test_inferred_subcategory_matches_parent(self, heuristics) -> None:
        result = heuristics.categorize_by_app("Minecraft")
        assert result.subcategory == "gaming"

    def test_subcategory_from_other_parent_is_not_inferred(self, heuristics) -> None:
        # "zoom" is a communication keyword, but communication is neutral
        result = heuristics.categorize_by_app("Zoom")
        assert result.category == CategoryType.productive
        assert result.subcategory is None


class TestUnknownSite:
    def test_edu_domain(self, heuristics) -> None:
        result = heuristics.analyze_unknown_site("cs.stanford.edu", "https://cs.stanford.edu")
        assert result.category == CategoryType.productive
        assert result.confidence == 0.8

    def test_gaming_domain(self, heuristics) -> None:
        result = heuristics.analyze_unknown_site("coolmathgames.com", "https://coolmathgames.com")
        assert result.category == CategoryType.distracting
        assert result.confidence == 0.85
        assert result.subcategory == "gaming"

    def test_news_with_science_title(self, heuristics) -> None:
        result = heuristics.analyze_unknown_site("dailynews.com", "https://dailynews.com/a", "New science discovery")
        assert result.category == CategoryType.productive
        assert result.confidence == 0.7

    def test_news_without_tech_title(self, heuristics) -> None:
        result = heuristics.analyze_unknown_site("dailynews.com", "https://dailynews.com/a", "Local weather")
        assert result.category == CategoryType.neutral
        assert result.subcategory == "reading"

    def test_two_educational_keywords(self, heuristics) -> None:
        result = heuristics.analyze_unknown_site("example.org", "https://example.org/learn", "Chemistry lesson")
        assert result.category == CategoryType.productive
        assert result.confidence == 0.75

    def test_two_distraction_keywords(self, heuristics) -> None:
        result = heuristics.analyze_unknown_site("example.org", "https://example.org/watch", "Trending movie")
        assert result.category == CategoryType.distracting
        assert result.confidence == 0.75

    def test_commerce(self, heuristics) -> None:
        result = heuristics.analyze_unknown_site("example.org", "https://example.org/cart", None)
        assert result.category == CategoryType.distracting
        assert result.confidence == 0.8

    def test_tool_domain(self, heuristics) -> None:
        result = heuristics.analyze_unknown_site("mytool.io", "https://mytool.io", None)
        assert result.category == CategoryType.neutral
        assert result.confidence == 0.6

    def test_fallback_needs_review(self, heuristics) -> None:
        result = heuristics.analyze_unknown_site("example.org", "https://example.org", None)
        assert result.category == CategoryType.neutral
        assert result.confidence == 0.4
        assert result.needs_review is True
