"""Integration tests for the ordered categorization pipeline."""

from __future__ import annotations

import pytest
from sqlalchemy.exc import OperationalError

from schoolfocus.errors import CategorizationLookupError
from schoolfocus.schemas import CategoryType

from conftest import ORG_ID, OTHER_ORG_ID


def _store_down(*args, **kwargs):
    raise OperationalError("SELECT 1", {}, Exception("database is down"))


class TestEndToEnd:
    async def test_productive_app_without_url(self, resolver) -> None:
        result = await resolver.categorize("Visual Studio Code")
        assert result.category == CategoryType.productive
        assert result.confidence == 0.85

    async def test_educational_youtube_in_browser(self, resolver) -> None:
        result = await resolver.categorize(
            "Chrome", url="https://youtube.com/watch?v=x", window_title="Python Tutorial"
        )
        assert result.category == CategoryType.productive
        assert result.confidence == 0.8

    async def test_discord_gaming(self, resolver) -> None:
        result = await resolver.categorize("Discord", window_title="Gaming Night")
        assert result.category == CategoryType.distracting
        assert result.confidence == 0.85

    async def test_discord_study_group(self, resolver) -> None:
        result = await resolver.categorize("Discord", window_title="Study Group Session")
        assert result.category == CategoryType.neutral
        assert result.confidence == 0.6

    async def test_unknown_site_falls_back_to_keywords(self, resolver) -> None:
        result = await resolver.categorize("Google Chrome", url="https://example.org")
        assert result.category == CategoryType.neutral
        assert result.confidence == 0.4
        assert result.needs_review is True

    async def test_inconclusive_url_verdict_beats_browser_heuristic(self, resolver) -> None:
        result = await resolver.categorize(
            "Google Chrome", url="https://youtube.com/watch?v=x", window_title="Gaming tutorial"
        )
        assert result.category == CategoryType.neutral
        assert result.confidence == 0.6

    async def test_conclusive_app_beats_inconclusive_url(self, resolver) -> None:
        result = await resolver.categorize("Visual Studio Code", url="https://reddit.com/r/pics")
        assert result.category == CategoryType.productive
        assert result.confidence == 0.85


class TestPrecedence:
    async def test_app_rule_wins(self, services, resolver) -> None:
        await services.app_categories.set_category_for_app("Discord", "productive", organization_id=ORG_ID)

        result = await resolver.categorize("Discord", window_title="Gaming Night", organization_id=ORG_ID)

        assert result.category == CategoryType.productive
        assert result.confidence == 0.95

    async def test_neutral_app_rule_is_authoritative(self, services, resolver) -> None:
        await services.app_categories.set_category_for_app("Visual Studio Code", "neutral")

        result = await resolver.categorize("Visual Studio Code")

        assert result.category == CategoryType.neutral
        assert result.confidence == 0.95

    async def test_app_rule_of_other_organization_is_ignored(self, services, resolver) -> None:
        await services.app_categories.set_category_for_app("Discord", "productive", organization_id=OTHER_ORG_ID)

        result = await resolver.categorize("Discord", window_title="Gaming Night", organization_id=ORG_ID)

        assert result.category == CategoryType.distracting

    async def test_custom_rule_beats_url_lists(self, services, resolver) -> None:
        await services.productivity_rules.create_rule(
            ORG_ID, url_pattern="netflix.com/title/documentary", category="productive", subject="Biology",
        )

        result = await resolver.categorize(
            "Google Chrome", url="https://netflix.com/title/documentary", organization_id=ORG_ID,
        )

        assert result.category == CategoryType.productive
        assert result.confidence == 0.95
        assert "netflix.com/title/documentary" in result.reason
        assert "Biology" in result.reason

    async def test_custom_rule_found_through_user(self, services, resolver, student) -> None:
        await services.productivity_rules.create_rule(ORG_ID, app_name="minecraft", category="productive")

        result = await resolver.categorize("Minecraft Education", user_id=student.id)

        assert result.category == CategoryType.productive
        assert result.confidence == 0.95

    async def test_stored_website_rule(self, services, resolver) -> None:
        await services.website_categories.create_category("example.org", "distracting", subcategory="scrolling")

        result = await resolver.categorize("Google Chrome", url="https://www.example.org/feed")

        assert result.category == CategoryType.distracting
        assert result.confidence == 0.9
        assert result.subcategory == "scrolling"

    async def test_stored_rule_beats_static_list(self, services, resolver) -> None:
        await services.website_categories.create_category("netflix", "neutral")

        result = await resolver.categorize("Google Chrome", url="https://netflix.com")

        assert result.category == CategoryType.neutral
        assert result.confidence == 0.9

    async def test_localhost_beats_stored_website_rule(self, services, resolver) -> None:
        await services.website_categories.create_category("localhost", "distracting")

        result = await resolver.categorize("Google Chrome", url="http://localhost:3000")

        assert result.category == CategoryType.productive
        assert result.confidence == 0.95


class TestCaching:
    async def test_cached_miss_sees_new_rule(self, services, resolver) -> None:
        first = await resolver.categorize("Steam", organization_id=ORG_ID)
        assert first.category == CategoryType.distracting

        await services.app_categories.set_category_for_app("Steam", "neutral", organization_id=ORG_ID)

        second = await resolver.categorize("Steam", organization_id=ORG_ID)
        assert second.category == CategoryType.neutral
        assert second.confidence == 0.95

    async def test_global_rule_evicts_organization_misses(self, services, resolver) -> None:
        await resolver.categorize("Steam", organization_id=ORG_ID)
        await resolver.categorize("Steam", organization_id=OTHER_ORG_ID)

        await services.app_categories.set_category_for_app("Steam", "productive")

        for organization_id in (ORG_ID, OTHER_ORG_ID, None):
            result = await resolver.categorize("Steam", organization_id=organization_id)
            assert result.category == CategoryType.productive

    async def test_website_rule_visible_after_cached_miss(self, services, resolver) -> None:
        before = await resolver.categorize("Google Chrome", url="https://example.org")
        assert before.confidence == 0.4

        await services.website_categories.create_category("example.org", "productive")

        after = await resolver.categorize("Google Chrome", url="https://example.org")
        assert after.category == CategoryType.productive
        assert after.confidence == 0.9

    async def test_expired_entry_is_reloaded(self, services, resolver, clock, store) -> None:
        await resolver.categorize("Steam")
        # Written behind the service's back, so only expiry can reveal it
        await store.upsert_app_category("Steam", "productive")

        cached = await resolver.categorize("Steam")
        assert cached.category == CategoryType.distracting

        clock.advance(services.settings.RULE_CACHE_TTL_SECONDS + 1)
        reloaded = await resolver.categorize("Steam")
        assert reloaded.category == CategoryType.productive

    async def test_bundle_rule_update_is_visible(self, services, resolver) -> None:
        service = services.app_categories
        await service.set_category_for_app("Code", "productive", bundle_id="com.microsoft.VSCode")
        first = await resolver.categorize("Visual Studio Code", bundle_id="com.microsoft.VSCode")
        assert (first.category, first.confidence) == (CategoryType.productive, 0.95)

        await service.set_category_for_app("Code", "distracting", bundle_id="com.microsoft.VSCode")

        second = await resolver.categorize("Visual Studio Code", bundle_id="com.microsoft.VSCode")
        assert (second.category, second.confidence) == (CategoryType.distracting, 0.95)

    async def test_cached_name_miss_does_not_hide_bundle_rule(self, services, resolver) -> None:
        await services.app_categories.set_category_for_app("Code", "distracting", bundle_id="com.microsoft.VSCode")

        by_name = await resolver.categorize("Electron Helper")
        by_bundle = await resolver.categorize("Electron Helper", bundle_id="com.microsoft.VSCode")

        assert (by_name.category, by_name.confidence) == (CategoryType.neutral, 0.5)
        assert (by_bundle.category, by_bundle.confidence) == (CategoryType.distracting, 0.95)

    async def test_replaced_bundle_id_is_evicted(self, services, resolver) -> None:
        service = services.app_categories
        await service.set_category_for_app("Code", "distracting", bundle_id="com.example.old")
        assert (await resolver.categorize("Electron Helper", bundle_id="com.example.old")).confidence == 0.95

        await service.set_category_for_app("Code", "distracting", bundle_id="com.example.new")

        stale = await resolver.categorize("Electron Helper", bundle_id="com.example.old")
        assert (stale.category, stale.confidence) == (CategoryType.neutral, 0.5)
        fresh = await resolver.categorize("Electron Helper", bundle_id="com.example.new")
        assert fresh.category == CategoryType.distracting

    async def test_update_by_id_evicts_bundle_lookups(self, services, resolver) -> None:
        service = services.app_categories
        rule = await service.set_category_for_app("Code", "productive", bundle_id="com.microsoft.VSCode")
        assert (await resolver.categorize("Electron Helper", bundle_id="com.microsoft.VSCode")).category == CategoryType.productive

        await service.update_category(rule.id, category="distracting")

        result = await resolver.categorize("Electron Helper", bundle_id="com.microsoft.VSCode")
        assert (result.category, result.confidence) == (CategoryType.distracting, 0.95)


class TestRepeatedLookups:
    @staticmethod
    async def _app_rule(services):
        await services.app_categories.set_category_for_app("Discord", "productive")
        return {"app_name": "Discord"}

    @staticmethod
    async def _stored_pattern(services):
        await services.website_categories.create_category("example.org", "distracting")
        return {"app_name": "Google Chrome", "url": "https://example.org"}

    @staticmethod
    async def _unknown_site(services):
        return {"app_name": "Google Chrome", "url": "https://unknown-site.org"}

    @pytest.mark.parametrize("arrange", ["_app_rule", "_stored_pattern", "_unknown_site"])
    async def test_cached_result_matches_first_result(self, services, resolver, arrange) -> None:
        request = await getattr(self, arrange)(services)

        first = await resolver.categorize(**request)
        second = await resolver.categorize(**request)

        assert first.model_dump_json() == second.model_dump_json()


class TestConsistency:
    async def test_inconsistent_stored_subcategory_is_dropped(self, resolver, store) -> None:
        await store.create_website_category(
            pattern="example.org", category="productive", subcategory="gaming", is_system=False,
        )

        result = await resolver.categorize("Google Chrome", url="https://example.org")

        assert result.category == CategoryType.productive
        assert result.subcategory is None


class TestLookupFailure:
    async def test_categorize_degrades_to_neutral(self, resolver, store, monkeypatch) -> None:
        monkeypatch.setattr(store, "find_app_category", _store_down)

        result = await resolver.categorize("Visual Studio Code")

        assert result.category == CategoryType.neutral
        assert result.confidence == 0.0
        assert result.reason == "lookup failed"

    async def test_resolve_raises(self, resolver, store, monkeypatch) -> None:
        monkeypatch.setattr(store, "find_app_category", _store_down)

        with pytest.raises(CategorizationLookupError):
            await resolver.resolve("Visual Studio Code")


class TestCategorizeDomain:
    async def test_reports_stored_rule(self, services, resolver) -> None:
        await services.website_categories.create_category("example.org", "neutral")

        result, stored = await resolver.categorize_domain("example.org")

        assert stored is True
        assert result.confidence == 0.9

    async def test_unknown_domain_uses_fallback(self, resolver) -> None:
        result, stored = await resolver.categorize_domain("example.org")

        assert stored is False
        assert result.confidence == 0.4
