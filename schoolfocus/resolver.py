"""
Categorization Resolver
Ordered decision procedure turning (app, URL, window title) into a category.

Resolution order, first conclusive match wins:
1. Admin app/bundle rule (organization, then global)  -> 0.95
2. Organization custom rule                           -> 0.95
3. URL: localhost, stored pattern, static lists       -> 0.95 / 0.9 / 0.8 / 0.6
4. App-name heuristic                                 -> 0.85 / 0.6 / 0.5 / 1.0
5. Unknown-site keyword fallback                      -> 0.85 .. 0.4
"""

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from schoolfocus.app_categories import AppCategoryService
from schoolfocus.categorization import HeuristicCategorizer, extract_domain
from schoolfocus.custom_rules import match_custom_rule
from schoolfocus.errors import CategorizationLookupError
from schoolfocus.reference import Taxonomy
from schoolfocus.schemas import CategoryType, ResolvedCategorization
from schoolfocus.store import RuleStore
from schoolfocus.website_categories import WebsiteCategoryService

logger = logging.getLogger(__name__)

RULE_CONFIDENCE = 0.95
STORED_PATTERN_CONFIDENCE = 0.9


class CategorizationResolver:
    def __init__(
        self,
        store: RuleStore,
        app_categories: AppCategoryService,
        website_categories: WebsiteCategoryService,
        heuristics: HeuristicCategorizer,
        taxonomy: Taxonomy,
    ):
        self.store = store
        self.app_categories = app_categories
        self.website_categories = website_categories
        self.heuristics = heuristics
        self.taxonomy = taxonomy

    async def categorize(
        self,
        app_name: str,
        url: Optional[str] = None,
        window_title: Optional[str] = None,
        user_id: Optional[str] = None,
        organization_id: Optional[int] = None,
        bundle_id: Optional[str] = None,
    ) -> ResolvedCategorization:
        """
        Caller-facing entry point. Never raises: a store failure degrades to
        neutral with confidence 0 so alerts and dashboards keep working.
        """
        try:
            return await self.resolve(app_name, url, window_title, user_id, organization_id, bundle_id)
        except CategorizationLookupError:
            logger.exception("Categorization lookup failed for app=%r", app_name)
            return ResolvedCategorization.lookup_failed()

    async def resolve(
        self,
        app_name: str,
        url: Optional[str] = None,
        window_title: Optional[str] = None,
        user_id: Optional[str] = None,
        organization_id: Optional[int] = None,
        bundle_id: Optional[str] = None,
    ) -> ResolvedCategorization:
        """Run the pipeline; raises CategorizationLookupError when the store is unreachable"""
        app_name = app_name or ""
        url = url or None
        try:
            return await self._resolve(app_name, url, window_title, user_id, organization_id, bundle_id)
        except SQLAlchemyError as exc:
            raise CategorizationLookupError(str(exc)) from exc

    async def _resolve(
        self,
        app_name: str,
        url: Optional[str],
        window_title: Optional[str],
        user_id: Optional[str],
        organization_id: Optional[int],
        bundle_id: Optional[str],
    ) -> ResolvedCategorization:
        # 1. Explicit admin intent
        rule = await self.app_categories.get_category_for_app(app_name, organization_id, bundle_id)
        if rule is not None:
            return self._consistent(ResolvedCategorization(
                category=rule.category,
                subcategory=rule.subcategory,
                confidence=RULE_CONFIDENCE,
                reason=(
                    f"{app_name} is categorized as {rule.category.value}"
                    f"{f' ({rule.subcategory})' if rule.subcategory else ''} by organization policy"
                ),
            ))

        # 2. Organization custom rules
        if user_id or organization_id is not None:
            custom = await self.check_custom_rules(app_name, url, window_title, user_id, organization_id)
            if custom is not None:
                return custom

        # 3. URL resolution
        url_result = None
        domain = None
        if url:
            domain = extract_domain(url)
            url_result = await self.categorize_by_url(domain, url, window_title, organization_id)
            if url_result is not None and url_result.is_conclusive:
                return url_result

        # 4. App-name heuristic
        app_result = self._consistent(self.heuristics.categorize_by_app(app_name, window_title))
        if app_result.is_conclusive:
            return app_result

        # 5. Unknown-site fallback
        if domain is not None and url_result is None:
            return self._consistent(self.heuristics.analyze_unknown_site(domain, url, window_title))

        return url_result if url_result is not None else app_result

    async def check_custom_rules(
        self,
        app_name: str,
        url: Optional[str] = None,
        window_title: Optional[str] = None,
        user_id: Optional[str] = None,
        organization_id: Optional[int] = None,
    ) -> Optional[ResolvedCategorization]:
        if organization_id is None and user_id:
            organization_id = await self.store.get_organization_for_user(user_id)
        if organization_id is None:
            return None

        rules = await self.store.list_productivity_rules(organization_id)
        matched = match_custom_rule(rules, app_name, url, window_title)
        if matched is None:
            return None

        rule, pattern = matched
        reason = f"Matches organization rule: {pattern}"
        if rule.subject:
            reason += f" (subject: {rule.subject})"
        return ResolvedCategorization(
            category=CategoryType(rule.category),
            confidence=RULE_CONFIDENCE,
            reason=reason,
        )

    async def categorize_by_url(
        self,
        domain: str,
        url: str,
        window_title: Optional[str] = None,
        organization_id: Optional[int] = None,
    ) -> Optional[ResolvedCategorization]:
        """URL-level verdict, or None when the domain is unknown to rules and static lists"""
        result, _stored = await self._url_verdict(domain, url, window_title, organization_id)
        return result

    async def categorize_domain(self, domain: str, organization_id: Optional[int] = None) -> tuple[ResolvedCategorization, bool]:
        """
        Best verdict for a bare domain, plus whether a stored rule produced it.
        Used by the suggestion jobs to find domains lacking a confident categorization.
        """
        url = f"https://{domain}"
        result, stored = await self._url_verdict(domain, url, None, organization_id)
        if result is None:
            result = self._consistent(self.heuristics.analyze_unknown_site(domain, url))
        return result, stored

    async def _url_verdict(
        self,
        domain: str,
        url: str,
        window_title: Optional[str],
        organization_id: Optional[int],
    ) -> tuple[Optional[ResolvedCategorization], bool]:
        # Localhost is checked before stored rules
        local = self.heuristics.categorize_local(domain)
        if local is not None:
            return local, False

        stored = await self.website_categories.find_for_domain(domain, organization_id)
        if stored is not None:
            category = CategoryType(stored.category)
            return self._consistent(ResolvedCategorization(
                category=category,
                subcategory=stored.subcategory,
                confidence=STORED_PATTERN_CONFIDENCE,
                reason=stored.description or (
                    f"{domain} is categorized as {category.value}"
                    f"{f' ({stored.subcategory})' if stored.subcategory else ''}"
                ),
            )), True

        known = self.heuristics.categorize_known_domain(domain, url, window_title)
        return (self._consistent(known) if known is not None else None), False

    def _consistent(self, result: ResolvedCategorization) -> ResolvedCategorization:
        """Drop a subcategory whose parent disagrees with the category"""
        if result.subcategory and not self.taxonomy.is_consistent(result.category, result.subcategory):
            logger.warning(
                "Dropping subcategory %r inconsistent with category %r (%s)",
                result.subcategory, result.category.value, result.reason,
            )
            return result.model_copy(update={"subcategory": None})
        return result
