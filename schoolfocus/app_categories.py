"""
App Category Service
Admin-assigned app categories behind the rule cache
"""

import logging
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from schoolfocus.errors import RuleNotFoundError, RuleValidationError
from schoolfocus.models import AppCategory, SubcategoryDefinition
from schoolfocus.reference import Taxonomy
from schoolfocus.rule_cache import GLOBAL_SCOPE, MISSING, RuleCache
from schoolfocus.schemas import CategoryType
from schoolfocus.store import RuleStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AppRuleInfo:
    """Cached projection of a stored AppCategory"""
    category: CategoryType
    subcategory: Optional[str]
    organization_id: Optional[int]


def app_key(app_name: str, bundle_id: Optional[str], organization_id: Optional[int]) -> tuple[str, Optional[str], Any]:
    """Cache key for an app lookup; the bundle id takes part in matching so it is part of the key"""
    return (app_name, bundle_id or None, organization_id if organization_id is not None else GLOBAL_SCOPE)


class AppCategoryService:
    def __init__(self, store: RuleStore, taxonomy: Taxonomy, cache: RuleCache):
        self.store = store
        self.taxonomy = taxonomy
        self.cache = cache

    async def get_category_for_app(
        self,
        app_name: str,
        organization_id: Optional[int] = None,
        bundle_id: Optional[str] = None,
    ) -> Optional[AppRuleInfo]:
        """
        Stored rule for an app (organization first, then global), or None.
        Lookups, including misses, are cached under (app_name, bundle_id, organization | "global").
        """
        key = app_key(app_name, bundle_id, organization_id)
        cached = self.cache.get(key)
        if cached is not MISSING:
            return cached

        app_category = await self.store.find_app_category(app_name, organization_id, bundle_id)
        info = None
        if app_category is not None:
            info = AppRuleInfo(
                category=CategoryType(app_category.category),
                subcategory=app_category.subcategory,
                organization_id=app_category.organization_id,
            )

        self.cache.set(key, info)
        return info

    async def set_category_for_app(
        self,
        app_name: str,
        category: CategoryType | str,
        organization_id: Optional[int] = None,
        bundle_id: Optional[str] = None,
        subcategory: Optional[str] = None,
    ) -> AppCategory:
        category, subcategory = self.taxonomy.validate(category, subcategory)
        previous_bundle_id = None
        try:
            app_category, previous_bundle_id = await self.store.upsert_app_category(
                app_name,
                category.value,
                organization_id=organization_id,
                bundle_id=bundle_id,
                subcategory=subcategory,
            )
        finally:
            self._evict([app_name], [bundle_id, previous_bundle_id], organization_id)

        logger.info(
            "App category set: %s -> %s%s (%s)",
            app_name, category.value,
            f"/{subcategory}" if subcategory else "",
            f"organization {organization_id}" if organization_id is not None else "global",
        )
        return app_category

    async def update_category(self, category_id: int, organization_id: Optional[int] = None, **fields: Any) -> AppCategory:
        """Update a rule by id; only global rules and the caller's organization rules are reachable"""
        if not fields:
            raise RuleValidationError("No valid fields to update")
        if "category" in fields and fields["category"] is None:
            raise RuleValidationError("category cannot be cleared")
        if "app_name" in fields:
            fields["app_name"] = (fields["app_name"] or "").strip()
            if not fields["app_name"]:
                raise RuleValidationError("app_name cannot be empty")

        if "category" in fields or "subcategory" in fields:
            existing = await self.store.get_app_category(category_id, organization_id)
            if existing is None:
                raise RuleNotFoundError(f"App category {category_id} not found")
            category, subcategory = self.taxonomy.validate(
                fields.get("category", existing.category),
                fields.get("subcategory", existing.subcategory),
            )
            fields["category"] = category.value
            fields["subcategory"] = subcategory

        app_category, (previous_name, previous_bundle_id) = await self.store.update_app_category(
            category_id, organization_id=organization_id, **fields,
        )
        self._evict(
            [previous_name, app_category.app_name],
            [previous_bundle_id, app_category.bundle_id],
            app_category.organization_id,
        )
        logger.info("App category %s updated: %s -> %s", category_id, app_category.app_name, app_category.category)
        return app_category

    async def delete_category(self, category_id: int, organization_id: Optional[int] = None) -> AppCategory:
        app_category = await self.store.delete_app_category(category_id, organization_id)
        self._evict([app_category.app_name], [app_category.bundle_id], app_category.organization_id)
        logger.info("App category %s (%s) deleted", category_id, app_category.app_name)
        return app_category

    async def get_categories_for_organization(self, organization_id: Optional[int] = None) -> list[AppCategory]:
        return await self.store.list_app_categories(organization_id)

    async def get_all_subcategories(self) -> list[SubcategoryDefinition]:
        return await self.store.list_subcategories()

    def clear_cache(self) -> None:
        self.cache.clear()

    def _evict(
        self,
        app_names: Iterable[Optional[str]],
        bundle_ids: Iterable[Optional[str]],
        organization_id: Optional[int],
    ) -> int:
        """Drop every cached lookup the changed rule could answer, by name or by bundle id"""
        names = {name for name in app_names if name}
        bundles = {bundle for bundle in bundle_ids if bundle}

        def stale(key) -> bool:
            name, bundle, scope = key
            # Organization lookups fall through to global rules
            if organization_id is not None and scope != organization_id:
                return False
            return name in names or (bundle is not None and bundle in bundles)

        return self.cache.invalidate_where(stale)
