"""
Website Category Service
Domain pattern rules; lookups are cached per (domain, organization)
"""

import logging
from typing import Any, Optional

from schoolfocus.errors import RuleNotFoundError, RuleValidationError
from schoolfocus.models import WebsiteCategory
from schoolfocus.reference import Taxonomy
from schoolfocus.rule_cache import MISSING, RuleCache, scope_key
from schoolfocus.store import RuleStore

logger = logging.getLogger(__name__)


class WebsiteCategoryService:
    def __init__(self, store: RuleStore, taxonomy: Taxonomy, cache: RuleCache):
        self.store = store
        self.taxonomy = taxonomy
        self.cache = cache

    async def find_for_domain(self, domain: str, organization_id: Optional[int] = None) -> Optional[WebsiteCategory]:
        key = scope_key(domain, organization_id)
        cached = self.cache.get(key)
        if cached is not MISSING:
            return cached

        website_category = await self.store.find_website_category(domain, organization_id)
        self.cache.set(key, website_category)
        return website_category

    async def get_categories(self, organization_id: Optional[int] = None) -> list[WebsiteCategory]:
        return await self.store.list_website_categories(organization_id)

    async def create_category(
        self,
        pattern: str,
        category: str,
        subcategory: Optional[str] = None,
        organization_id: Optional[int] = None,
        created_by: Optional[str] = None,
        **fields: Any,
    ) -> WebsiteCategory:
        pattern = pattern.strip().lower()
        if not pattern:
            raise RuleValidationError("pattern is required")
        category, subcategory = self.taxonomy.validate(category, subcategory)

        website_category = await self.store.create_website_category(
            pattern=pattern,
            category=category.value,
            subcategory=subcategory,
            organization_id=organization_id,
            created_by=created_by,
            is_system=False,
            **fields,
        )
        self.cache.clear()
        logger.info("Website category created: %s -> %s", pattern, category.value)
        return website_category

    async def update_category(self, category_id: int, organization_id: Optional[int] = None, **fields: Any) -> WebsiteCategory:
        """Update a rule by id; only global rules and the caller's organization rules are reachable"""
        if not fields:
            raise RuleValidationError("No valid fields to update")
        for required in ("category", "priority"):
            if required in fields and fields[required] is None:
                raise RuleValidationError(f"{required} cannot be cleared")
        if "pattern" in fields:
            fields["pattern"] = (fields["pattern"] or "").strip().lower()
            if not fields["pattern"]:
                raise RuleValidationError("pattern cannot be empty")

        if "category" in fields or "subcategory" in fields:
            existing = await self.store.get_website_category(category_id, organization_id)
            if existing is None:
                raise RuleNotFoundError(f"Website category {category_id} not found")
            category, subcategory = self.taxonomy.validate(
                fields.get("category", existing.category),
                fields.get("subcategory", existing.subcategory),
            )
            fields["category"] = category.value
            fields["subcategory"] = subcategory

        website_category = await self.store.update_website_category(
            category_id, organization_id=organization_id, **fields,
        )
        self.cache.clear()
        logger.info("Website category updated: %s", category_id)
        return website_category

    async def delete_category(self, category_id: int, organization_id: Optional[int] = None) -> None:
        await self.store.delete_website_category(category_id, organization_id)
        self.cache.clear()
        logger.info("Website category deleted: %s", category_id)

    def invalidate(self) -> None:
        """Drop every cached lookup (patterns match many domains)"""
        self.cache.clear()
