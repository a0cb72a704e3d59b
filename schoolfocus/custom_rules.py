"""
Organization Custom Rule Matcher
Admin/teacher-defined substring rules scoped to one organization
"""

import logging
from typing import Any, Iterable, Optional

from schoolfocus.errors import RuleNotFoundError, RuleValidationError
from schoolfocus.models import ProductivityRule
from schoolfocus.schemas import CategoryType
from schoolfocus.store import RuleStore

logger = logging.getLogger(__name__)

MATCHER_FIELDS = ("app_name", "url_pattern", "window_title_pattern")


def match_custom_rule(
    rules: Iterable[ProductivityRule],
    app_name: str,
    url: Optional[str] = None,
    window_title: Optional[str] = None,
) -> Optional[tuple[ProductivityRule, str]]:
    """
    First matching rule and the pattern that matched.

    Rules must already be ordered (priority DESC, created_at DESC). Each rule
    checks app name, then URL, then window title; the scan stops at the first
    rule that matches on any field.
    """
    lower_app = app_name.lower()
    lower_url = url.lower() if url else None
    lower_title = window_title.lower() if window_title else None

    for rule in rules:
        if rule.app_name and rule.app_name.lower() in lower_app:
            return rule, rule.app_name
        if rule.url_pattern and lower_url and rule.url_pattern.lower() in lower_url:
            return rule, rule.url_pattern
        if rule.window_title_pattern and lower_title and rule.window_title_pattern.lower() in lower_title:
            return rule, rule.window_title_pattern
    return None


def _normalize_fields(fields: dict[str, Any]) -> dict[str, Any]:
    normalized = dict(fields)
    for name in MATCHER_FIELDS:
        value = normalized.get(name)
        if isinstance(value, str):
            value = value.strip().lower()
            normalized[name] = value or None
    if "category" in normalized and normalized["category"] is not None:
        try:
            normalized["category"] = CategoryType(normalized["category"]).value
        except ValueError:
            raise RuleValidationError(f"Invalid category '{normalized['category']}'")
    return normalized


class ProductivityRuleService:
    """CRUD over organization productivity rules"""

    def __init__(self, store: RuleStore):
        self.store = store

    async def list_rules(self, organization_id: int, active_only: bool = False) -> list[ProductivityRule]:
        return await self.store.list_productivity_rules(organization_id, active_only=active_only)

    async def create_rule(self, organization_id: int, created_by: Optional[str] = None, **fields: Any) -> ProductivityRule:
        fields = _normalize_fields(fields)
        if not any(fields.get(name) for name in MATCHER_FIELDS):
            raise RuleValidationError("At least one of app_name, url_pattern or window_title_pattern is required")
        if fields.get("category") is None:
            raise RuleValidationError("category is required")

        rule = await self.store.create_productivity_rule(
            organization_id=organization_id,
            created_by=created_by,
            **fields,
        )
        logger.info("Productivity rule %s created for organization %s by %s", rule.id, organization_id, created_by)
        return rule

    async def update_rule(self, rule_id: int, organization_id: int, **fields: Any) -> ProductivityRule:
        if not fields:
            raise RuleValidationError("No valid fields to update")
        fields = _normalize_fields(fields)
        for required in ("category", "productivity_score", "priority", "active"):
            if required in fields and fields[required] is None:
                raise RuleValidationError(f"{required} cannot be cleared")

        if any(name in fields for name in MATCHER_FIELDS):
            existing = await self.store.get_productivity_rule(rule_id, organization_id)
            if existing is None:
                raise RuleNotFoundError(f"Productivity rule {rule_id} not found")
            merged = {name: fields.get(name, getattr(existing, name)) for name in MATCHER_FIELDS}
            if not any(merged.values()):
                raise RuleValidationError("A rule needs at least one of app_name, url_pattern or window_title_pattern")

        return await self.store.update_productivity_rule(rule_id, organization_id, **fields)

    async def delete_rule(self, rule_id: int, organization_id: int) -> None:
        await self.store.delete_productivity_rule(rule_id, organization_id)
        logger.info("Productivity rule %s deleted from organization %s", rule_id, organization_id)
