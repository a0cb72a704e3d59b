"""
Persistent Rule Store
Async SQLAlchemy access to rule tables, suggestions and activity history.
Every call opens its own session; writes commit before returning.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import String, delete, func, literal, or_, select, text
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from schoolfocus.errors import RuleNotFoundError, RuleValidationError, SuggestionConflictError, SuggestionNotFoundError
from schoolfocus.models import (
    Activity,
    AppCategory,
    CategorizationSuggestion,
    ProductivityRule,
    SubcategoryDefinition,
    User,
    WebsiteCategory,
)
from schoolfocus.reference import ReferenceData
from schoolfocus.schemas import SuggestionStatus

logger = logging.getLogger(__name__)


def _scope_clause(column, organization_id: Optional[int]):
    """organization_id = X, or IS NULL for the global scope"""
    if organization_id is None:
        return column.is_(None)
    return column == organization_id


def _manageable_clause(column, organization_id: Optional[int]):
    """Rows a caller of one organization may change: global ones and its own"""
    if organization_id is None:
        return column.is_(None)
    return or_(column.is_(None), column == organization_id)


class RuleStore:
    """Query/insert/update/delete/upsert operations used by the categorization core"""

    def __init__(self, session_maker: async_sessionmaker[AsyncSession]):
        self._session_maker = session_maker

    async def ping(self) -> bool:
        async with self._session_maker() as session:
            await session.execute(text("SELECT 1"))
        return True

    # ============================================================
    # REFERENCE DATA
    # ============================================================

    async def seed_reference_data(self, reference: ReferenceData) -> int:
        """Insert missing subcategory definitions and system website rules. Idempotent."""
        inserted = 0
        async with self._session_maker.begin() as session:
            existing = set((await session.execute(select(SubcategoryDefinition.name))).scalars().all())
            for seed in reference.subcategories:
                if seed.name in existing:
                    continue
                session.add(SubcategoryDefinition(
                    name=seed.name,
                    parent_category=seed.parent_category.value,
                    display_name=seed.display_name,
                    description=seed.description,
                    color_hex=seed.color_hex,
                    icon_name=seed.icon_name,
                    sort_order=seed.sort_order,
                ))
                inserted += 1

            system_patterns = set((await session.execute(
                select(WebsiteCategory.pattern).where(WebsiteCategory.is_system.is_(True))
            )).scalars().all())
            for seed in reference.system_website_rules:
                if seed.pattern in system_patterns:
                    continue
                session.add(WebsiteCategory(
                    pattern=seed.pattern,
                    category=seed.category.value,
                    subcategory=seed.subcategory,
                    name=seed.name,
                    description=seed.description,
                    priority=seed.priority,
                    is_system=True,
                ))
                inserted += 1

        if inserted:
            logger.info("Seeded %d reference rows", inserted)
        return inserted

    async def list_subcategories(self) -> list[SubcategoryDefinition]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(SubcategoryDefinition).order_by(SubcategoryDefinition.sort_order)
            )
            return list(result.scalars().all())

    # ============================================================
    # USERS
    # ============================================================

    async def get_organization_for_user(self, user_id: str) -> Optional[int]:
        async with self._session_maker() as session:
            result = await session.execute(select(User.organization_id).where(User.id == user_id))
            return result.scalar_one_or_none()

    # ============================================================
    # APP CATEGORIES
    # ============================================================

    async def find_app_category(
        self,
        app_name: str,
        organization_id: Optional[int] = None,
        bundle_id: Optional[str] = None,
    ) -> Optional[AppCategory]:
        """Organization-specific rule first, then the global one"""
        match = AppCategory.app_name == app_name
        if bundle_id:
            match = or_(match, AppCategory.bundle_id == bundle_id)

        async with self._session_maker() as session:
            if organization_id is not None:
                result = await session.execute(
                    select(AppCategory)
                    .where(match, AppCategory.organization_id == organization_id)
                    .order_by(AppCategory.id)
                    .limit(1)
                )
                category = result.scalar_one_or_none()
                if category:
                    return category

            result = await session.execute(
                select(AppCategory)
                .where(match, AppCategory.organization_id.is_(None))
                .order_by(AppCategory.id)
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def upsert_app_category(
        self,
        app_name: str,
        category: str,
        organization_id: Optional[int] = None,
        bundle_id: Optional[str] = None,
        subcategory: Optional[str] = None,
    ) -> tuple[AppCategory, Optional[str]]:
        """Insert or update the (app_name, scope) rule, returns it with its previous bundle id"""
        try:
            return await self._upsert_app_category(app_name, category, organization_id, bundle_id, subcategory)
        except IntegrityError:
            # A concurrent insert won; the second pass updates that row
            logger.info("Concurrent insert for app category %s, retrying as update", app_name)
            return await self._upsert_app_category(app_name, category, organization_id, bundle_id, subcategory)

    async def _upsert_app_category(
        self,
        app_name: str,
        category: str,
        organization_id: Optional[int],
        bundle_id: Optional[str],
        subcategory: Optional[str],
    ) -> tuple[AppCategory, Optional[str]]:
        async with self._session_maker.begin() as session:
            result = await session.execute(
                select(AppCategory).where(
                    AppCategory.app_name == app_name,
                    _scope_clause(AppCategory.organization_id, organization_id),
                )
            )
            app_category = result.scalar_one_or_none()
            previous_bundle_id = app_category.bundle_id if app_category else None

            if app_category:
                app_category.category = category
                app_category.subcategory = subcategory
                if bundle_id:
                    app_category.bundle_id = bundle_id
            else:
                app_category = AppCategory(
                    app_name=app_name,
                    category=category,
                    subcategory=subcategory,
                    bundle_id=bundle_id,
                    organization_id=organization_id,
                )
                session.add(app_category)
            await session.flush()
            return app_category, previous_bundle_id

    async def get_app_category(self, category_id: int, organization_id: Optional[int] = None) -> Optional[AppCategory]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(AppCategory).where(
                    AppCategory.id == category_id,
                    _manageable_clause(AppCategory.organization_id, organization_id),
                )
            )
            return result.scalar_one_or_none()

    async def update_app_category(
        self,
        category_id: int,
        *,
        organization_id: Optional[int] = None,
        **fields: Any,
    ) -> tuple[AppCategory, tuple[str, Optional[str]]]:
        """Update a rule the caller may manage, returns it with its previous (app_name, bundle_id)"""
        try:
            async with self._session_maker.begin() as session:
                result = await session.execute(
                    select(AppCategory).where(
                        AppCategory.id == category_id,
                        _manageable_clause(AppCategory.organization_id, organization_id),
                    )
                )
                app_category = result.scalar_one_or_none()
                if app_category is None:
                    raise RuleNotFoundError(f"App category {category_id} not found")

                previous = (app_category.app_name, app_category.bundle_id)
                for key, value in fields.items():
                    setattr(app_category, key, value)
                await session.flush()
                return app_category, previous
        except IntegrityError as exc:
            raise RuleValidationError(f"Another rule already exists for app {fields.get('app_name')}") from exc

    async def delete_app_category(self, category_id: int, organization_id: Optional[int] = None) -> AppCategory:
        """Delete a rule the caller may manage, returns the deleted row (for cache eviction)"""
        async with self._session_maker.begin() as session:
            result = await session.execute(
                select(AppCategory).where(
                    AppCategory.id == category_id,
                    _manageable_clause(AppCategory.organization_id, organization_id),
                )
            )
            app_category = result.scalar_one_or_none()
            if app_category is None:
                raise RuleNotFoundError(f"App category {category_id} not found")
            await session.delete(app_category)
            return app_category

    async def list_app_categories(self, organization_id: Optional[int] = None) -> list[AppCategory]:
        """Global categories plus the organization's own"""
        scope = AppCategory.organization_id.is_(None)
        if organization_id is not None:
            scope = or_(scope, AppCategory.organization_id == organization_id)
        async with self._session_maker() as session:
            result = await session.execute(
                select(AppCategory).where(scope).order_by(AppCategory.app_name, AppCategory.id)
            )
            return list(result.scalars().all())

    # ============================================================
    # WEBSITE CATEGORIES
    # ============================================================

    async def find_website_category(self, domain: str, organization_id: Optional[int] = None) -> Optional[WebsiteCategory]:
        """
        Best stored pattern for a domain.
        Matches `domain LIKE '%' || pattern || '%' OR pattern = domain`,
        highest priority first, then the longest pattern.
        """
        domain_literal = literal(domain, String)
        scope = WebsiteCategory.organization_id.is_(None)
        if organization_id is not None:
            scope = or_(scope, WebsiteCategory.organization_id == organization_id)

        async with self._session_maker() as session:
            result = await session.execute(
                select(WebsiteCategory)
                .where(
                    or_(
                        domain_literal.like(literal("%", String) + WebsiteCategory.pattern + literal("%", String)),
                        WebsiteCategory.pattern == domain,
                    ),
                    scope,
                )
                .order_by(
                    WebsiteCategory.priority.desc(),
                    func.length(WebsiteCategory.pattern).desc(),
                    WebsiteCategory.id,
                )
                .limit(1)
            )
            return result.scalar_one_or_none()

    async def list_website_categories(self, organization_id: Optional[int] = None) -> list[WebsiteCategory]:
        scope = WebsiteCategory.organization_id.is_(None)
        if organization_id is not None:
            scope = or_(scope, WebsiteCategory.organization_id == organization_id)
        async with self._session_maker() as session:
            result = await session.execute(
                select(WebsiteCategory)
                .where(scope)
                .order_by(WebsiteCategory.priority.desc(), WebsiteCategory.pattern)
            )
            return list(result.scalars().all())

    async def create_website_category(self, **fields: Any) -> WebsiteCategory:
        async with self._session_maker.begin() as session:
            website_category = WebsiteCategory(**fields)
            session.add(website_category)
            await session.flush()
            return website_category

    async def update_website_category(
        self,
        category_id: int,
        *,
        organization_id: Optional[int] = None,
        **fields: Any,
    ) -> WebsiteCategory:
        async with self._session_maker.begin() as session:
            result = await session.execute(
                select(WebsiteCategory).where(
                    WebsiteCategory.id == category_id,
                    _manageable_clause(WebsiteCategory.organization_id, organization_id),
                )
            )
            website_category = result.scalar_one_or_none()
            if website_category is None:
                raise RuleNotFoundError(f"Website category {category_id} not found")
            for key, value in fields.items():
                setattr(website_category, key, value)
            await session.flush()
            return website_category

    async def get_website_category(self, category_id: int, organization_id: Optional[int] = None) -> Optional[WebsiteCategory]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(WebsiteCategory).where(
                    WebsiteCategory.id == category_id,
                    _manageable_clause(WebsiteCategory.organization_id, organization_id),
                )
            )
            return result.scalar_one_or_none()

    async def delete_website_category(self, category_id: int, organization_id: Optional[int] = None) -> None:
        """Delete an admin-defined rule; system rules are never deleted"""
        async with self._session_maker.begin() as session:
            result = await session.execute(
                delete(WebsiteCategory)
                .where(
                    WebsiteCategory.id == category_id,
                    WebsiteCategory.is_system.is_(False),
                    _manageable_clause(WebsiteCategory.organization_id, organization_id),
                )
            )
            if result.rowcount == 0:
                raise RuleNotFoundError("Website category not found or is a system category")

    # ============================================================
    # ORGANIZATION PRODUCTIVITY RULES
    # ============================================================

    async def list_productivity_rules(self, organization_id: int, active_only: bool = True) -> list[ProductivityRule]:
        """Rules ordered by priority DESC, created_at DESC"""
        query = select(ProductivityRule).where(ProductivityRule.organization_id == organization_id)
        if active_only:
            query = query.where(ProductivityRule.active.is_(True))
        query = query.order_by(
            ProductivityRule.priority.desc(),
            ProductivityRule.created_at.desc(),
            ProductivityRule.id.desc(),
        )
        async with self._session_maker() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def get_productivity_rule(self, rule_id: int, organization_id: int) -> Optional[ProductivityRule]:
        async with self._session_maker() as session:
            result = await session.execute(
                select(ProductivityRule).where(
                    ProductivityRule.id == rule_id,
                    ProductivityRule.organization_id == organization_id,
                )
            )
            return result.scalar_one_or_none()

    async def create_productivity_rule(self, **fields: Any) -> ProductivityRule:
        async with self._session_maker.begin() as session:
            rule = ProductivityRule(**fields)
            session.add(rule)
            await session.flush()
            return rule

    async def update_productivity_rule(self, rule_id: int, organization_id: int, **fields: Any) -> ProductivityRule:
        async with self._session_maker.begin() as session:
            result = await session.execute(
                select(ProductivityRule).where(
                    ProductivityRule.id == rule_id,
                    ProductivityRule.organization_id == organization_id,
                )
            )
            rule = result.scalar_one_or_none()
            if rule is None:
                raise RuleNotFoundError(f"Productivity rule {rule_id} not found")
            for key, value in fields.items():
                setattr(rule, key, value)
            await session.flush()
            return rule

    async def delete_productivity_rule(self, rule_id: int, organization_id: int) -> None:
        async with self._session_maker.begin() as session:
            result = await session.execute(
                delete(ProductivityRule).where(
                    ProductivityRule.id == rule_id,
                    ProductivityRule.organization_id == organization_id,
                )
            )
            if result.rowcount == 0:
                raise RuleNotFoundError(f"Productivity rule {rule_id} not found")

    # ============================================================
    # ACTIVITY HISTORY
    # ============================================================

    async def add_activities(self, activities: Iterable[Activity]) -> int:
        activities = list(activities)
        async with self._session_maker.begin() as session:
            session.add_all(activities)
        return len(activities)

    async def fetch_url_activity(self, since: datetime, organization_id: Optional[int] = None) -> list[Any]:
        """(user_id, url, start_time, end_time) rows with a URL and a positive duration"""
        query = (
            select(Activity.user_id, Activity.url, Activity.start_time, Activity.end_time)
            .where(
                Activity.url.is_not(None),
                Activity.url != "",
                Activity.end_time > Activity.start_time,
                Activity.start_time > since,
            )
        )
        if organization_id is not None:
            query = query.where(Activity.organization_id == organization_id)
        async with self._session_maker() as session:
            result = await session.execute(query)
            return list(result.all())

    # ============================================================
    # SUGGESTIONS
    # ============================================================

    async def add_suggestions(self, suggestions: Iterable[CategorizationSuggestion]) -> int:
        suggestions = list(suggestions)
        async with self._session_maker.begin() as session:
            session.add_all(suggestions)
        return len(suggestions)

    async def replace_pending_suggestions(
        self,
        source: str,
        suggestions: Iterable[CategorizationSuggestion],
        organization_id: Optional[int] = None,
    ) -> int:
        """Clear pending suggestions of one source and scope, then insert, in a single transaction"""
        suggestions = list(suggestions)
        async with self._session_maker.begin() as session:
            await session.execute(
                delete(CategorizationSuggestion).where(
                    CategorizationSuggestion.status == SuggestionStatus.pending.value,
                    CategorizationSuggestion.source == source,
                    _scope_clause(CategorizationSuggestion.organization_id, organization_id),
                )
            )
            session.add_all(suggestions)
        return len(suggestions)

    async def get_suggestion(self, suggestion_id: int, organization_id: Optional[int] = None) -> Optional[CategorizationSuggestion]:
        """A suggestion visible to the caller: global ones and its organization's"""
        async with self._session_maker() as session:
            result = await session.execute(
                select(CategorizationSuggestion).where(
                    CategorizationSuggestion.id == suggestion_id,
                    _manageable_clause(CategorizationSuggestion.organization_id, organization_id),
                )
            )
            return result.scalar_one_or_none()

    async def list_suggestions(
        self,
        status: Optional[str] = SuggestionStatus.pending.value,
        source: Optional[str] = None,
        organization_id: Optional[int] = None,
    ) -> list[CategorizationSuggestion]:
        query = select(CategorizationSuggestion)
        if status is not None:
            query = query.where(CategorizationSuggestion.status == status)
        if source is not None:
            query = query.where(CategorizationSuggestion.source == source)
        query = query.where(_manageable_clause(CategorizationSuggestion.organization_id, organization_id))
        query = query.order_by(
            CategorizationSuggestion.confidence.desc(),
            CategorizationSuggestion.created_at.desc(),
            CategorizationSuggestion.id.desc(),
        )
        async with self._session_maker() as session:
            result = await session.execute(query)
            return list(result.scalars().all())

    async def review_suggestion(
        self,
        suggestion_id: int,
        status: SuggestionStatus,
        category: Optional[str] = None,
        subcategory: Optional[str] = None,
        reviewed_by: Optional[str] = None,
        organization_id: Optional[int] = None,
    ) -> CategorizationSuggestion:
        """
        Move a pending suggestion the caller may review to a terminal status.
        Approval upserts the website rule keyed by (pattern, organization) in the same transaction.
        """
        async with self._session_maker.begin() as session:
            result = await session.execute(
                select(CategorizationSuggestion)
                .where(
                    CategorizationSuggestion.id == suggestion_id,
                    _manageable_clause(CategorizationSuggestion.organization_id, organization_id),
                )
                .with_for_update()
            )
            suggestion = result.scalar_one_or_none()
            if suggestion is None:
                raise SuggestionNotFoundError(f"Suggestion {suggestion_id} not found")
            if suggestion.status != SuggestionStatus.pending.value:
                raise SuggestionConflictError(
                    f"Suggestion {suggestion_id} is already {suggestion.status}"
                )

            if status == SuggestionStatus.approved:
                rule_result = await session.execute(
                    select(WebsiteCategory).where(
                        WebsiteCategory.pattern == suggestion.pattern,
                        _scope_clause(WebsiteCategory.organization_id, suggestion.organization_id),
                    )
                )
                rule = rule_result.scalars().first()
                if rule:
                    rule.category = category
                    rule.subcategory = subcategory
                else:
                    session.add(WebsiteCategory(
                        pattern=suggestion.pattern,
                        category=category,
                        subcategory=subcategory,
                        priority=1,
                        is_system=False,
                        organization_id=suggestion.organization_id,
                        created_by=reviewed_by,
                    ))

            suggestion.status = status.value
            suggestion.reviewed_by = reviewed_by
            suggestion.reviewed_at = datetime.now(timezone.utc)
            await session.flush()
            return suggestion
