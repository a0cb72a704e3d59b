"""
Service container
Builds the categorization core once per process and hands it to routers and jobs
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from schoolfocus.ai_suggestions import AISuggestionGenerator, OpenAIClassifier, SuggestionClassifier
from schoolfocus.app_categories import AppCategoryService
from schoolfocus.categorization import HeuristicCategorizer
from schoolfocus.config import Settings
from schoolfocus.custom_rules import ProductivityRuleService
from schoolfocus.learning import UsagePatternLearner
from schoolfocus.reference import ReferenceData, Taxonomy, load_reference_data
from schoolfocus.resolver import CategorizationResolver
from schoolfocus.rule_cache import RuleCache
from schoolfocus.store import RuleStore
from schoolfocus.suggestions import SuggestionReviewService
from schoolfocus.website_categories import WebsiteCategoryService

logger = logging.getLogger(__name__)


@dataclass
class Services:
    settings: Settings
    reference: ReferenceData
    taxonomy: Taxonomy
    store: RuleStore
    app_categories: AppCategoryService
    website_categories: WebsiteCategoryService
    productivity_rules: ProductivityRuleService
    resolver: CategorizationResolver
    learner: UsagePatternLearner
    ai_generator: AISuggestionGenerator
    suggestions: SuggestionReviewService

    async def initialize(self) -> None:
        """Seed reference rows, then load the taxonomy from the database"""
        await self.store.seed_reference_data(self.reference)
        self.taxonomy.refresh(await self.store.list_subcategories())
        logger.info("Taxonomy loaded with %d subcategories", len(self.taxonomy.subcategories))


def build_services(
    settings: Settings,
    session_maker: async_sessionmaker[AsyncSession],
    classifier: Optional[SuggestionClassifier] = None,
    clock: Callable[[], float] = time.monotonic,
    reference: Optional[ReferenceData] = None,
) -> Services:
    reference = reference or load_reference_data(settings.REFERENCE_DATA_PATH)
    taxonomy = Taxonomy.from_seeds(reference.subcategories)
    store = RuleStore(session_maker)

    app_categories = AppCategoryService(
        store, taxonomy,
        RuleCache(settings.RULE_CACHE_TTL_SECONDS, settings.RULE_CACHE_MAX_ENTRIES, clock),
    )
    website_categories = WebsiteCategoryService(
        store, taxonomy,
        RuleCache(settings.RULE_CACHE_TTL_SECONDS, settings.RULE_CACHE_MAX_ENTRIES, clock),
    )
    resolver = CategorizationResolver(
        store,
        app_categories,
        website_categories,
        HeuristicCategorizer(reference, taxonomy),
        taxonomy,
    )

    if classifier is None:
        classifier = OpenAIClassifier(
            api_key=settings.OPENAI_API_KEY,
            base_url=settings.OPENAI_BASE_URL,
            model=settings.OPENAI_MODEL,
            timeout=settings.AI_TIMEOUT_SECONDS,
        )

    return Services(
        settings=settings,
        reference=reference,
        taxonomy=taxonomy,
        store=store,
        app_categories=app_categories,
        website_categories=website_categories,
        productivity_rules=ProductivityRuleService(store),
        resolver=resolver,
        learner=UsagePatternLearner(
            store,
            website_categories,
            lookback_days=settings.LEARNING_LOOKBACK_DAYS,
            min_visits=settings.LEARNING_MIN_VISITS,
            max_domains=settings.LEARNING_MAX_DOMAINS,
            tz=settings.LEARNING_TIMEZONE,
        ),
        ai_generator=AISuggestionGenerator(
            store,
            resolver,
            classifier,
            taxonomy,
            lookback_days=settings.AI_LOOKBACK_DAYS,
            min_visits=settings.AI_MIN_VISITS,
            max_domains=settings.AI_MAX_DOMAINS,
        ),
        suggestions=SuggestionReviewService(store, website_categories, taxonomy),
    )
