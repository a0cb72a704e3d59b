"""
AI Suggestion Generator
Sends frequently visited but uncategorized domains to an external classifier
and stores its verdicts as pending suggestions for admin review
"""

import asyncio
import json
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Protocol

import httpx
from pydantic import BaseModel, Field, ValidationError

from schoolfocus.categorization import normalize_domain
from schoolfocus.errors import ClassifierError, RuleValidationError
from schoolfocus.models import CategorizationSuggestion
from schoolfocus.reference import Taxonomy
from schoolfocus.resolver import CategorizationResolver
from schoolfocus.schemas import CategoryType, SuggestionSource, SuggestionStatus
from schoolfocus.store import RuleStore

logger = logging.getLogger(__name__)

UNCLASSIFIED_REASON = "Unable to categorize"
CATEGORY_VALUES = {c.value for c in CategoryType}

SYSTEM_PROMPT = (
    "You are an expert at categorizing websites for student productivity tracking. "
    'Be conservative with "productive" categorization - only clearly educational sites should be productive. '
    "Gaming, social media, and entertainment should always be distracting. "
    "Always provide both a category and a specific subcategory from the list provided."
)


# ============================================================
# CLASSIFIER TYPES
# ============================================================

class WebsiteUsage(BaseModel):
    """Aggregated usage of one domain, sent to the classifier"""
    domain: str
    visit_count: int
    avg_duration: float  # seconds


class ClassifiedWebsite(BaseModel):
    """One raw classifier verdict (not yet checked against the taxonomy)"""
    domain: str
    category: str
    subcategory: Optional[str] = None
    confidence: float = 0.5
    reason: str = ""


class WebsiteSuggestion(BaseModel):
    domain: str
    category: CategoryType
    subcategory: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    reason: str
    visit_count: int
    avg_duration: float
    needs_review: bool = False  # classifier gave no usable verdict


class SuggestionClassifier(Protocol):
    async def classify(self, websites: list[WebsiteUsage], taxonomy: Taxonomy) -> list[ClassifiedWebsite]:
        ...


def build_prompt(websites: list[WebsiteUsage], taxonomy: Taxonomy) -> str:
    listing = "\n".join(
        f"- {w.domain} (visited {w.visit_count} times, avg {round(w.avg_duration / 60)}min/visit)"
        for w in websites
    )
    return f"""Analyze these websites visited by students and categorize them for productivity tracking.

Categories and Subcategories:
{taxonomy.describe()}

For each website, provide:
1. Category (productive/neutral/distracting)
2. Subcategory from the list above
3. Confidence score (0.0-1.0)
4. Brief reason for categorization

Websites to analyze:
{listing}

Respond in JSON format:
{{
  "suggestions": [
    {{
      "domain": "example.com",
      "category": "productive",
      "subcategory": "school",
      "confidence": 0.85,
      "reason": "Brief explanation"
    }}
  ]
}}"""


def parse_classifier_content(content: Optional[str]) -> list[ClassifiedWebsite]:
    """Parse the model's JSON reply; malformed items are skipped"""
    if not content:
        raise ClassifierError("No response from classifier")
    try:
        parsed = json.loads(content)
    except json.JSONDecodeError as exc:
        raise ClassifierError(f"Classifier returned non-JSON content: {exc}") from exc

    suggestions = parsed.get("suggestions") if isinstance(parsed, dict) else None
    if not isinstance(suggestions, list):
        raise ClassifierError("Classifier response has no 'suggestions' list")

    classified = []
    for item in suggestions:
        try:
            classified.append(ClassifiedWebsite.model_validate(item))
        except ValidationError:
            logger.warning("Skipping malformed classifier item: %r", item)
    return classified


# ============================================================
# OPENAI-COMPATIBLE CLASSIFIER
# ============================================================

class OpenAIClassifier:
    """Chat-completions classifier over httpx"""

    def __init__(
        self,
        api_key: Optional[str],
        base_url: str = "https://api.openai.com/v1",
        model: str = "gpt-4-turbo-preview",
        timeout: float = 60.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout
        self._client = client

    async def classify(self, websites: list[WebsiteUsage], taxonomy: Taxonomy) -> list[ClassifiedWebsite]:
        if not self.api_key:
            raise ClassifierError("OpenAI API key not configured - AI categorization disabled")

        payload = {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_prompt(websites, taxonomy)},
            ],
            "response_format": {"type": "json_object"},
            "temperature": 0.3,
            "max_tokens": 2000,
        }

        try:
            response = await asyncio.wait_for(self._post(payload), timeout=self.timeout)
        except (asyncio.TimeoutError, httpx.TimeoutException) as exc:
            raise ClassifierError(f"Classifier timed out after {self.timeout}s") from exc
        except httpx.HTTPError as exc:
            raise ClassifierError(f"Classifier request failed: {exc}") from exc

        if not response.is_success:
            raise ClassifierError(f"Classifier error {response.status_code}: {response.text}")

        try:
            content = response.json()["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as exc:
            raise ClassifierError("No response from classifier") from exc
        return parse_classifier_content(content)

    async def _post(self, payload: dict[str, Any]) -> httpx.Response:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        url = f"{self.base_url}/chat/completions"
        if self._client is not None:
            return await self._client.post(url, json=payload, headers=headers)
        async with httpx.AsyncClient(timeout=httpx.Timeout(self.timeout)) as client:
            return await client.post(url, json=payload, headers=headers)


# ============================================================
# GENERATOR
# ============================================================

class AISuggestionGenerator:
    def __init__(
        self,
        store: RuleStore,
        resolver: CategorizationResolver,
        classifier: SuggestionClassifier,
        taxonomy: Taxonomy,
        lookback_days: int = 7,
        min_visits: int = 3,
        max_domains: int = 20,
    ):
        self.store = store
        self.resolver = resolver
        self.classifier = classifier
        self.taxonomy = taxonomy
        self.lookback_days = lookback_days
        self.min_visits = min_visits
        self.max_domains = max_domains

    async def domain_usage(
        self,
        organization_id: Optional[int] = None,
        now: Optional[datetime] = None,
        min_visits: int = 1,
    ) -> list[WebsiteUsage]:
        """Visited domains in the lookback window, most visited first"""
        now = now or datetime.now(timezone.utc)
        rows = await self.store.fetch_url_activity(now - timedelta(days=self.lookback_days), organization_id)

        durations: dict[str, list[float]] = defaultdict(list)
        for _user_id, url, start_time, end_time in rows:
            domain = normalize_domain(url)
            if domain:
                durations[domain].append((end_time - start_time).total_seconds())

        usage = [
            WebsiteUsage(domain=domain, visit_count=len(values), avg_duration=sum(values) / len(values))
            for domain, values in durations.items()
            if len(values) >= min_visits
        ]
        usage.sort(key=lambda website: (-website.visit_count, website.domain))
        return usage

    async def select_domains(
        self,
        organization_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[WebsiteUsage]:
        """Frequently visited domains that have no confident categorization yet"""
        selected = []
        for website in await self.domain_usage(organization_id, now, self.min_visits):
            if len(selected) >= self.max_domains:
                break
            verdict, stored = await self.resolver.categorize_domain(website.domain, organization_id)
            if stored or verdict.is_conclusive:
                continue
            selected.append(website)
        return selected

    async def list_uncategorized(
        self,
        organization_id: Optional[int] = None,
        now: Optional[datetime] = None,
        limit: int = 50,
    ) -> list[WebsiteUsage]:
        """Visited domains without a stored website rule"""
        uncategorized = []
        for website in await self.domain_usage(organization_id, now):
            if len(uncategorized) >= limit:
                break
            _verdict, stored = await self.resolver.categorize_domain(website.domain, organization_id)
            if not stored:
                uncategorized.append(website)
        return uncategorized

    async def analyze_websites(self, websites: list[WebsiteUsage]) -> list[WebsiteSuggestion]:
        """Classify a batch; output matches the input length and order"""
        classified = await self.classifier.classify(websites, self.taxonomy)

        verdicts: dict[str, ClassifiedWebsite] = {}
        for item in classified:
            domain = normalize_domain(item.domain) or item.domain.lower()
            if item.category not in CATEGORY_VALUES:
                logger.warning("Ignoring classifier verdict for %s: invalid category %r", domain, item.category)
                continue
            verdicts.setdefault(domain, item)

        suggestions = []
        for website in websites:
            item = verdicts.get(website.domain)
            if item is None:
                suggestions.append(WebsiteSuggestion(
                    domain=website.domain,
                    category=CategoryType.neutral,
                    confidence=0.5,
                    reason=UNCLASSIFIED_REASON,
                    visit_count=website.visit_count,
                    avg_duration=website.avg_duration,
                    needs_review=True,
                ))
                continue

            category = CategoryType(item.category)
            suggestions.append(WebsiteSuggestion(
                domain=website.domain,
                category=category,
                subcategory=self._checked_subcategory(website.domain, category, item.subcategory),
                confidence=min(max(item.confidence, 0.0), 1.0),
                reason=item.reason or UNCLASSIFIED_REASON,
                visit_count=website.visit_count,
                avg_duration=website.avg_duration,
            ))
        return suggestions

    async def run_daily_analysis(
        self,
        organization_id: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[WebsiteSuggestion]:
        websites = await self.select_domains(organization_id, now)
        if not websites:
            logger.info("No uncategorized websites to analyze")
            return []

        logger.info("Analyzing %d uncategorized websites with AI", len(websites))
        suggestions = await self.analyze_websites(websites)
        saved = await self.store.replace_pending_suggestions(
            SuggestionSource.ai.value,
            [self._to_row(s, organization_id) for s in suggestions],
            organization_id=organization_id,
        )
        logger.info("Saved %d AI categorization suggestions", saved)
        return suggestions

    def _checked_subcategory(self, domain: str, category: CategoryType, subcategory: Optional[str]) -> Optional[str]:
        if not subcategory:
            return None
        try:
            return self.taxonomy.validate(category, subcategory)[1]
        except RuleValidationError as exc:
            logger.warning("Dropping classifier subcategory for %s: %s", domain, exc)
            return None

    @staticmethod
    def _to_row(suggestion: WebsiteSuggestion, organization_id: Optional[int]) -> CategorizationSuggestion:
        return CategorizationSuggestion(
            pattern=suggestion.domain,
            suggested_category=suggestion.category.value,
            suggested_subcategory=suggestion.subcategory,
            confidence=suggestion.confidence,
            reason=suggestion.reason,
            evidence={
                "visit_count": suggestion.visit_count,
                "avg_duration_seconds": round(suggestion.avg_duration),
            },
            status=SuggestionStatus.pending.value,
            source=SuggestionSource.ai.value,
            needs_review=suggestion.needs_review,
            organization_id=organization_id,
        )
