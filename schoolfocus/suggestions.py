"""
Suggestion Review
The only path from a pending suggestion to an authoritative website rule
"""

import logging
from typing import Iterable, Optional

from schoolfocus.errors import RuleValidationError, SuggestionConflictError, SuggestionNotFoundError
from schoolfocus.models import CategorizationSuggestion
from schoolfocus.reference import Taxonomy
from schoolfocus.schemas import BatchApprovalItem, BatchApprovalResult, ReviewAction, SuggestionStatus
from schoolfocus.store import RuleStore
from schoolfocus.website_categories import WebsiteCategoryService

logger = logging.getLogger(__name__)


class SuggestionReviewService:
    def __init__(self, store: RuleStore, website_categories: WebsiteCategoryService, taxonomy: Taxonomy):
        self.store = store
        self.website_categories = website_categories
        self.taxonomy = taxonomy

    async def list_pending_suggestions(
        self,
        source: Optional[str] = None,
        organization_id: Optional[int] = None,
    ) -> list[CategorizationSuggestion]:
        return await self.store.list_suggestions(
            status=SuggestionStatus.pending.value,
            source=source,
            organization_id=organization_id,
        )

    async def apply_suggestion(
        self,
        suggestion_id: int,
        action: ReviewAction | str,
        override_category: Optional[str] = None,
        override_subcategory: Optional[str] = None,
        reviewed_by: Optional[str] = None,
        organization_id: Optional[int] = None,
    ) -> CategorizationSuggestion:
        """
        Approve or reject a pending suggestion.

        Approval upserts the website rule for (pattern, organization) using the
        override category/subcategory when given; everything is validated
        before the transaction starts. Suggestions of other organizations are
        reported as not found.
        """
        try:
            action = ReviewAction(action)
        except ValueError:
            raise RuleValidationError(f"Invalid action '{action}'. Must be approve or reject")

        suggestion = await self.store.get_suggestion(suggestion_id, organization_id)
        if suggestion is None:
            raise SuggestionNotFoundError(f"Suggestion {suggestion_id} not found")
        if suggestion.status != SuggestionStatus.pending.value:
            raise SuggestionConflictError(f"Suggestion {suggestion_id} is already {suggestion.status}")

        if action == ReviewAction.reject:
            reviewed = await self.store.review_suggestion(
                suggestion_id, SuggestionStatus.rejected,
                reviewed_by=reviewed_by, organization_id=organization_id,
            )
            logger.info("Suggestion %s rejected by %s", suggestion_id, reviewed_by)
            return reviewed

        category = override_category or suggestion.suggested_category
        subcategory = override_subcategory or suggestion.suggested_subcategory
        if override_category and not override_subcategory and subcategory:
            # Keep the suggested subcategory only when it still fits the new category
            if not self.taxonomy.is_consistent(category, subcategory):
                subcategory = None
        category, subcategory = self.taxonomy.validate(category, subcategory)

        try:
            reviewed = await self.store.review_suggestion(
                suggestion_id,
                SuggestionStatus.approved,
                category=category.value,
                subcategory=subcategory,
                reviewed_by=reviewed_by,
                organization_id=organization_id,
            )
        finally:
            self.website_categories.invalidate()

        logger.info(
            "Applied categorization for domain %s: category=%s, subcategory=%s",
            reviewed.pattern, category.value, subcategory,
        )
        return reviewed

    async def apply_batch(
        self,
        items: Iterable[BatchApprovalItem],
        reviewed_by: Optional[str] = None,
        organization_id: Optional[int] = None,
    ) -> list[BatchApprovalResult]:
        """Approve each suggestion independently; one failure does not stop the rest"""
        results = []
        for item in items:
            try:
                await self.apply_suggestion(
                    item.id,
                    ReviewAction.approve,
                    override_category=item.category.value if item.category else None,
                    override_subcategory=item.subcategory,
                    reviewed_by=reviewed_by,
                    organization_id=organization_id,
                )
            except SuggestionNotFoundError as exc:
                results.append(BatchApprovalResult(id=item.id, status="not_found", detail=str(exc)))
            except SuggestionConflictError as exc:
                results.append(BatchApprovalResult(id=item.id, status="conflict", detail=str(exc)))
            except RuleValidationError as exc:
                results.append(BatchApprovalResult(id=item.id, status="invalid", detail=str(exc)))
            else:
                results.append(BatchApprovalResult(id=item.id, status="approved"))

        applied = sum(1 for r in results if r.status == "approved")
        logger.info("Batch approval: %d of %d suggestions applied", applied, len(results))
        return results
