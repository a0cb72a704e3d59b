"""
AI Categorization API endpoints
Review queue for learner and AI suggestions, plus manual job triggers
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from schoolfocus.api.deps import get_services, require_organization
from schoolfocus.auth import get_current_user, get_admin_user, get_staff_user
from schoolfocus.errors import (
    ClassifierError,
    RuleValidationError,
    SuggestionConflictError,
    SuggestionNotFoundError,
)
from schoolfocus.schemas import (
    BatchApproval,
    BatchApprovalResponse,
    SuggestionResponse,
    SuggestionReview,
    SuggestionSource,
    TokenData,
    UncategorizedWebsite,
)
from schoolfocus.services import Services

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/suggestions", response_model=list[SuggestionResponse])
async def list_suggestions(
    source: Optional[SuggestionSource] = None,
    current_user: TokenData = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Pending suggestions, most confident first.
    """
    return await services.suggestions.list_pending_suggestions(
        source=source.value if source else None,
        organization_id=current_user.organization_id,
    )


@router.post("/suggestions/{suggestion_id}/review", response_model=SuggestionResponse)
async def review_suggestion(
    suggestion_id: int,
    data: SuggestionReview,
    admin: TokenData = Depends(get_admin_user),
    services: Services = Depends(get_services),
):
    """
    Approve or reject a suggestion (Admin only).
    Approval creates or updates the website rule for the suggested domain.
    """
    try:
        return await services.suggestions.apply_suggestion(
            suggestion_id,
            data.action,
            override_category=data.new_category.value if data.new_category else None,
            override_subcategory=data.new_subcategory,
            reviewed_by=admin.user_id,
            organization_id=admin.organization_id,
        )
    except SuggestionNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except SuggestionConflictError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except RuleValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/suggestions/apply-batch", response_model=BatchApprovalResponse)
async def apply_suggestions_batch(
    data: BatchApproval,
    admin: TokenData = Depends(get_admin_user),
    services: Services = Depends(get_services),
):
    """
    Approve several suggestions (Admin only).
    Each id gets its own result; failures do not stop the batch.
    """
    results = await services.suggestions.apply_batch(
        data.suggestions,
        reviewed_by=admin.user_id,
        organization_id=admin.organization_id,
    )
    return BatchApprovalResponse(
        applied=sum(1 for r in results if r.status == "approved"),
        total=len(results),
        results=results,
    )


@router.get("/uncategorized", response_model=list[UncategorizedWebsite])
async def list_uncategorized_websites(
    limit: int = Query(50, ge=1, le=500),
    staff: TokenData = Depends(get_staff_user),
    services: Services = Depends(get_services),
):
    """
    Recently visited domains that have no stored website rule, most visited first.
    """
    websites = await services.ai_generator.list_uncategorized(require_organization(staff), limit=limit)
    return [UncategorizedWebsite(**w.model_dump()) for w in websites]


@router.post("/analyze")
async def trigger_ai_analysis(
    admin: TokenData = Depends(get_admin_user),
    services: Services = Depends(get_services),
):
    """
    Run the AI categorization now (Admin only).
    """
    try:
        suggestions = await services.ai_generator.run_daily_analysis()
    except ClassifierError as e:
        logger.error("Manual AI analysis failed: %s", e)
        raise HTTPException(status_code=502, detail=f"AI classifier unavailable: {e}")

    return {
        "message": f"Generated {len(suggestions)} AI categorization suggestions",
        "count": len(suggestions),
        "suggestions": [s.model_dump(mode="json") for s in suggestions],
    }


@router.post("/learn")
async def trigger_learning(
    admin: TokenData = Depends(get_admin_user),
    services: Services = Depends(get_services),
):
    """
    Run usage-pattern learning now (Admin only).
    """
    suggestions = await services.learner.learn_from_usage_patterns()
    return {
        "message": f"Generated {len(suggestions)} categorization suggestions",
        "count": len(suggestions),
        "suggestions": [
            {
                "domain": s.domain,
                "current_category": s.current_category.value,
                "suggested_category": s.suggested_category.value,
                "confidence": s.confidence,
                "needs_review": s.needs_review,
                "reason": s.reason,
            }
            for s in suggestions
        ],
    }
