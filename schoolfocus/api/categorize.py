"""
Categorization API endpoint
Resolve a single (app, URL, window title) observation
"""

from fastapi import APIRouter, Depends

from schoolfocus.api.deps import get_services
from schoolfocus.auth import get_current_user
from schoolfocus.schemas import CategorizeRequest, ResolvedCategorization, TokenData
from schoolfocus.services import Services

router = APIRouter()


@router.post("/categorize", response_model=ResolvedCategorization)
async def categorize_activity(
    data: CategorizeRequest,
    current_user: TokenData = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Categorize an activity for the calling user's organization.
    Never fails for unknown apps or sites; lookup errors degrade to neutral.
    """
    return await services.resolver.categorize(
        app_name=data.app_name,
        url=data.url,
        window_title=data.window_title,
        user_id=current_user.user_id,
        organization_id=current_user.organization_id,
        bundle_id=data.bundle_id,
    )
