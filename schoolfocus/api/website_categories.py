"""
Website Category API endpoints
Manage domain pattern rules used by URL categorization
"""

from fastapi import APIRouter, Depends, HTTPException

from schoolfocus.api.deps import get_services
from schoolfocus.auth import get_current_user, get_admin_user
from schoolfocus.errors import RuleNotFoundError, RuleValidationError
from schoolfocus.schemas import (
    TokenData,
    WebsiteCategoryCreate,
    WebsiteCategoryResponse,
    WebsiteCategoryUpdate,
)
from schoolfocus.services import Services

router = APIRouter()


@router.get("", response_model=list[WebsiteCategoryResponse])
async def list_website_categories(
    current_user: TokenData = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Global website rules plus the caller's organization rules.
    """
    return await services.website_categories.get_categories(current_user.organization_id)


@router.post("", response_model=WebsiteCategoryResponse, status_code=201)
async def create_website_category(
    data: WebsiteCategoryCreate,
    admin: TokenData = Depends(get_admin_user),
    services: Services = Depends(get_services),
):
    """
    Add a website rule for the admin's organization (Admin only).
    """
    try:
        return await services.website_categories.create_category(
            pattern=data.pattern,
            category=data.category,
            subcategory=data.subcategory,
            organization_id=admin.organization_id,
            created_by=admin.user_id,
            name=data.name,
            description=data.description,
            priority=data.priority,
        )
    except RuleValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/{category_id}", response_model=WebsiteCategoryResponse)
async def update_website_category(
    category_id: int,
    data: WebsiteCategoryUpdate,
    admin: TokenData = Depends(get_admin_user),
    services: Services = Depends(get_services),
):
    """
    Update a website rule (Admin only).
    Rules of other organizations are not found.
    """
    fields = data.model_dump(exclude_unset=True)
    if fields.get("category") is not None:
        fields["category"] = fields["category"].value
    try:
        return await services.website_categories.update_category(
            category_id, organization_id=admin.organization_id, **fields,
        )
    except RuleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RuleValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{category_id}")
async def delete_website_category(
    category_id: int,
    admin: TokenData = Depends(get_admin_user),
    services: Services = Depends(get_services),
):
    """
    Remove an admin-defined website rule (Admin only). System rules are kept.
    """
    try:
        await services.website_categories.delete_category(category_id, admin.organization_id)
    except RuleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {"message": "Website category deleted successfully"}
