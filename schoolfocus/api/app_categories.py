"""
App Category API endpoints
Admin-assigned categories for applications (organization or global)
"""

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException

from schoolfocus.api.deps import get_services, require_organization
from schoolfocus.auth import get_current_user, get_admin_user
from schoolfocus.errors import RuleNotFoundError, RuleValidationError
from schoolfocus.schemas import (
    AppCategoryCreate,
    AppCategoryResponse,
    AppCategoryUpdate,
    SubcategoryResponse,
    TokenData,
)
from schoolfocus.services import Services

router = APIRouter()


@router.get("", response_model=list[AppCategoryResponse])
async def list_app_categories(
    current_user: TokenData = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Global app categories plus the caller's organization overrides.
    """
    return await services.app_categories.get_categories_for_organization(current_user.organization_id)


@router.get("/subcategories", response_model=list[SubcategoryResponse])
async def list_subcategories(
    current_user: TokenData = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Subcategory taxonomy in display order.
    """
    return await services.app_categories.get_all_subcategories()


@router.get("/app/{app_name}")
async def get_app_category(
    app_name: str,
    bundle_id: Optional[str] = None,
    current_user: TokenData = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Stored rule that applies to an app for the caller's organization.
    """
    rule = await services.app_categories.get_category_for_app(
        app_name, current_user.organization_id, bundle_id=bundle_id,
    )
    if rule is None:
        raise HTTPException(
            status_code=404,
            detail=f"No category rule for app: {app_name}"
        )

    return {
        "app_name": app_name,
        "category": rule.category,
        "subcategory": rule.subcategory,
        "organization_id": rule.organization_id,
        "is_global": rule.organization_id is None,
    }


@router.post("", response_model=AppCategoryResponse, status_code=201)
async def set_app_category(
    data: AppCategoryCreate,
    admin: TokenData = Depends(get_admin_user),
    services: Services = Depends(get_services),
):
    """
    Set (or replace) the category for an app (Admin only).
    """
    organization_id = None if data.is_global else require_organization(admin)
    try:
        return await services.app_categories.set_category_for_app(
            data.app_name,
            data.category,
            organization_id=organization_id,
            bundle_id=data.bundle_id,
            subcategory=data.subcategory,
        )
    except RuleValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/{category_id}", response_model=AppCategoryResponse)
async def update_app_category(
    category_id: int,
    data: AppCategoryUpdate,
    admin: TokenData = Depends(get_admin_user),
    services: Services = Depends(get_services),
):
    """
    Update an app category rule by id (Admin only).
    Rules of other organizations are not found.
    """
    fields = data.model_dump(exclude_unset=True)
    if fields.get("category") is not None:
        fields["category"] = fields["category"].value
    try:
        return await services.app_categories.update_category(
            category_id, organization_id=admin.organization_id, **fields,
        )
    except RuleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RuleValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{category_id}")
async def delete_app_category(
    category_id: int,
    admin: TokenData = Depends(get_admin_user),
    services: Services = Depends(get_services),
):
    """
    Remove an app category rule (Admin only).
    """
    try:
        app_category = await services.app_categories.delete_category(category_id, admin.organization_id)
    except RuleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {"message": f"App category removed: {app_category.app_name}"}
