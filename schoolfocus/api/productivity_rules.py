"""
Organization Productivity Rule API endpoints
Admins and teachers manage substring rules for their own organization
"""

from fastapi import APIRouter, Depends, HTTPException

from schoolfocus.api.deps import get_services, require_organization
from schoolfocus.auth import get_current_user, get_staff_user
from schoolfocus.errors import RuleNotFoundError, RuleValidationError
from schoolfocus.schemas import (
    ProductivityRuleCreate,
    ProductivityRuleResponse,
    ProductivityRuleUpdate,
    TokenData,
)
from schoolfocus.services import Services

router = APIRouter()


@router.get("", response_model=list[ProductivityRuleResponse])
async def list_productivity_rules(
    current_user: TokenData = Depends(get_current_user),
    services: Services = Depends(get_services),
):
    """
    Rules for the caller's organization, in evaluation order.
    """
    organization_id = require_organization(current_user)
    return await services.productivity_rules.list_rules(organization_id)


@router.post("", response_model=ProductivityRuleResponse, status_code=201)
async def create_productivity_rule(
    data: ProductivityRuleCreate,
    staff: TokenData = Depends(get_staff_user),
    services: Services = Depends(get_services),
):
    """
    Add a rule to the caller's organization (Admin or teacher).
    """
    organization_id = require_organization(staff)
    fields = data.model_dump()
    fields["category"] = data.category.value
    try:
        return await services.productivity_rules.create_rule(organization_id, created_by=staff.user_id, **fields)
    except RuleValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.put("/{rule_id}", response_model=ProductivityRuleResponse)
async def update_productivity_rule(
    rule_id: int,
    data: ProductivityRuleUpdate,
    staff: TokenData = Depends(get_staff_user),
    services: Services = Depends(get_services),
):
    """
    Update a rule in the caller's organization (Admin or teacher).
    """
    organization_id = require_organization(staff)
    fields = data.model_dump(exclude_unset=True)
    if fields.get("category") is not None:
        fields["category"] = fields["category"].value
    try:
        return await services.productivity_rules.update_rule(rule_id, organization_id, **fields)
    except RuleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except RuleValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.delete("/{rule_id}")
async def delete_productivity_rule(
    rule_id: int,
    staff: TokenData = Depends(get_staff_user),
    services: Services = Depends(get_services),
):
    """
    Remove a rule from the caller's organization (Admin or teacher).
    """
    organization_id = require_organization(staff)
    try:
        await services.productivity_rules.delete_rule(rule_id, organization_id)
    except RuleNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))

    return {"message": "Rule deleted successfully"}
