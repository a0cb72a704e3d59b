"""Shared router dependencies"""

from fastapi import HTTPException, Request

from schoolfocus.schemas import TokenData
from schoolfocus.services import Services


def get_services(request: Request) -> Services:
    """Service container built in the app lifespan"""
    return request.app.state.services


def require_organization(user: TokenData) -> int:
    if user.organization_id is None:
        raise HTTPException(
            status_code=400,
            detail="User is not assigned to an organization"
        )
    return user.organization_id
