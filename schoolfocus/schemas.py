"""
Pydantic schemas for API request/response validation
"""

from pydantic import BaseModel, ConfigDict, Field, model_validator
from typing import Any, Optional
from datetime import datetime
from enum import Enum


class UserRole(str, Enum):
    student = "student"
    teacher = "teacher"
    admin = "admin"


class CategoryType(str, Enum):
    productive = "productive"
    neutral = "neutral"
    distracting = "distracting"


class SuggestionStatus(str, Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class SuggestionSource(str, Enum):
    learning = "learning"
    ai = "ai"


class ReviewAction(str, Enum):
    approve = "approve"
    reject = "reject"


# ============================================================
# AUTH SCHEMAS
# ============================================================

class TokenData(BaseModel):
    """Decoded token payload"""
    user_id: str
    email: str
    role: UserRole
    organization_id: Optional[int] = None


# ============================================================
# CATEGORIZATION SCHEMAS
# ============================================================

class ResolvedCategorization(BaseModel):
    """Result of a single categorization call (never persisted)"""
    category: CategoryType
    subcategory: Optional[str] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    reason: str
    needs_review: bool = False

    @classmethod
    def lookup_failed(cls) -> "ResolvedCategorization":
        return cls(category=CategoryType.neutral, confidence=0.0, reason="lookup failed")

    @property
    def is_conclusive(self) -> bool:
        """Non-neutral verdicts and confident neutrals end the pipeline"""
        return self.category != CategoryType.neutral or self.confidence > 0.7


class CategorizeRequest(BaseModel):
    app_name: str = Field(..., min_length=1)
    url: Optional[str] = None
    window_title: Optional[str] = None
    bundle_id: Optional[str] = None


# ============================================================
# ACTIVITY SCHEMAS
# ============================================================

class ActivityCreate(BaseModel):
    """Single activity event from a device agent"""
    app_name: str = Field(..., min_length=1)
    window_title: Optional[str] = None
    url: Optional[str] = None
    start_time: datetime
    end_time: datetime
    is_idle: bool = False
    device_id: Optional[str] = None


class ActivityBatch(BaseModel):
    """Batch of activity events"""
    activities: list[ActivityCreate]


class ActivityBatchResponse(BaseModel):
    received: int
    categorizations: list[ResolvedCategorization]


# ============================================================
# RULE SCHEMAS
# ============================================================

class AppCategoryCreate(BaseModel):
    app_name: str = Field(..., min_length=1)
    category: CategoryType
    subcategory: Optional[str] = None
    bundle_id: Optional[str] = None
    is_global: bool = False  # Admin may set a global rule instead of an org rule


class AppCategoryUpdate(BaseModel):
    app_name: Optional[str] = Field(None, min_length=1)
    category: Optional[CategoryType] = None
    subcategory: Optional[str] = None
    bundle_id: Optional[str] = None


class AppCategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    app_name: str
    bundle_id: Optional[str] = None
    category: CategoryType
    subcategory: Optional[str] = None
    organization_id: Optional[int] = None
    is_global: bool


class WebsiteCategoryCreate(BaseModel):
    pattern: str = Field(..., min_length=1)
    category: CategoryType
    subcategory: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    priority: int = 0


class WebsiteCategoryUpdate(BaseModel):
    pattern: Optional[str] = Field(None, min_length=1)
    category: Optional[CategoryType] = None
    subcategory: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    priority: Optional[int] = None


class WebsiteCategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    pattern: str
    category: CategoryType
    subcategory: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    is_system: bool
    priority: int
    organization_id: Optional[int] = None


class ProductivityRuleCreate(BaseModel):
    app_name: Optional[str] = None
    url_pattern: Optional[str] = None
    window_title_pattern: Optional[str] = None
    category: CategoryType
    productivity_score: float = Field(0.5, ge=0.0, le=1.0)
    subject: Optional[str] = None
    priority: int = 0

    @model_validator(mode="after")
    def require_matcher(self) -> "ProductivityRuleCreate":
        if not (self.app_name or self.url_pattern or self.window_title_pattern):
            raise ValueError("At least one of app_name, url_pattern or window_title_pattern is required")
        return self


class ProductivityRuleUpdate(BaseModel):
    app_name: Optional[str] = None
    url_pattern: Optional[str] = None
    window_title_pattern: Optional[str] = None
    category: Optional[CategoryType] = None
    productivity_score: Optional[float] = Field(None, ge=0.0, le=1.0)
    subject: Optional[str] = None
    priority: Optional[int] = None
    active: Optional[bool] = None


class ProductivityRuleResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    organization_id: int
    app_name: Optional[str] = None
    url_pattern: Optional[str] = None
    window_title_pattern: Optional[str] = None
    category: CategoryType
    productivity_score: float
    subject: Optional[str] = None
    priority: int
    active: bool
    created_at: datetime


class SubcategoryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    name: str
    parent_category: CategoryType
    display_name: str
    description: Optional[str] = None
    color_hex: Optional[str] = None
    icon_name: Optional[str] = None
    sort_order: int


# ============================================================
# SUGGESTION SCHEMAS
# ============================================================

class SuggestionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    pattern: str
    suggested_category: CategoryType
    suggested_subcategory: Optional[str] = None
    confidence: float
    reason: Optional[str] = None
    evidence: dict[str, Any] = {}
    status: SuggestionStatus
    source: SuggestionSource
    needs_review: bool
    organization_id: Optional[int] = None
    created_at: datetime


class SuggestionReview(BaseModel):
    """Admin action on a suggestion"""
    action: ReviewAction
    new_category: Optional[CategoryType] = None
    new_subcategory: Optional[str] = None


class BatchApprovalItem(BaseModel):
    id: int
    category: Optional[CategoryType] = None
    subcategory: Optional[str] = None


class BatchApproval(BaseModel):
    """Approve several suggestions at once, optionally overriding each category"""
    suggestions: list[BatchApprovalItem]


class BatchApprovalResult(BaseModel):
    id: int
    status: str  # approved | not_found | conflict | invalid
    detail: Optional[str] = None


class BatchApprovalResponse(BaseModel):
    applied: int
    total: int
    results: list[BatchApprovalResult]


class UncategorizedWebsite(BaseModel):
    domain: str
    visit_count: int
    avg_duration: float  # seconds
