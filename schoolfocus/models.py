"""
SQLAlchemy Models
Rule tables, suggestions and raw activity for the categorization pipeline
"""

from datetime import datetime, timezone
from typing import Any, Optional
from sqlalchemy import String, Boolean, DateTime, Integer, BigInteger, Float, Text, Index, JSON, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column
import uuid

from schoolfocus.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ============================================================
# USER MODEL
# ============================================================

class User(Base):
    """Student, teacher or admin account (owned by the auth service)"""
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default="student")  # student, teacher, admin
    organization_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


# ============================================================
# ACTIVITY MODEL
# ============================================================

class Activity(Base):
    """Application/website usage event reported by a student device"""
    __tablename__ = "activities"

    id: Mapped[int] = mapped_column(BigInteger().with_variant(Integer, "sqlite"), primary_key=True, autoincrement=True)
    user_id: Mapped[str] = mapped_column(String(36), nullable=False, index=True)
    organization_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    device_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    # Activity data from the device agent
    app_name: Mapped[str] = mapped_column(String(255), nullable=False)
    window_title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    url: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Timing
    start_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    end_time: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0)
    is_idle: Mapped[bool] = mapped_column(Boolean, default=False)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)

    __table_args__ = (
        Index("ix_activities_user_time", "user_id", "start_time"),
    )


# ============================================================
# SUBCATEGORY DEFINITION MODEL
# ============================================================

class SubcategoryDefinition(Base):
    """Subcategory reference row, each bound to exactly one parent category"""
    __tablename__ = "subcategory_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(50), unique=True, nullable=False, index=True)
    parent_category: Mapped[str] = mapped_column(String(20), nullable=False)  # productive, neutral, distracting
    display_name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    color_hex: Mapped[Optional[str]] = mapped_column(String(7), nullable=True)
    icon_name: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    sort_order: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)


# ============================================================
# APP CATEGORY MODEL
# ============================================================

class AppCategory(Base):
    """Admin-assigned category for an application (org-scoped or global)"""
    __tablename__ = "app_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    app_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    bundle_id: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    category: Mapped[str] = mapped_column(String(20), nullable=False, default="neutral")
    subcategory: Mapped[Optional[str]] = mapped_column(String(50), nullable=True, index=True)
    organization_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)  # None = global
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("app_name", "organization_id", name="uq_app_categories_app_org"),
        # NULLs never collide in the constraint above; one global rule per app
        Index(
            "uq_app_categories_global_app",
            "app_name",
            unique=True,
            sqlite_where=text("organization_id IS NULL"),
            postgresql_where=text("organization_id IS NULL"),
        ),
    )

    @property
    def is_global(self) -> bool:
        return self.organization_id is None


# ============================================================
# WEBSITE CATEGORY MODEL
# ============================================================

class WebsiteCategory(Base):
    """Domain substring pattern mapped to a category"""
    __tablename__ = "website_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pattern: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    category: Mapped[str] = mapped_column(String(20), nullable=False)
    subcategory: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, default=True)  # System-defined vs admin-defined
    priority: Mapped[int] = mapped_column(Integer, default=1)  # Higher priority patterns win
    organization_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


# ============================================================
# ORGANIZATION PRODUCTIVITY RULE MODEL
# ============================================================

class ProductivityRule(Base):
    """Ad hoc organization rule matching app name, URL or window title substrings"""
    __tablename__ = "productivity_rules"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    organization_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    created_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)

    # Matchers (stored lowercased, at least one is set)
    app_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    url_pattern: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)
    window_title_pattern: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    category: Mapped[str] = mapped_column(String(20), nullable=False)
    productivity_score: Mapped[float] = mapped_column(Float, default=0.5)
    subject: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    priority: Mapped[int] = mapped_column(Integer, default=0)
    active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)


# ============================================================
# CATEGORIZATION SUGGESTION MODEL
# ============================================================

class CategorizationSuggestion(Base):
    """Proposed categorization awaiting admin review"""
    __tablename__ = "categorization_suggestions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    pattern: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    suggested_category: Mapped[str] = mapped_column(String(20), nullable=False)
    suggested_subcategory: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    confidence: Mapped[float] = mapped_column(Float, default=0.5)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    evidence: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    status: Mapped[str] = mapped_column(String(20), default="pending", index=True)  # pending, approved, rejected
    source: Mapped[str] = mapped_column(String(20), nullable=False)  # learning, ai
    needs_review: Mapped[bool] = mapped_column(Boolean, default=False)
    organization_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        Index("ix_suggestions_status_source", "status", "source"),
    )
