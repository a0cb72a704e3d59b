"""
Reference data - versioned seed lists loaded at startup
Static domain/app lists, heuristic keyword sets and the subcategory taxonomy
"""

import json
import logging
from pathlib import Path
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from schoolfocus.errors import RuleValidationError
from schoolfocus.schemas import CategoryType

logger = logging.getLogger(__name__)

DEFAULT_REFERENCE_PATH = Path(__file__).parent / "data" / "reference_v1.json"


# ============================================================
# SEED DATA SCHEMA
# ============================================================

class SubcategorySeed(BaseModel):
    name: str
    parent_category: CategoryType
    display_name: str
    description: Optional[str] = None
    color_hex: Optional[str] = None
    icon_name: Optional[str] = None
    sort_order: int = 0


class WebsiteRuleSeed(BaseModel):
    pattern: str
    category: CategoryType
    subcategory: Optional[str] = None
    name: Optional[str] = None
    description: Optional[str] = None
    priority: int = 1


class ReferenceData(BaseModel):
    version: int
    subcategories: list[SubcategorySeed]

    # Domain lists
    productive_domains: list[str]
    distracting_domains: list[str]
    context_dependent_domains: list[str]

    # Context-dependent keyword sets
    youtube_edu_keywords: list[str]
    youtube_entertainment_keywords: list[str]
    twitter_edu_keywords: list[str]
    productive_subreddits: list[str]

    # App-name lists
    productive_apps: list[str]
    distracting_apps: list[str]
    browser_apps: list[str]
    system_apps: list[str]
    study_group_apps: list[str]

    # Unknown-site heuristics
    gaming_domain_keywords: list[str]
    news_domain_keywords: list[str]
    tech_news_keywords: list[str]
    educational_keywords: list[str]
    distraction_keywords: list[str]
    commerce_keywords: list[str]
    tool_domain_keywords: list[str]

    # subcategory name -> keywords found in app names / domains
    subcategory_keywords: dict[str, list[str]] = Field(default_factory=dict)

    system_website_rules: list[WebsiteRuleSeed] = Field(default_factory=list)


def load_reference_data(path: Optional[str] = None) -> ReferenceData:
    """Load and validate reference data (bundled file unless a path is given)"""
    source = Path(path) if path else DEFAULT_REFERENCE_PATH
    with source.open(encoding="utf-8") as f:
        data = ReferenceData.model_validate(json.load(f))
    logger.info("Loaded reference data v%s from %s", data.version, source)
    return data


# ============================================================
# TAXONOMY
# ============================================================

class Taxonomy:
    """Subcategory -> parent category mapping.

    Backed by the ``subcategory_definitions`` table; built from seed data
    until the table has been read.
    """

    def __init__(self, parents: dict[str, CategoryType]):
        self._parents = dict(parents)

    @classmethod
    def from_seeds(cls, seeds: Iterable[SubcategorySeed]) -> "Taxonomy":
        return cls({s.name: CategoryType(s.parent_category) for s in seeds})

    def refresh(self, rows: Iterable) -> None:
        """Replace the mapping in place with rows read from the database"""
        parents = {row.name: CategoryType(row.parent_category) for row in rows}
        if parents:
            self._parents = parents

    @property
    def subcategories(self) -> list[str]:
        return list(self._parents)

    def parent_of(self, subcategory: str) -> Optional[CategoryType]:
        return self._parents.get(subcategory)

    def is_consistent(self, category: CategoryType | str, subcategory: Optional[str]) -> bool:
        if subcategory is None:
            return True
        parent = self._parents.get(subcategory)
        return parent is not None and parent == CategoryType(category)

    def validate(self, category: CategoryType | str, subcategory: Optional[str]) -> tuple[CategoryType, Optional[str]]:
        """
        Validate a category/subcategory pair at a mutation boundary.
        Raises RuleValidationError before anything is written.
        """
        try:
            category = CategoryType(category)
        except ValueError:
            raise RuleValidationError(
                f"Invalid category '{category}'. Must be one of: "
                + ", ".join(c.value for c in CategoryType)
            )

        if subcategory is None or subcategory == "":
            return category, None

        parent = self._parents.get(subcategory)
        if parent is None:
            raise RuleValidationError(
                f"Invalid subcategory '{subcategory}'. Must be one of: " + ", ".join(self._parents)
            )
        if parent != category:
            raise RuleValidationError(
                f"Subcategory '{subcategory}' belongs to '{parent.value}', not '{category.value}'"
            )
        return category, subcategory

    def describe(self) -> str:
        """Human-readable taxonomy, grouped by parent category (used in classifier prompts)"""
        lines = []
        for category in CategoryType:
            children = [name for name, parent in self._parents.items() if parent == category]
            lines.append(f"- {category.value}: " + ", ".join(children))
        return "\n".join(lines)
