"""
Heuristic Categorization
Static reference lists, context-dependent site analysis, app-name heuristics
and the unknown-site fallback. Pure functions of the reference data; no I/O.
"""

from typing import Optional
from urllib.parse import urlsplit

from schoolfocus.reference import ReferenceData, Taxonomy
from schoolfocus.schemas import CategoryType, ResolvedCategorization

LOCAL_HOSTS = ("localhost", "127.0.0.1", "0.0.0.0")


def extract_domain(url: str) -> str:
    """Lowercased hostname; the raw lowercased string when it cannot be parsed"""
    try:
        hostname = urlsplit(url.strip()).hostname
    except ValueError:
        hostname = None
    return hostname.lower() if hostname else url.strip().lower()


def normalize_domain(url: str) -> str:
    """Domain used to group activity history (leading www. removed)"""
    domain = extract_domain(url)
    if not urlsplit(url.strip()).hostname:
        # Scheme-less input such as "www.example.com/path"
        domain = domain.split("/", 1)[0]
    return domain[4:] if domain.startswith("www.") else domain


def is_local_domain(domain: str) -> bool:
    return any(host in domain for host in LOCAL_HOSTS)


def domain_matches(domain: str, listed: str) -> bool:
    """Domain equals a listed domain or is one of its subdomains"""
    return domain == listed or domain.endswith(f".{listed}")


def _result(category: CategoryType, confidence: float, reason: str,
            subcategory: Optional[str] = None, needs_review: bool = False) -> ResolvedCategorization:
    return ResolvedCategorization(
        category=category,
        subcategory=subcategory,
        confidence=confidence,
        reason=reason,
        needs_review=needs_review,
    )


class HeuristicCategorizer:
    """Reference-list and keyword heuristics used below stored rules"""

    def __init__(self, reference: ReferenceData, taxonomy: Taxonomy):
        self.reference = reference
        self.taxonomy = taxonomy

    # ============================================================
    # SUBCATEGORY INFERENCE
    # ============================================================

    def infer_subcategory(self, name: str, category: CategoryType) -> Optional[str]:
        """First subcategory whose keywords appear in name and whose parent is category"""
        lower_name = name.lower()
        for subcategory, keywords in self.reference.subcategory_keywords.items():
            if self.taxonomy.parent_of(subcategory) != category:
                continue
            if any(keyword in lower_name for keyword in keywords):
                return subcategory
        return None

    def _checked(self, category: CategoryType, subcategory: str) -> Optional[str]:
        """Subcategory if the taxonomy still places it under category"""
        return subcategory if self.taxonomy.is_consistent(category, subcategory) else None

    # ============================================================
    # URL: STATIC LISTS
    # ============================================================

    def categorize_local(self, domain: str) -> Optional[ResolvedCategorization]:
        if is_local_domain(domain):
            return _result(CategoryType.productive, 0.95, "Local development server",
                           subcategory=self._checked(CategoryType.productive, "productivity"))
        return None

    def categorize_known_domain(self, domain: str, url: str, window_title: Optional[str] = None) -> Optional[ResolvedCategorization]:
        """Productive list, then distracting list, then context-dependent sites; None if unlisted"""
        ref = self.reference

        if any(domain_matches(domain, d) for d in ref.productive_domains):
            return _result(
                CategoryType.productive, 0.8,
                f"{domain} is an educational/productive website",
                subcategory=self.infer_subcategory(domain, CategoryType.productive),
            )

        if any(domain_matches(domain, d) for d in ref.distracting_domains):
            return _result(
                CategoryType.distracting, 0.8,
                f"{domain} is a distracting website",
                subcategory=self.infer_subcategory(domain, CategoryType.distracting),
            )

        if any(domain_matches(domain, d) for d in ref.context_dependent_domains):
            return self.analyze_context_dependent_site(domain, url, window_title)

        return None

    def analyze_context_dependent_site(self, domain: str, url: str, window_title: Optional[str] = None) -> ResolvedCategorization:
        ref = self.reference
        lower_url = url.lower()
        lower_title = (window_title or "").lower()

        def mentions(keyword: str) -> bool:
            return keyword in lower_url or keyword in lower_title

        if domain_matches(domain, "youtube.com"):
            has_edu = any(mentions(k) for k in ref.youtube_edu_keywords)
            has_entertainment = any(mentions(k) for k in ref.youtube_entertainment_keywords)
            if has_edu and not has_entertainment:
                return _result(CategoryType.productive, 0.8, "Educational YouTube content detected")
            if has_entertainment and not has_edu:
                return _result(CategoryType.distracting, 0.8, "Entertainment YouTube content detected",
                               subcategory=self._checked(CategoryType.distracting, "entertainment"))

        if domain_matches(domain, "twitter.com") or domain_matches(domain, "x.com"):
            if any(mentions(k) for k in ref.twitter_edu_keywords):
                return _result(CategoryType.neutral, 0.6, "Potentially educational Twitter/X content")
            return _result(CategoryType.distracting, 0.8, "Twitter/X is typically used for social media",
                           subcategory=self._checked(CategoryType.distracting, "scrolling"))

        if domain_matches(domain, "reddit.com"):
            if any(f"r/{sub}" in lower_url for sub in ref.productive_subreddits):
                return _result(CategoryType.productive, 0.8, "Educational subreddit detected")

        return _result(CategoryType.neutral, 0.6, f"{domain} can be either productive or distracting")

    # ============================================================
    # APP NAME HEURISTIC
    # ============================================================

    def categorize_by_app(self, app_name: str, window_title: Optional[str] = None) -> ResolvedCategorization:
        ref = self.reference
        lower_app = app_name.lower()
        lower_title = (window_title or "").lower()

        # Browser categorization is owned by URL resolution
        if any(browser in lower_app for browser in ref.browser_apps):
            return _result(CategoryType.neutral, 0.5, "Browser activity depends on website visited")

        if any(app.lower() in lower_app for app in ref.productive_apps):
            return _result(
                CategoryType.productive, 0.85,
                f"{app_name} is a productive application",
                subcategory=self.infer_subcategory(app_name, CategoryType.productive),
            )

        if any(app.lower() in lower_app for app in ref.distracting_apps):
            if any(app in lower_app for app in ref.study_group_apps) and "study" in lower_title:
                return _result(CategoryType.neutral, 0.6, f"{app_name} might be used for study groups")
            return _result(
                CategoryType.distracting, 0.85,
                f"{app_name} is typically a distracting application",
                subcategory=self.infer_subcategory(app_name, CategoryType.distracting),
            )

        if any(app in lower_app for app in ref.system_apps):
            return _result(CategoryType.neutral, 1.0, "System application")

        return _result(CategoryType.neutral, 0.5, "Unknown application")

    # ============================================================
    # UNKNOWN SITE FALLBACK
    # ============================================================

    def analyze_unknown_site(self, domain: str, url: str, window_title: Optional[str] = None) -> ResolvedCategorization:
        ref = self.reference
        lower_url = url.lower()
        lower_title = (window_title or "").lower()
        lower_domain = domain.lower()

        if lower_domain.endswith(".edu") or lower_domain.endswith(".gov"):
            return _result(CategoryType.productive, 0.8, "Educational or government domain")

        if any(p in lower_domain for p in ref.gaming_domain_keywords):
            return _result(CategoryType.distracting, 0.85, "Gaming website detected",
                           subcategory=self._checked(CategoryType.distracting, "gaming"))

        if any(p in lower_domain for p in ref.news_domain_keywords):
            if any(k in lower_title for k in ref.tech_news_keywords):
                return _result(CategoryType.productive, 0.7, "Educational news content")
            return _result(CategoryType.neutral, 0.6, "News website - productivity depends on content",
                           subcategory=self._checked(CategoryType.neutral, "reading"))

        edu_matches = sum(1 for k in ref.educational_keywords if k in lower_url or k in lower_title)
        if edu_matches >= 2:
            return _result(CategoryType.productive, 0.75, "Educational content indicators found")

        distraction_matches = sum(1 for k in ref.distraction_keywords if k in lower_url or k in lower_title)
        if distraction_matches >= 2:
            return _result(CategoryType.distracting, 0.75, "Entertainment content indicators found")

        if any(k in lower_url or k in lower_domain for k in ref.commerce_keywords):
            return _result(CategoryType.distracting, 0.8, "Shopping/commerce website")

        if any(k in lower_domain for k in ref.tool_domain_keywords):
            return _result(CategoryType.neutral, 0.6, "Potential productivity tool")

        return _result(
            CategoryType.neutral, 0.4,
            "Unknown website - will learn from usage patterns",
            needs_review=True,
        )
