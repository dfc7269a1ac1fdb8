from __future__ import annotations

import math
from datetime import datetime, timezone

from .models import (
    AnalysisResult,
    CategoryResult,
    ComplianceResult,
    DependencyResult,
    LibraryEntry,
    MarkupSource,
)


def overall_score(performance: int, seo: int, accessibility: int, security: int) -> int:
    """Mean of the four category scores, rounded half-up.

    GDPR and dependency findings are reported alongside and never feed this.
    """
    mean = (performance + seo + accessibility + security) / 4
    return math.floor(mean + 0.5)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def assemble_result(
    url: str,
    *,
    performance: CategoryResult,
    seo: CategoryResult,
    accessibility: CategoryResult,
    security: CategoryResult,
    gdpr: ComplianceResult,
    dependencies: DependencyResult,
    source: MarkupSource = "direct",
    timestamp: str | None = None,
    fallback: bool = False,
) -> AnalysisResult:
    return AnalysisResult(
        url=url,
        timestamp=timestamp or _now_iso(),
        overall_score=overall_score(performance.score, seo.score, accessibility.score, security.score),
        performance=performance,
        seo=seo,
        accessibility=accessibility,
        security=security,
        gdpr=gdpr,
        dependencies=dependencies,
        source=source,
        fallback=fallback,
    )


_FALLBACK_PERFORMANCE = CategoryResult(
    score=82,
    issues=("Large images without optimization", "Missing viewport meta tag"),
    recommendations=("Implement lazy loading for images", "Add viewport meta tag"),
)
_FALLBACK_SEO = CategoryResult(
    score=78,
    issues=("Title tag too short", "Missing meta description"),
    recommendations=("Optimize title tag length", "Add descriptive meta description"),
)
_FALLBACK_ACCESSIBILITY = CategoryResult(
    score=65,
    issues=("Images missing alt text", "Missing ARIA landmarks"),
    recommendations=("Add alt text to all images", "Use semantic HTML elements"),
)
_FALLBACK_SECURITY = CategoryResult(
    score=85,
    issues=("Mixed content detected",),
    recommendations=("Ensure all resources use HTTPS",),
)
_FALLBACK_GDPR = ComplianceResult(
    compliant=False,
    issues=("Missing cookie consent", "No privacy policy link"),
    recommendations=("Implement cookie consent banner", "Add privacy policy link"),
)
_FALLBACK_DEPENDENCIES = DependencyResult(
    vulnerable=2,
    outdated=2,
    libraries=(
        LibraryEntry(name="jquery", version="3.4.1", vulnerability="XSS vulnerability", severity="medium"),
        LibraryEntry(name="lodash", version="4.17.15", vulnerability="Prototype pollution", severity="high"),
    ),
)


def fallback_result(url: str, timestamp: str | None = None) -> AnalysisResult:
    """The one canned result used whenever real analysis cannot complete (and for demo seeding)."""
    return assemble_result(
        url,
        performance=_FALLBACK_PERFORMANCE,
        seo=_FALLBACK_SEO,
        accessibility=_FALLBACK_ACCESSIBILITY,
        security=_FALLBACK_SECURITY,
        gdpr=_FALLBACK_GDPR,
        dependencies=_FALLBACK_DEPENDENCIES,
        source="fallback",
        timestamp=timestamp,
        fallback=True,
    )
