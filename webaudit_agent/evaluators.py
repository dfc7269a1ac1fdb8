"""Rule evaluators.

Each evaluator scans raw markup text with case-insensitive patterns; nothing
here builds a DOM. That keeps malformed pages scoreable, at the price of the
usual regex false positives (a commented-out tag still counts).
"""
from __future__ import annotations

import re
from collections.abc import Callable, Mapping
from urllib.parse import urlparse

from .dependencies import VULNERABILITY_TABLE, VulnerabilityRule, extract_libraries, match_library
from .models import CategoryResult, ComplianceResult


def _clamp_score(score: int) -> int:
    return max(0, min(100, int(score)))


class _Checklist:
    """Collects failed checks; issue i and recommendation i always describe the same check."""

    def __init__(self) -> None:
        self.score = 100
        self.issues: list[str] = []
        self.recommendations: list[str] = []

    def fail(self, penalty: int, issue: str, recommendation: str) -> None:
        self.score -= penalty
        self.issues.append(issue)
        self.recommendations.append(recommendation)

    def result(self) -> CategoryResult:
        return CategoryResult(
            score=_clamp_score(self.score),
            issues=tuple(self.issues),
            recommendations=tuple(self.recommendations),
        )


# Tag patterns stop at the next "<" as well as ">", so an unterminated tag
# costs a scan to the next tag rather than to the end of the document.
_IMG_RE = re.compile(r"<img\b[^<>]*>", re.IGNORECASE)
_IMG_NO_ALT_RE = re.compile(r"<img\b(?![^<>]*\balt\s*=)[^<>]*>", re.IGNORECASE)
_HEADING_RE = re.compile(r"<h([1-6])\b[^<>]*>", re.IGNORECASE)
_H1_RE = re.compile(r"<h1\b[^<>]*>", re.IGNORECASE)
_EXTERNAL_SCRIPT_RE = re.compile(r"<script\b[^<>]*\bsrc\s*=", re.IGNORECASE)
_SRC_ATTR_RE = re.compile(r"\bsrc\s*=", re.IGNORECASE)
_LARGE_STYLE_ATTR_RE = re.compile(r"\bstyle\s*=\s*(?:\"[^\"]{200,}\"|'[^']{200,}')", re.IGNORECASE)
_LAZY_RE = re.compile(r"\bloading\s*=\s*[\"']?lazy", re.IGNORECASE)
_TITLE_RE = re.compile(r"<title\b[^<>]*>([^<]*)</title>", re.IGNORECASE)
_META_DESCRIPTION_RE = re.compile(r"<meta\b[^<>]*\bname\s*=\s*[\"']?description\b", re.IGNORECASE)
_CANONICAL_RE = re.compile(r"\brel\s*=\s*[\"']?canonical\b", re.IGNORECASE)
_HTML_LANG_RE = re.compile(r"<html\b[^<>]*\blang\s*=", re.IGNORECASE)
_INPUT_RE = re.compile(r"<input\b[^<>]*>", re.IGNORECASE)
_INPUT_TYPE_RE = re.compile(r"\btype\s*=\s*[\"']?([a-z]+)", re.IGNORECASE)
_INPUT_ID_RE = re.compile(r"\bid\s*=\s*[\"']([^\"']*)[\"']", re.IGNORECASE)
_LABEL_FOR_RE = re.compile(r"\bfor\s*=\s*[\"']([^\"']+)[\"']", re.IGNORECASE)
_ARIA_LABEL_RE = re.compile(r"\baria-label(?:ledby)?\s*=", re.IGNORECASE)
_LANDMARK_RE = re.compile(
    r"<(?:main|nav|header|footer|aside)\b"
    r"|\brole\s*=\s*[\"']?(?:main|navigation|banner|contentinfo|complementary|search|region)\b",
    re.IGNORECASE,
)
_MIXED_CONTENT_RE = re.compile(r"(?:\b(?:src|href)\s*=\s*[\"']?|url\(\s*[\"']?)http://", re.IGNORECASE)
# Only starts at the beginning of a run of local-part characters.
_EMAIL_RE = re.compile(r"(?<![A-Z0-9._%+-])[A-Z0-9._%+-]+@[A-Z0-9.-]+\.[A-Z]{2,}", re.IGNORECASE)
_BOUNDARY_RES = {
    name: re.compile(rf"<{name}\b[^<>]*>?|</{name}\s*>", re.IGNORECASE) for name in ("script", "style", "form")
}

_LARGE_STYLE_BLOCK_CHARS = 5000
_LARGE_DOCUMENT_CHARS = 50000
_MAX_EXTERNAL_SCRIPTS = 10
_TITLE_MIN, _TITLE_MAX = 30, 60
_UNLABELED_INPUT_TYPES = {"hidden", "submit", "button", "reset", "image"}


def _element_blocks(markup: str, name: str, *, unclosed: bool = False) -> list[tuple[str, str]]:
    """(opening tag, body) for each ``<name>...</name>`` element, in one pass over tag boundaries.

    A nested opening tag is part of the outer body. With ``unclosed`` an element
    that is never closed runs to the end of the text; otherwise it is dropped.
    """
    blocks: list[tuple[str, str]] = []
    open_tag: str | None = None
    body_start = 0
    for m in _BOUNDARY_RES[name].finditer(markup):
        if m.group().startswith("</"):
            if open_tag is not None:
                blocks.append((open_tag, markup[body_start:m.start()]))
                open_tag = None
        elif open_tag is None:
            open_tag, body_start = m.group(), m.end()
    if unclosed and open_tag is not None:
        blocks.append((open_tag, markup[body_start:]))
    return blocks


def evaluate_performance(markup: str, url: str) -> CategoryResult:
    checks = _Checklist()
    lower = markup.lower()

    large_styles = len(_LARGE_STYLE_ATTR_RE.findall(markup)) + sum(
        1 for _, body in _element_blocks(markup, "style") if len(body) >= _LARGE_STYLE_BLOCK_CHARS
    )
    if large_styles:
        checks.fail(10, f"Found {large_styles} large inline styles", "Move inline styles to external CSS files")

    if "gzip" not in lower and len(markup) > _LARGE_DOCUMENT_CHARS:
        checks.fail(15, "Large HTML without compression indicators", "Enable GZIP compression on your server")

    external_scripts = len(_EXTERNAL_SCRIPT_RE.findall(markup))
    if external_scripts > _MAX_EXTERNAL_SCRIPTS:
        checks.fail(5, f"Found {external_scripts} external script files", "Combine and minify JavaScript files")

    if "viewport" not in lower:
        checks.fail(
            10,
            "Missing viewport meta tag for mobile optimization",
            'Add <meta name="viewport" content="width=device-width, initial-scale=1">',
        )

    eager_images = [img for img in _IMG_RE.findall(markup) if not _LAZY_RE.search(img)]
    if eager_images:
        checks.fail(8, f"{len(eager_images)} images without lazy loading", "Implement lazy loading for images")

    return checks.result()


def evaluate_seo(markup: str, url: str) -> CategoryResult:
    checks = _Checklist()

    title = _TITLE_RE.search(markup)
    if not title:
        checks.fail(20, "Missing title tag", "Add a descriptive title tag to your page")
    elif not _TITLE_MIN <= len(title.group(1).strip()) <= _TITLE_MAX:
        checks.fail(
            10,
            f"Title tag length not optimal (should be {_TITLE_MIN}-{_TITLE_MAX} characters)",
            "Optimize title tag length for better SEO",
        )

    if not _META_DESCRIPTION_RE.search(markup):
        checks.fail(15, "Missing meta description", "Add a meta description (150-160 characters)")

    h1_count = len(_H1_RE.findall(markup))
    if h1_count == 0:
        checks.fail(15, "Missing H1 tag", "Add exactly one H1 tag per page")
    elif h1_count > 1:
        checks.fail(10, "Multiple H1 tags found", "Use only one H1 tag per page")

    if len(_HEADING_RE.findall(markup)) < 2:
        checks.fail(10, "Poor heading structure", "Use proper heading hierarchy (H1, H2, H3, etc.)")

    missing_alt = len(_IMG_NO_ALT_RE.findall(markup))
    if missing_alt:
        checks.fail(12, f"{missing_alt} images missing alt attributes", "Add descriptive alt attributes to all images")

    if not _CANONICAL_RE.search(markup):
        checks.fail(8, "Missing canonical URL", "Add canonical URL to prevent duplicate content issues")

    return checks.result()


def _unlabeled_inputs(markup: str) -> int:
    label_targets = {m.lower() for m in _LABEL_FOR_RE.findall(markup)}
    count = 0
    for tag in _INPUT_RE.findall(markup):
        input_type = _INPUT_TYPE_RE.search(tag)
        if input_type and input_type.group(1).lower() in _UNLABELED_INPUT_TYPES:
            continue
        if _ARIA_LABEL_RE.search(tag):
            continue
        input_id = _INPUT_ID_RE.search(tag)
        if input_id and input_id.group(1).lower() in label_targets:
            continue
        count += 1
    return count


def _skips_heading_level(markup: str) -> bool:
    levels = [int(level) for level in _HEADING_RE.findall(markup)]
    return any(cur - prev > 1 for prev, cur in zip(levels, levels[1:]))


def evaluate_accessibility(markup: str, url: str) -> CategoryResult:
    checks = _Checklist()
    lower = markup.lower()

    if not _HTML_LANG_RE.search(markup):
        checks.fail(15, "Missing language attribute on HTML element", 'Add lang attribute: <html lang="en">')

    missing_alt = len(_IMG_NO_ALT_RE.findall(markup))
    if missing_alt:
        checks.fail(20, f"{missing_alt} images missing alt text", "Add descriptive alt text to all images")

    unlabeled = _unlabeled_inputs(markup)
    if unlabeled:
        checks.fail(15, f"{unlabeled} form inputs missing proper labels", "Associate all form inputs with labels")

    if _skips_heading_level(markup):
        checks.fail(
            10,
            "Heading levels skip numbers (affects screen readers)",
            "Use sequential heading levels (H1, H2, H3)",
        )

    if ":focus" not in lower and "focus-visible" not in lower:
        checks.fail(
            12,
            "Missing focus indicators for keyboard navigation",
            "Add visible focus indicators for interactive elements",
        )

    if not _LANDMARK_RE.search(markup):
        checks.fail(10, "Missing ARIA landmarks", "Add semantic HTML elements or ARIA landmarks")

    return checks.result()


def evaluate_security(
    markup: str,
    url: str,
    table: Mapping[str, VulnerabilityRule] = VULNERABILITY_TABLE,
) -> CategoryResult:
    checks = _Checklist()
    lower = markup.lower()
    is_https = urlparse(url).scheme.lower() == "https"

    if not is_https:
        checks.fail(25, "Website not using HTTPS", "Implement SSL/TLS certificate for secure connection")

    if "content-security-policy" not in lower:
        checks.fail(15, "Missing Content Security Policy header", "Implement CSP header to prevent XSS attacks")

    inline_scripts = [
        body for tag, body in _element_blocks(markup, "script") if not _SRC_ATTR_RE.search(tag) and body.strip()
    ]
    if inline_scripts:
        checks.fail(
            10,
            f"{len(inline_scripts)} inline scripts found (XSS risk)",
            "Move inline scripts to external files and use CSP",
        )

    if is_https and _MIXED_CONTENT_RE.search(markup):
        checks.fail(
            12,
            "Mixed content detected (HTTPS page loading HTTP resources)",
            "Ensure all resources are loaded over HTTPS",
        )

    vulnerable = [
        lib for lib in (match_library(name, version, table) for name, version in extract_libraries(markup))
        if lib.vulnerability
    ]
    if vulnerable:
        listed = ", ".join(f"{lib.name} {lib.version}" for lib in vulnerable)
        checks.fail(
            18,
            f"Outdated libraries with known vulnerabilities ({listed})",
            "Update vulnerable libraries to their latest versions",
        )

    forms = [tag + body for tag, body in _element_blocks(markup, "form", unclosed=True)]
    if any("csrf" not in form.lower() and "token" not in form.lower() for form in forms):
        checks.fail(10, "Forms may be missing CSRF protection", "Implement CSRF tokens for all forms")

    return checks.result()


_CONSENT_WORDS = ("consent", "accept", "agree")
_CONSENT_WINDOW = 300
_TRACKING_IDENTIFIERS = (
    "google-analytics",
    "googletagmanager",
    "gtag",
    "facebook",
    "fbq",
    "twitter",
    "linkedin",
    "pinterest",
    "hotjar",
    "analytics",
)


def _has_cookie_consent(lower: str) -> bool:
    for m in re.finditer("cookie", lower):
        window = lower[max(0, m.start() - _CONSENT_WINDOW): m.end() + _CONSENT_WINDOW]
        if any(word in window for word in _CONSENT_WORDS):
            return True
    return False


def evaluate_gdpr(markup: str, url: str) -> ComplianceResult:
    lower = markup.lower()
    issues: list[str] = []
    recommendations: list[str] = []

    has_consent = _has_cookie_consent(lower)
    if not has_consent:
        issues.append("Missing cookie consent mechanism")
        recommendations.append("Implement cookie consent banner/popup")

    if not ("privacy" in lower and "policy" in lower):
        issues.append("Missing privacy policy link")
        recommendations.append("Add visible link to privacy policy")

    if not any(k in lower for k in ("personal data", "data processing", "data protection")):
        issues.append("Missing information about data processing")
        recommendations.append("Provide clear information about data collection and processing")

    if not ("contact" in lower or "tel:" in lower or _EMAIL_RE.search(markup)):
        issues.append("Missing contact information")
        recommendations.append("Provide clear contact information for data subjects")

    trackers = [t for t in _TRACKING_IDENTIFIERS if t in lower]
    if trackers and not has_consent:
        issues.append(f"Tracking scripts detected without proper consent ({', '.join(trackers)})")
        recommendations.append("Implement consent mechanism before loading tracking scripts")

    return ComplianceResult(compliant=not issues, issues=tuple(issues), recommendations=tuple(recommendations))


EVALUATORS: Mapping[str, Callable[[str, str], CategoryResult | ComplianceResult]] = {
    "performance": evaluate_performance,
    "seo": evaluate_seo,
    "accessibility": evaluate_accessibility,
    "security": evaluate_security,
    "gdpr": evaluate_gdpr,
}
