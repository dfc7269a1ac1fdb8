from __future__ import annotations

import re
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from urllib.parse import urlparse, urlunparse

from .dependencies import scan_dependencies
from .evaluators import EVALUATORS
from .fetcher import fetch_page
from .logger import get_logger
from .models import AnalysisResult, AnalyzeRequest
from .scoring import assemble_result, fallback_result

logger = get_logger(__name__)


def normalize_url(raw: str) -> str:
    value = (raw or "").strip()
    if not value:
        raise ValueError("Please provide a URL.")

    if not re.match(r"^[a-zA-Z][a-zA-Z\d+.-]*://", value):
        value = "https://" + value

    parsed = urlparse(value)
    if parsed.scheme.lower() not in ("http", "https"):
        raise ValueError("Please use an http(s) website URL.")
    if not parsed.hostname or "." not in parsed.hostname:
        raise ValueError("Please enter a valid website domain.")

    normalized = parsed._replace(scheme=parsed.scheme.lower(), fragment="")
    return urlunparse(normalized)


def _run_checks(markup: str, url: str) -> dict[str, object]:
    results: dict[str, object] = {}
    with ThreadPoolExecutor(max_workers=len(EVALUATORS) + 1) as pool:
        futures = {pool.submit(fn, markup, url): name for name, fn in EVALUATORS.items()}
        futures[pool.submit(scan_dependencies, markup)] = "dependencies"

        for fut in as_completed(futures):
            # An evaluator that raises aborts the whole analysis.
            results[futures[fut]] = fut.result()
    return results


def analyze(req: AnalyzeRequest) -> AnalysisResult:
    """Audit one URL.

    Only an invalid URL raises (ValueError). Fetch problems are absorbed by the
    fetcher; anything that goes wrong after that yields the fallback result.
    """
    normalized_url = normalize_url(req.url)

    timings: dict[str, int] = {}

    def timed(name: str, fn):
        start = time.perf_counter()
        try:
            return fn()
        finally:
            timings[name] = int((time.perf_counter() - start) * 1000)

    try:
        fetched = timed(
            "fetch",
            lambda: fetch_page(normalized_url, timeout_ms=req.timeout_ms, max_html_kb=req.max_html_kb),
        )
        checks = timed("checks", lambda: _run_checks(fetched.text, normalized_url))

        result = assemble_result(
            normalized_url,
            performance=checks["performance"],
            seo=checks["seo"],
            accessibility=checks["accessibility"],
            security=checks["security"],
            gdpr=checks["gdpr"],
            dependencies=checks["dependencies"],
            source=fetched.source,
        )
    except Exception:
        logger.exception("Analysis of %s failed, returning fallback result", normalized_url)
        return fallback_result(normalized_url)

    logger.info(
        "Analyzed %s (source=%s, overall=%s, timings_ms=%s)",
        normalized_url, result.source, result.overall_score, timings,
    )
    return result
