from unittest.mock import patch

import httpx
import pytest

from webaudit_agent import fetcher
from webaudit_agent.analyzer import analyze, normalize_url
from webaudit_agent.evaluators import evaluate_performance, evaluate_seo
from webaudit_agent.fetcher import FetchedMarkup
from webaudit_agent.models import AnalyzeRequest
from webaudit_agent.scoring import overall_score


class TestNormalizeUrl:
    def test_assumes_https(self):
        assert normalize_url("acme.example") == "https://acme.example"

    def test_keeps_http_and_drops_fragment(self):
        assert normalize_url("  HTTP://acme.example/shop?page=2#top ") == "http://acme.example/shop?page=2"

    @pytest.mark.parametrize("bad", ["", "   ", "ftp://acme.example", "https://localhost", "https://"])
    def test_rejects_invalid(self, bad):
        with pytest.raises(ValueError):
            normalize_url(bad)


def test_invalid_url_raises_before_any_fetch():
    with patch("webaudit_agent.analyzer.fetch_page") as mock_fetch:
        with pytest.raises(ValueError):
            analyze(AnalyzeRequest(url="ftp://acme.example"))
    mock_fetch.assert_not_called()


def test_analyze_combines_every_evaluator(well_built_page):
    with patch("webaudit_agent.analyzer.fetch_page", return_value=FetchedMarkup(well_built_page, "direct")) as mock_fetch:
        result = analyze(AnalyzeRequest(url="acme.example", timeout_ms=2500))

    mock_fetch.assert_called_once_with("https://acme.example", timeout_ms=2500, max_html_kb=512)
    assert result.url == "https://acme.example"
    assert result.source == "direct"
    assert result.fallback is False
    assert result.performance == evaluate_performance(well_built_page, result.url)
    assert result.seo == evaluate_seo(well_built_page, result.url)
    assert result.gdpr.compliant is True
    assert result.overall_score == overall_score(
        result.performance.score, result.seo.score, result.accessibility.score, result.security.score
    )


def test_http_url_costs_security_points(well_built_page):
    with patch("webaudit_agent.analyzer.fetch_page", return_value=FetchedMarkup(well_built_page, "direct")):
        secure = analyze(AnalyzeRequest(url="https://acme.example"))
        plain = analyze(AnalyzeRequest(url="http://acme.example"))

    assert secure.security.score - plain.security.score == 25


def test_unreachable_site_still_yields_full_report():
    def refuse(request):
        raise httpx.ConnectError("unreachable", request=request)

    real_fetch_page = fetcher.fetch_page

    def offline_fetch(url, **kwargs):
        return real_fetch_page(url, transport=httpx.MockTransport(refuse), **kwargs)

    with patch("webaudit_agent.analyzer.fetch_page", side_effect=offline_fetch):
        result = analyze(AnalyzeRequest(url="https://unreachable.invalid"))

    assert result.source == "synthetic"
    assert result.fallback is False
    assert result.dependencies.vulnerable == 2
    assert result.gdpr.compliant == (not result.gdpr.issues)
    for category in (result.performance, result.seo, result.accessibility, result.security):
        assert 0 <= category.score <= 100


def test_evaluator_failure_yields_fallback_result(well_built_page):
    def broken(markup, url):
        raise RuntimeError("pattern blew up")

    with patch("webaudit_agent.analyzer.fetch_page", return_value=FetchedMarkup(well_built_page, "direct")), \
         patch.dict("webaudit_agent.evaluators.EVALUATORS", {"seo": broken}):
        result = analyze(AnalyzeRequest(url="acme.example"))

    assert result.fallback is True
    assert result.source == "fallback"
    assert result.url == "https://acme.example"


def test_fetcher_contract_violation_yields_fallback_result():
    with patch("webaudit_agent.analyzer.fetch_page", side_effect=RuntimeError("fetcher raised")):
        result = analyze(AnalyzeRequest(url="acme.example"))

    assert result.fallback is True
