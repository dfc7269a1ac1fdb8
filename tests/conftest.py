"""
Shared fixtures for the WebAudit Agent test-suite.

Logs go to a throwaway directory and no test touches the network: fetches are
either scripted with httpx.MockTransport or patched out entirely.
"""

import os
import tempfile

os.environ.setdefault("WEBAUDIT_LOG_DIR", tempfile.mkdtemp(prefix="webaudit-logs-"))
os.environ.setdefault("WEBAUDIT_SEED_DEMO", "0")

from typing import Generator  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from webaudit_agent.storage import InMemoryAnalysisStore  # noqa: E402


WELL_BUILT_PAGE = """<!DOCTYPE html>
<html lang="en">
<head>
  <title>Acme Widgets - Handmade widgets shipped worldwide</title>
  <meta name="description" content="Acme builds durable handmade widgets.">
  <meta name="viewport" content="width=device-width, initial-scale=1">
  <meta http-equiv="Content-Security-Policy" content="default-src 'self'">
  <link rel="canonical" href="https://acme.example/">
  <style>a:focus-visible { outline: 2px solid #000; }</style>
  <script src="https://code.jquery.com/jquery-3.7.1.min.js"></script>
</head>
<body>
  <header><nav><a href="/about">About</a></nav></header>
  <main>
    <h1>Acme Widgets</h1>
    <h2>Our range</h2>
    <img src="/img/widget.jpg" alt="A widget" loading="lazy">
    <form action="/subscribe" method="post">
      <input type="hidden" name="csrf_token" value="abc123">
      <label for="email">Email</label>
      <input type="email" id="email" name="email">
      <input type="submit" value="Subscribe">
    </form>
  </main>
  <footer>
    <p>We use cookies. Click accept to consent to analytics cookies.</p>
    <a href="/privacy">Privacy Policy</a>
    <p>We process personal data only as described in our policy.</p>
    <a href="/contact">Contact us</a>
  </footer>
</body>
</html>
"""


@pytest.fixture
def well_built_page() -> str:
    return WELL_BUILT_PAGE


@pytest.fixture
def sample_pages() -> list[str]:
    """A spread of inputs, from clean to hostile, for property-style checks."""
    return [
        WELL_BUILT_PAGE,
        "",
        "not html at all",
        "<html><body><img src=a.png><img src=b.png><h3>x</h3><h1>y</h1><h1>z</h1></body></html>",
        "<script>alert(1)</script>" * 20 + "<form><input name=q></form>" + "x" * 60000,
        "<title></title><h1><h4><h6><img><input><form>",
    ]


@pytest.fixture
def store() -> InMemoryAnalysisStore:
    return InMemoryAnalysisStore(capacity=50)


@pytest.fixture(scope="function")
def client(store) -> Generator[TestClient, None, None]:
    """TestClient backed by a fresh, empty in-memory store."""
    from webaudit_agent.main import app

    app.state.store = store
    with TestClient(app) as test_client:
        yield test_client
