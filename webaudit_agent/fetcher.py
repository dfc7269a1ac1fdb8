from __future__ import annotations

import json
import os
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass

import httpx

from .logger import get_logger
from .models import MarkupSource

logger = get_logger(__name__)

DEFAULT_TIMEOUT_MS = int(os.getenv("WEBAUDIT_FETCH_TIMEOUT_MS", "10000"))
DEFAULT_MAX_HTML_KB = int(os.getenv("WEBAUDIT_MAX_HTML_KB", "512"))
RELAY_URL = os.getenv("WEBAUDIT_RELAY_URL", "https://api.allorigins.win/get")
USER_AGENT = os.getenv(
    "WEBAUDIT_USER_AGENT",
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36 WebAuditAgent/1.0",
)

# Below this much remaining budget an attempt is not worth starting.
_MIN_ATTEMPT_S = 0.05
_ENVELOPE_OVERHEAD = 2

SYNTHETIC_MARKUP = """
<!DOCTYPE html>
<html lang="en">
<head>
  <title>Demo Website - WebAudit Analysis</title>
  <meta name="description" content="This is a demo analysis of a website">
  <meta name="viewport" content="width=device-width, initial-scale=1.0">
  <script src="https://code.jquery.com/jquery-3.4.1.min.js"></script>
  <script src="https://cdn.jsdelivr.net/npm/lodash@4.17.15/lodash.min.js"></script>
</head>
<body>
  <h1>Demo Website</h1>
  <p>This is a demo analysis showing how the audit system works.</p>
  <img src="demo-image.jpg" alt="Demo image">
  <img src="no-alt-image.jpg">
  <form>
    <input type="text" placeholder="Name">
    <input type="email" placeholder="Email">
  </form>
  <script>
    console.log('Demo inline script');
  </script>
</body>
</html>
"""


@dataclass(frozen=True)
class FetchedMarkup:
    text: str
    source: MarkupSource


class _Deadline:
    def __init__(self, timeout_ms: int):
        self._expires = time.monotonic() + timeout_ms / 1000

    def remaining(self) -> float:
        return max(0.0, self._expires - time.monotonic())


def _headers() -> dict[str, str]:
    return {
        "user-agent": USER_AGENT,
        "accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
        "accept-language": "en-US,en;q=0.6",
    }


def _read_capped(
    url: str,
    *,
    deadline: _Deadline,
    limit: int,
    transport: httpx.BaseTransport | None,
    params: dict[str, str] | None = None,
    headers: dict[str, str] | None = None,
) -> tuple[bytes, bool, str]:
    """Stream a GET body; returns (body[:limit], truncated, charset).

    Stops at ``limit`` bytes and raises TimeoutError once the deadline passes,
    even if the server keeps trickling bytes inside its per-read timeout.
    """
    with httpx.Client(timeout=deadline.remaining(), follow_redirects=True, transport=transport) as client:
        with client.stream("GET", url, params=params, headers=headers) as res:
            res.raise_for_status()
            body = bytearray()
            for chunk in res.iter_bytes():
                body.extend(chunk)
                if len(body) > limit:
                    return bytes(body[:limit]), True, res.charset_encoding or "utf-8"
                if deadline.remaining() <= 0:
                    raise TimeoutError(f"body not complete within deadline ({len(body)} bytes read)")
            return bytes(body), False, res.charset_encoding or "utf-8"


def _fetch_direct(url: str, deadline: _Deadline, limit: int, transport: httpx.BaseTransport | None) -> str:
    body, truncated, charset = _read_capped(
        url, deadline=deadline, limit=limit, transport=transport, headers=_headers()
    )
    if truncated:
        logger.info("Truncated %s to %s bytes", url, limit)
    text = body.decode(charset, errors="replace")
    if not text.strip():
        raise ValueError("empty body")
    return text


def _fetch_via_relay(
    url: str,
    relay_url: str,
    deadline: _Deadline,
    limit: int,
    transport: httpx.BaseTransport | None,
) -> str:
    # JSON escaping inflates the page, so the envelope gets more room than the page itself.
    envelope_limit = limit * _ENVELOPE_OVERHEAD + 64 * 1024
    body, truncated, charset = _read_capped(
        relay_url,
        deadline=deadline,
        limit=envelope_limit,
        transport=transport,
        params={"url": url},
        headers={"user-agent": USER_AGENT},
    )
    if truncated:
        raise ValueError(f"relay envelope larger than {envelope_limit} bytes")
    envelope = json.loads(body.decode(charset, errors="replace"))

    contents = envelope.get("contents") if isinstance(envelope, dict) else None
    if not isinstance(contents, str) or not contents.strip():
        raise ValueError("relay envelope has no contents")

    encoded = contents.encode("utf-8")
    if len(encoded) > limit:
        logger.info("Truncated relayed %s to %s bytes", url, limit)
        contents = encoded[:limit].decode("utf-8", errors="ignore")
    return contents


def _attempt(fn, deadline: _Deadline) -> str:
    """Run one fetch attempt, giving up at the deadline even if the worker is still blocked."""
    pool = ThreadPoolExecutor(max_workers=1, thread_name_prefix="webaudit-fetch")
    try:
        return pool.submit(fn).result(timeout=deadline.remaining())
    except FutureTimeoutError:
        raise TimeoutError("fetch did not finish within deadline") from None
    finally:
        pool.shutdown(wait=False, cancel_futures=True)


def fetch_page(
    url: str,
    *,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    max_html_kb: int = DEFAULT_MAX_HTML_KB,
    relay_url: str = RELAY_URL,
    transport: httpx.BaseTransport | None = None,
) -> FetchedMarkup:
    """Resolve a URL to markup text: direct, then relay, then the synthetic document.

    Never raises. Both network attempts share one wall-clock deadline, so a
    slow origin eats into the relay's budget rather than adding to it. Bodies
    are cut at ``max_html_kb``.
    """
    deadline = _Deadline(timeout_ms)
    limit = max(1, max_html_kb) * 1024

    if deadline.remaining() > _MIN_ATTEMPT_S:
        try:
            text = _attempt(lambda: _fetch_direct(url, deadline, limit, transport), deadline)
            return FetchedMarkup(text, "direct")
        except Exception as e:
            logger.warning("Direct fetch failed for %s (%s), trying relay", url, e)

    if deadline.remaining() > _MIN_ATTEMPT_S:
        try:
            text = _attempt(lambda: _fetch_via_relay(url, relay_url, deadline, limit, transport), deadline)
            return FetchedMarkup(text, "relay")
        except Exception as e:
            logger.warning("Relay fetch failed for %s (%s)", url, e)
    else:
        logger.warning("Fetch budget of %sms spent for %s, skipping relay", timeout_ms, url)

    logger.warning("Using synthetic markup for %s", url)
    return FetchedMarkup(SYNTHETIC_MARKUP, "synthetic")


def fetch_markup(
    url: str,
    *,
    timeout_ms: int = DEFAULT_TIMEOUT_MS,
    max_html_kb: int = DEFAULT_MAX_HTML_KB,
    relay_url: str = RELAY_URL,
    transport: httpx.BaseTransport | None = None,
) -> str:
    return fetch_page(
        url, timeout_ms=timeout_ms, max_html_kb=max_html_kb, relay_url=relay_url, transport=transport
    ).text
