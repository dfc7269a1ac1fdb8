from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from types import MappingProxyType

from .models import DependencyResult, LibraryEntry, Severity


@dataclass(frozen=True)
class VulnerabilityRule:
    min_safe_version: str
    severity: Severity
    description: str


VULNERABILITY_TABLE: Mapping[str, VulnerabilityRule] = MappingProxyType({
    "jquery": VulnerabilityRule("3.5.0", "medium", "XSS vulnerability in jQuery < 3.5.0"),
    "bootstrap": VulnerabilityRule("4.5.2", "low", "Minor security issues in Bootstrap < 4.5.2"),
    "lodash": VulnerabilityRule("4.17.19", "high", "Prototype pollution in Lodash < 4.17.19"),
    "moment": VulnerabilityRule("2.24.0", "low", "ReDoS vulnerability in Moment.js < 2.24.0"),
    "axios": VulnerabilityRule("0.21.2", "medium", "Regular expression denial of service in axios < 0.21.2"),
})

LATEST_VERSIONS: Mapping[str, str] = MappingProxyType({
    "jquery": "3.7.1",
    "bootstrap": "5.3.3",
    "lodash": "4.17.21",
    "moment": "2.30.1",
    "axios": "1.7.7",
    "react": "18.3.1",
    "vue": "3.4.38",
    "angular": "1.8.3",
})

_SCRIPT_SRC_RE = re.compile(r"<script\b[^<>]*?\bsrc\s*=\s*[\"']([^\"'<>]+)[\"'][^<>]*>", re.IGNORECASE)

# Tried in order; the first pattern that matches a src wins.
_SOURCE_PATTERNS = (
    # .../jquery-3.4.1.min.js
    re.compile(r"/([^/]+?)[.-](\d+\.\d+\.\d+)(?:\.min)?\.js", re.IGNORECASE),
    # .../npm/lodash@4.17.15/lodash.min.js
    re.compile(r"(?<![^/@])([^/@]+)@(\d+\.\d+\.\d+)"),
    # .../ajax/libs/moment.js/2.22.0/moment.min.js
    re.compile(r"/([^/]+)/(\d+\.\d+\.\d+)(?:/|$)"),
)


def parse_version(version: str) -> tuple[int, int, int]:
    parts = version.strip().split(".")
    if len(parts) != 3:
        raise ValueError(f"Not a MAJOR.MINOR.PATCH version: {version!r}")
    major, minor, patch = (int(p) for p in parts)
    return major, minor, patch


def is_older(version: str, reference: str) -> bool:
    return parse_version(version) < parse_version(reference)


def _canonical_name(raw: str) -> str:
    name = raw.strip().lower()
    for suffix in (".js", ".min"):
        if name.endswith(suffix) and len(name) > len(suffix):
            name = name[: -len(suffix)]
    return name


def extract_libraries(markup: str) -> list[tuple[str, str]]:
    """Return (name, version) for every external script whose src names a version."""
    found: list[tuple[str, str]] = []
    for src in _SCRIPT_SRC_RE.findall(markup or ""):
        for pattern in _SOURCE_PATTERNS:
            m = pattern.search(src)
            if m:
                found.append((_canonical_name(m.group(1)), m.group(2)))
                break
    return found


def match_library(
    name: str,
    version: str,
    table: Mapping[str, VulnerabilityRule] = VULNERABILITY_TABLE,
) -> LibraryEntry:
    rule = table.get(name)
    if rule is not None and is_older(version, rule.min_safe_version):
        return LibraryEntry(name=name, version=version, vulnerability=rule.description, severity=rule.severity)
    return LibraryEntry(name=name, version=version)


def scan_dependencies(
    markup: str,
    table: Mapping[str, VulnerabilityRule] = VULNERABILITY_TABLE,
    latest: Mapping[str, str] = LATEST_VERSIONS,
) -> DependencyResult:
    libraries = [match_library(name, version, table) for name, version in extract_libraries(markup)]

    vulnerable = sum(1 for lib in libraries if lib.vulnerability)
    outdated = sum(1 for lib in libraries if lib.name in latest and is_older(lib.version, latest[lib.name]))

    return DependencyResult(vulnerable=vulnerable, outdated=outdated, libraries=tuple(libraries))
