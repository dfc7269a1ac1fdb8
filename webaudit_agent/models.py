from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

Severity = Literal["low", "medium", "high", "critical"]
MarkupSource = Literal["direct", "relay", "synthetic", "fallback"]


class AnalyzeRequest(BaseModel):
    url: str = Field(..., min_length=1)
    # Shared budget for the direct attempt and the relay attempt together.
    timeout_ms: int = Field(10000, ge=1000, le=60000)
    # Bodies beyond this many KiB are cut before any pattern runs over them.
    max_html_kb: int = Field(512, ge=1, le=4096)


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class CategoryResult(_Frozen):
    score: int = Field(..., ge=0, le=100)
    issues: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()


class ComplianceResult(_Frozen):
    compliant: bool
    issues: tuple[str, ...] = ()
    recommendations: tuple[str, ...] = ()


class LibraryEntry(_Frozen):
    name: str
    version: str
    vulnerability: str | None = None
    severity: Severity | None = None


class DependencyResult(_Frozen):
    vulnerable: int = Field(0, ge=0)
    outdated: int = Field(0, ge=0)
    libraries: tuple[LibraryEntry, ...] = ()


class AnalysisResult(_Frozen):
    url: str
    timestamp: str
    overall_score: int = Field(..., ge=0, le=100, alias="overallScore")
    performance: CategoryResult
    seo: CategoryResult
    accessibility: CategoryResult
    security: CategoryResult
    gdpr: ComplianceResult
    dependencies: DependencyResult

    # metadata
    source: MarkupSource = "direct"
    fallback: bool = False


class StoredAnalysis(_Frozen):
    id: str
    url: str
    timestamp: str
    result: AnalysisResult


class AnalyzeResponse(BaseModel):
    id: str
    result: AnalysisResult


class DeleteResponse(BaseModel):
    deleted: bool
