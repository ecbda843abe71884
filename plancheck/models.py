"""Pydantic models shared by the engine, the report renderer and the API."""
from __future__ import annotations
from pydantic import BaseModel, Field
from typing import Optional, Union


# ── Candidates ──────────────────────────────────────────────────────

class TodoCandidate(BaseModel):
    file: str
    line: int
    text: str = ""
    rawText: str = ""
    todoType: str = "TODO"  # TODO | FIXME | BUG | HACK | OPTIMIZE | REFACTOR | NOTE | XXX | Unchecked Task | Action Item
    priority: str = "medium"  # high | medium | low
    category: str = "code"  # code | markdown
    lastTouched: Optional[str] = None
    contentHash: str = ""

    @property
    def kind(self) -> str:
        return "todo"

    @property
    def identity(self) -> str:
        return f"{self.file}:{self.line}"

    @property
    def subject(self) -> str:
        return self.text


class FeatureCandidate(BaseModel):
    description: str
    document: str
    line: int
    checked: bool = False
    plannedFiles: list[str] = Field(default_factory=list)
    priorStatus: Optional[str] = None
    documentTitle: str = ""
    section: str = ""

    @property
    def kind(self) -> str:
        return "feature"

    @property
    def identity(self) -> str:
        return f"{self.document}:{self.line}"

    @property
    def subject(self) -> str:
        return self.description


CandidateItem = Union[TodoCandidate, FeatureCandidate]


# ── Evidence ────────────────────────────────────────────────────────

class UsageHit(BaseModel):
    file: str
    line: int
    statement: str


class PatternHit(BaseModel):
    file: str
    line: int
    snippet: str


class AgeSignal(BaseModel):
    ageDays: float
    thresholdDays: int
    source: str = ""  # lastTouched | modified_at


class ArchivalSignal(BaseModel):
    archivedPath: bool = False
    indicators: list[str] = Field(default_factory=list)


class CompletionMarker(BaseModel):
    description: str
    confidence: int
    source: str = "context"  # direct | context


class Evidence(BaseModel):
    filesFound: list[str] = Field(default_factory=list)
    usageDetected: list[UsageHit] = Field(default_factory=list)
    testsFound: list[str] = Field(default_factory=list)
    codePatterns: list[PatternHit] = Field(default_factory=list)
    ageSignal: Optional[AgeSignal] = None
    archivalSignal: Optional[ArchivalSignal] = None
    completionMarkers: list[CompletionMarker] = Field(default_factory=list)
    collectionErrors: list[str] = Field(default_factory=list)

    def has_code_evidence(self) -> bool:
        return bool(self.filesFound or self.usageDetected or self.testsFound or self.codePatterns)

    def usage_files(self) -> list[str]:
        return _distinct(hit.file for hit in self.usageDetected)

    def pattern_files(self) -> list[str]:
        return _distinct(hit.file for hit in self.codePatterns)


def _distinct(values) -> list[str]:
    seen: list[str] = []
    for value in values:
        if value not in seen:
            seen.append(value)
    return seen


# ── Results ─────────────────────────────────────────────────────────

class ScoredResult(BaseModel):
    candidate: Union[FeatureCandidate, TodoCandidate]
    kind: str  # feature | todo
    evidence: Evidence = Field(default_factory=Evidence)
    confidence: int = 0
    status: str = "unknown"
    band: str = ""
    recommendation: str = ""
    reasons: list[str] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)

    @property
    def identity(self) -> str:
        return self.candidate.identity


class EvaluationBatch(BaseModel):
    results: list[ScoredResult] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)


# ── Aggregates ──────────────────────────────────────────────────────

class GroupSummary(BaseModel):
    key: str
    total: int = 0
    implemented: int = 0
    partial: int = 0
    missing: int = 0
    unknown: int = 0
    done: int = 0
    statusCounts: dict[str, int] = Field(default_factory=dict)
    implementedBands: dict[str, int] = Field(default_factory=dict)
    progressPercent: int = 0
    averageConfidence: int = 0


class CleanupFile(BaseModel):
    file: str
    count: int


class TodoRecommendations(BaseModel):
    safeToClose: list[ScoredResult] = Field(default_factory=list)
    needsReview: list[ScoredResult] = Field(default_factory=list)
    possiblyDone: list[ScoredResult] = Field(default_factory=list)
    topCleanupFiles: list[CleanupFile] = Field(default_factory=list)


class AggregateReport(BaseModel):
    kind: str
    total: int = 0
    groups: list[GroupSummary] = Field(default_factory=list)
    summary: dict[str, int] = Field(default_factory=dict)
    progressPercent: int = 0
    averageConfidence: int = 0
    implementedBands: dict[str, int] = Field(default_factory=dict)
    topItems: list[ScoredResult] = Field(default_factory=list)
    highConfidence: list[ScoredResult] = Field(default_factory=list)
    potentialCleanup: int = 0
    potentialCleanupPercent: int = 0
    recommendations: Optional[TodoRecommendations] = None
    results: list[ScoredResult] = Field(default_factory=list)
    warnings: list[str] = Field(default_factory=list)
    generatedAt: str = ""
    root: str = ""


# ── Report history ──────────────────────────────────────────────────

class AnalysisRunSummary(BaseModel):
    id: str
    kind: str
    root: str = ""
    createdAt: str = ""
    total: int = 0
    progressPercent: int = 0
    averageConfidence: int = 0
    summary: dict[str, int] = Field(default_factory=dict)
    warningCount: int = 0


class StoredResult(BaseModel):
    identity: str
    kind: str
    subject: str = ""
    status: str
    band: str = ""
    confidence: int = 0
    recommendation: str = ""


class ConfidenceDelta(BaseModel):
    identity: str
    before: int
    after: int
    beforeStatus: str
    afterStatus: str


class RunDiff(BaseModel):
    baseRunId: str
    targetRunId: str
    newlyDone: list[str] = Field(default_factory=list)
    regressed: list[str] = Field(default_factory=list)
    added: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)
    confidenceDeltas: list[ConfidenceDelta] = Field(default_factory=list)
