"""Evidence -> 0..100 confidence with ordered, human-readable reasons."""
from __future__ import annotations

import math

from plancheck.models import Evidence
from plancheck.settings import EngineSettings, FeatureWeights, TodoWeights

KIND_FEATURE = "feature"
KIND_TODO = "todo"


def clamp_confidence(value: float) -> int:
    """Round half up and clamp into [0, 100]."""
    return max(0, min(100, int(math.floor(value + 0.5))))


def _plural(count: int, noun: str) -> str:
    return f"{count} {noun}" if count == 1 else f"{count} {noun}s"


def _preview(paths: list[str], limit: int = 3) -> str:
    shown = ", ".join(paths[:limit])
    extra = len(paths) - limit
    return f"{shown} (+{extra} more)" if extra > 0 else shown


def _points(value: float) -> str:
    return f"+{value:g}"


class ConfidenceScorer:
    def __init__(self, settings: EngineSettings):
        self.feature_weights: FeatureWeights = settings.feature_weights
        self.todo_weights: TodoWeights = settings.todo_weights

    def score(self, evidence: Evidence, kind: str) -> tuple[int, list[str]]:
        if kind == KIND_FEATURE:
            return self._score_feature(evidence)
        if kind == KIND_TODO:
            return self._score_todo(evidence)
        raise ValueError(f"Unknown candidate kind: {kind}")

    def _code_contributions(
        self,
        evidence: Evidence,
        files: float,
        tests: float,
        usage: float,
        patterns: float,
    ) -> tuple[float, list[str]]:
        total = 0.0
        reasons: list[str] = []
        if files:
            total += files
            reasons.append(
                f"Found {_plural(len(evidence.filesFound), 'matching file')}: {_preview(evidence.filesFound)} ({_points(files)})"
            )
        if tests:
            total += tests
            reasons.append(
                f"Found {_plural(len(evidence.testsFound), 'test file')}: {_preview(evidence.testsFound)} ({_points(tests)})"
            )
        if usage:
            total += usage
            usage_files = evidence.usage_files()
            reasons.append(
                f"Imported by {_plural(len(usage_files), 'file')}: {_preview(usage_files)} ({_points(usage)})"
            )
        if patterns:
            total += patterns
            pattern_files = evidence.pattern_files()
            note = " (discounted, files already found)" if evidence.filesFound else ""
            reasons.append(
                f"Related code in {_plural(len(pattern_files), 'file')}{note} ({_points(patterns)})"
            )
        return total, reasons

    def _score_feature(self, evidence: Evidence) -> tuple[int, list[str]]:
        weights = self.feature_weights
        files = float(weights.files) if evidence.filesFound else 0.0
        tests = float(weights.tests) if evidence.testsFound else 0.0
        usage = float(min(weights.usage_cap, weights.usage_per_file * len(evidence.usage_files())))
        patterns = float(min(weights.pattern_cap, weights.pattern_per_file * len(evidence.pattern_files())))
        if evidence.filesFound:
            patterns *= weights.pattern_discount

        total, reasons = self._code_contributions(evidence, files, tests, usage, patterns)
        if not evidence.has_code_evidence():
            reasons.append("No matching files, imports, tests or related code found")
        return clamp_confidence(total), reasons

    def _score_todo(self, evidence: Evidence) -> tuple[int, list[str]]:
        weights = self.todo_weights
        files = float(weights.files) if evidence.filesFound else 0.0
        tests = float(weights.tests) if evidence.testsFound else 0.0
        usage = float(weights.usage) if evidence.usageDetected else 0.0
        patterns = float(weights.patterns) if evidence.codePatterns else 0.0
        if evidence.filesFound:
            patterns *= weights.pattern_discount

        total, reasons = self._code_contributions(evidence, files, tests, usage, patterns)

        direct = [marker for marker in evidence.completionMarkers if marker.source == "direct"]
        context = [marker for marker in evidence.completionMarkers if marker.source != "direct"]
        if direct:
            total += weights.direct_marker
            reasons.append(f"{direct[0].description} ({_points(weights.direct_marker)})")
        if context:
            total += weights.context_marker
            labels = "; ".join(marker.description for marker in context)
            reasons.append(f"Nearby context: {labels} ({_points(weights.context_marker)})")

        archival = evidence.archivalSignal
        if archival is not None and archival.archivedPath:
            total += weights.archived_path
            reasons.append(f"File lives in an archived location ({_points(weights.archived_path)})")
        elif archival is not None and archival.indicators:
            total += weights.outdated_document
            reasons.append(
                f"File header marks it outdated: {', '.join(archival.indicators)} ({_points(weights.outdated_document)})"
            )

        age = evidence.ageSignal
        if age is not None and age.ageDays > 0:
            threshold = age.thresholdDays or weights.age_threshold_days
            age_points = min(float(weights.age_cap), weights.age_cap * age.ageDays / threshold)
            total += age_points
            reasons.append(
                f"Untouched for {int(age.ageDays)} days (threshold {threshold}) ({_points(round(age_points, 1))})"
            )
        return clamp_confidence(total), reasons


def score(evidence: Evidence, kind: str, settings: EngineSettings | None = None) -> tuple[int, list[str]]:
    return ConfidenceScorer(settings or EngineSettings()).score(evidence, kind)
