"""Confidence + evidence shape -> status, band and recommendation."""
from __future__ import annotations

from typing import Optional

from plancheck.models import CandidateItem, Evidence
from plancheck.scoring import KIND_FEATURE, KIND_TODO
from plancheck.settings import EngineSettings, TaskTypeRule
from plancheck.text_inference import line_words

STATUS_IMPLEMENTED = "implemented"
STATUS_PARTIAL = "partial"
STATUS_MISSING = "missing"
STATUS_UNKNOWN = "unknown"

FEATURE_STATUSES = (STATUS_IMPLEMENTED, STATUS_PARTIAL, STATUS_MISSING)
TODO_BANDS = ("veryHigh", "high", "medium", "low", "active")
FEATURE_BANDS = ("high", "medium", "low")

_DONE_CLAIMS = {"implemented", "done", "complete", "completed", "finished", "shipped", "closed", "resolved"}


def _normalize_claim(value: Optional[str]) -> str:
    return (value or "").strip().lower().replace("_", "-")


class Classifier:
    def __init__(self, settings: EngineSettings):
        self.todo_bands = settings.todo_bands
        self.feature_bands = settings.feature_bands
        self.rules = settings.classifier

    # ── Bands ───────────────────────────────────────────────────────

    def todo_band(self, confidence: int) -> str:
        bands = self.todo_bands
        if confidence >= bands.very_high:
            return "veryHigh"
        if confidence >= bands.high:
            return "high"
        if confidence >= bands.medium:
            return "medium"
        if confidence >= bands.low:
            return "low"
        return "active"

    def feature_band(self, confidence: int) -> str:
        if confidence >= self.feature_bands.high:
            return "high"
        if confidence >= self.feature_bands.medium:
            return "medium"
        return "low"

    def band_for(self, confidence: int, kind: str) -> str:
        return self.todo_band(confidence) if kind == KIND_TODO else self.feature_band(confidence)

    # ── Classification ──────────────────────────────────────────────

    def classify(
        self,
        confidence: int,
        evidence: Evidence,
        kind: str,
        candidate: CandidateItem | None = None,
    ) -> tuple[str, str]:
        """Return ``(status, recommendation)`` for a scored candidate."""
        if kind == KIND_TODO:
            band = self.todo_band(confidence)
            return band, self.rules.todo_actions[band]
        if kind != KIND_FEATURE:
            raise ValueError(f"Unknown candidate kind: {kind}")

        if not evidence.has_code_evidence():
            status = STATUS_MISSING
        elif confidence >= self.feature_bands.implemented_floor:
            status = STATUS_IMPLEMENTED
        else:
            status = STATUS_PARTIAL

        recommendation = self._feature_recommendation(status, confidence, evidence, candidate)
        note = self.prior_claim_note(candidate, status)
        if note:
            recommendation = f"{recommendation} {note}"
        return status, recommendation

    def _feature_recommendation(
        self,
        status: str,
        confidence: int,
        evidence: Evidence,
        candidate: CandidateItem | None,
    ) -> str:
        if status == STATUS_MISSING:
            rule = self.detect_task_type(candidate.subject if candidate is not None else "")
            if rule is None:
                return (
                    "No implementation found. Confirm whether work has started, "
                    "or break the item into tasks that name concrete files."
                )
            return f"No implementation found; this looks like a {rule.label}. {rule.explanation} {rule.suggestion}"

        if status == STATUS_PARTIAL:
            return (
                f"Only indirect evidence found ({confidence}% confidence): related code exists "
                "but no dedicated file. Review the matches and finish or re-scope the item."
            )

        gaps: list[str] = []
        if not evidence.testsFound:
            gaps.append("add tests covering it")
        if not evidence.usageDetected:
            gaps.append("confirm it is wired in, since no imports were found")
        if not gaps:
            return f"Implemented with files, tests and usages ({confidence}% confidence)."
        return f"Implemented ({confidence}% confidence); {' and '.join(gaps)}."

    def detect_task_type(self, text: str) -> TaskTypeRule | None:
        words = line_words(text)
        lowered = (text or "").lower()
        best: TaskTypeRule | None = None
        best_hits = 0
        for rule in self.rules.task_types:
            hits = 0
            for keyword in rule.keywords:
                if " " in keyword:
                    hits += 1 if keyword in lowered else 0
                elif keyword in words:
                    hits += 1
            if hits > best_hits:
                best, best_hits = rule, hits
        return best

    def prior_claim_note(self, candidate: CandidateItem | None, status: str) -> str | None:
        claim = _normalize_claim(getattr(candidate, "priorStatus", None))
        if claim in _DONE_CLAIMS and status != STATUS_IMPLEMENTED:
            return f"Marked '{claim}' in the plan, but the codebase does not back the claim; re-verify."
        return None


def classify(
    confidence: int,
    evidence: Evidence,
    kind: str,
    settings: EngineSettings | None = None,
    candidate: CandidateItem | None = None,
) -> tuple[str, str]:
    return Classifier(settings or EngineSettings()).classify(confidence, evidence, kind, candidate)
