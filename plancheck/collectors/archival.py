"""Archival and staleness signals for TODO candidates."""
from __future__ import annotations

import re

from plancheck.collectors.base import EvidenceCollector
from plancheck.date_utils import age_in_days
from plancheck.models import AgeSignal, ArchivalSignal, CandidateItem, CompletionMarker, Evidence, TodoCandidate
from plancheck.repo_index import RepoIndex
from plancheck.settings import EngineSettings


class ArchivalCollector(EvidenceCollector):
    name = "archival"

    def __init__(self, settings: EngineSettings):
        super().__init__(settings)
        archival = settings.archival
        self._archive_patterns = [re.compile(pattern, re.IGNORECASE) for pattern in archival.archive_path_patterns]
        self._outdated_patterns = [re.compile(pattern, re.IGNORECASE) for pattern in archival.outdated_indicators]
        self._direct = [
            (indicator, re.compile(indicator.pattern, re.IGNORECASE))
            for indicator in archival.completion_indicators
            if not indicator.context_required
        ]
        self._contextual = [
            (indicator, re.compile(indicator.pattern, re.IGNORECASE))
            for indicator in archival.completion_indicators
            if indicator.context_required
        ]

    def collect(self, candidate: CandidateItem, repo_index: RepoIndex, prior: Evidence | None = None) -> Evidence:
        evidence = Evidence()
        if not isinstance(candidate, TodoCandidate):
            return evidence

        path = candidate.file.replace("\\", "/")
        signal = ArchivalSignal()
        for pattern in self._archive_patterns:
            if pattern.search(path):
                signal.archivedPath = True
                signal.indicators.append(f"path matches {pattern.pattern}")
                break

        text = self.read(repo_index, path, evidence) if repo_index.exists(path) else None
        lines = text.splitlines() if text is not None else []

        if text is not None and not signal.archivedPath:
            header = text[: self.settings.archival.header_chars]
            for pattern in self._outdated_patterns:
                match = pattern.search(header)
                if match:
                    signal.indicators.append(f"file header mentions '{match.group(0).lower()}'")
        evidence.archivalSignal = signal

        own_line = candidate.rawText or candidate.text
        for indicator, pattern in self._direct:
            if pattern.search(own_line):
                evidence.completionMarkers.append(
                    CompletionMarker(description=indicator.description, confidence=indicator.confidence, source="direct")
                )

        context = self._context_window(lines, candidate.line) or [own_line]
        window = "\n".join(context)
        for indicator, pattern in self._contextual:
            if pattern.search(window):
                evidence.completionMarkers.append(
                    CompletionMarker(description=indicator.description, confidence=indicator.confidence, source="context")
                )

        evidence.ageSignal = self._age(candidate, repo_index)
        return evidence

    def _context_window(self, lines: list[str], line_number: int) -> list[str]:
        if not lines or line_number < 1:
            return []
        span = self.settings.archival.context_lines
        start = max(0, line_number - 1 - span)
        end = min(len(lines), line_number + span)
        return lines[start:end]

    def _age(self, candidate: TodoCandidate, repo_index: RepoIndex) -> AgeSignal | None:
        threshold = self.settings.todo_weights.age_threshold_days
        touched, source = candidate.lastTouched, "lastTouched"
        if not touched:
            touched, source = repo_index.modified_at(candidate.file), "modified_at"
        days = age_in_days(touched, repo_index.as_of)
        if days is None:
            return None
        return AgeSignal(ageDays=round(days, 1), thresholdDays=threshold, source=source)
