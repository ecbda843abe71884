"""Shared plumbing for evidence collectors."""
from __future__ import annotations

import logging

from plancheck.errors import CollectionError, as_collection_error
from plancheck.models import CandidateItem, Evidence
from plancheck.observability import record_collection_error
from plancheck.repo_index import RepoIndex
from plancheck.settings import EngineSettings
from plancheck.text_inference import is_build_output, is_source_path, is_test_path

logger = logging.getLogger("plancheck.collectors")


class EvidenceCollector:
    """One signal source. ``collect`` returns a fresh fragment and never mutates ``prior``."""

    name = "base"

    def __init__(self, settings: EngineSettings):
        self.settings = settings
        self.rules = settings.inference

    def collect(self, candidate: CandidateItem, repo_index: RepoIndex, prior: Evidence | None = None) -> Evidence:
        raise NotImplementedError

    def read(self, repo_index: RepoIndex, path: str, evidence: Evidence) -> str | None:
        try:
            return repo_index.read_text(path, self.settings.max_read_bytes)
        except (CollectionError, OSError, UnicodeDecodeError) as exc:
            failure = as_collection_error(path, exc)
        logger.warning("%s collector skipped %s: %s", self.name, failure.path, failure.reason)
        message = str(failure)
        if message not in evidence.collectionErrors:
            evidence.collectionErrors.append(message)
        record_collection_error(self.name)
        return None

    def scannable_sources(self, repo_index: RepoIndex, exclude: set[str]) -> list[str]:
        """Non-test source files outside build output, minus ``exclude``."""
        paths: list[str] = []
        for path in repo_index.all_files():
            if path in exclude:
                continue
            if not is_source_path(path, self.rules):
                continue
            if is_test_path(path, self.rules) or is_build_output(path, self.rules):
                continue
            paths.append(path)
        return paths


def own_file(candidate: CandidateItem) -> str:
    return getattr(candidate, "file", "") or ""


def merge_evidence(target: Evidence, fragment: Evidence) -> Evidence:
    """Fold ``fragment`` into ``target``; existing findings are never removed."""
    for path in fragment.filesFound:
        if path not in target.filesFound:
            target.filesFound.append(path)
    for path in fragment.testsFound:
        if path not in target.testsFound:
            target.testsFound.append(path)
    seen_usage = {(hit.file, hit.line) for hit in target.usageDetected}
    for hit in fragment.usageDetected:
        if (hit.file, hit.line) not in seen_usage:
            target.usageDetected.append(hit)
            seen_usage.add((hit.file, hit.line))
    seen_patterns = {(hit.file, hit.line) for hit in target.codePatterns}
    for hit in fragment.codePatterns:
        if (hit.file, hit.line) not in seen_patterns:
            target.codePatterns.append(hit)
            seen_patterns.add((hit.file, hit.line))
    if fragment.ageSignal is not None and target.ageSignal is None:
        target.ageSignal = fragment.ageSignal
    if fragment.archivalSignal is not None:
        if target.archivalSignal is None:
            target.archivalSignal = fragment.archivalSignal
        else:
            target.archivalSignal.archivedPath = target.archivalSignal.archivedPath or fragment.archivalSignal.archivedPath
            for indicator in fragment.archivalSignal.indicators:
                if indicator not in target.archivalSignal.indicators:
                    target.archivalSignal.indicators.append(indicator)
    known_markers = {(marker.description, marker.source) for marker in target.completionMarkers}
    for marker in fragment.completionMarkers:
        if (marker.description, marker.source) not in known_markers:
            target.completionMarkers.append(marker)
            known_markers.add((marker.description, marker.source))
    for message in fragment.collectionErrors:
        if message not in target.collectionErrors:
            target.collectionErrors.append(message)
    return target
