"""Runs every collector for a candidate and folds the fragments together."""
from __future__ import annotations

from plancheck.collectors.archival import ArchivalCollector
from plancheck.collectors.base import EvidenceCollector, merge_evidence
from plancheck.collectors.files import FileExistenceCollector
from plancheck.collectors.patterns import CodePatternCollector
from plancheck.collectors.testfiles import TestFileCollector
from plancheck.collectors.usage import UsageCollector
from plancheck.models import CandidateItem, Evidence
from plancheck.repo_index import RepoIndex
from plancheck.settings import EngineSettings


def default_collectors(settings: EngineSettings) -> list[EvidenceCollector]:
    # File existence runs first; usage, tests and patterns read its findings.
    return [
        FileExistenceCollector(settings),
        UsageCollector(settings),
        TestFileCollector(settings),
        CodePatternCollector(settings),
        ArchivalCollector(settings),
    ]


class CollectorPipeline:
    def __init__(self, settings: EngineSettings, collectors: list[EvidenceCollector] | None = None):
        self.settings = settings
        self.collectors = collectors if collectors is not None else default_collectors(settings)

    def collect(self, candidate: CandidateItem, repo_index: RepoIndex) -> Evidence:
        evidence = Evidence()
        for collector in self.collectors:
            fragment = collector.collect(candidate, repo_index, prior=evidence.model_copy(deep=True))
            merge_evidence(evidence, fragment)
        return evidence
