"""Usage detection: which other files import the files found for a task."""
from __future__ import annotations

import re

from plancheck.collectors.base import EvidenceCollector
from plancheck.collectors.files import FileExistenceCollector
from plancheck.models import CandidateItem, Evidence, UsageHit
from plancheck.repo_index import RepoIndex
from plancheck.text_inference import module_name, unique

_IMPORT_LINE = re.compile(
    r"^\s*(?:import\b|from\s+\S+\s+import\b|export\b.*\bfrom\b|@import\b|use\s)"
    r"|\brequire\s*\(|\bimport\s*\(",
)


def _module_pattern(name: str) -> re.Pattern[str]:
    return re.compile(r"(?<![\w-])" + re.escape(name) + r"(?![\w-])")


class UsageCollector(EvidenceCollector):
    name = "usage"

    def collect(self, candidate: CandidateItem, repo_index: RepoIndex, prior: Evidence | None = None) -> Evidence:
        evidence = Evidence()
        found = list(prior.filesFound) if prior is not None else (
            FileExistenceCollector(self.settings).collect(candidate, repo_index).filesFound
        )
        if not found:
            return evidence

        modules = unique([module_name(path) for path in found])
        patterns = [(module, _module_pattern(module)) for module in modules if module]
        if not patterns:
            return evidence

        limit = self.rules.max_statement_length
        for path in self.scannable_sources(repo_index, exclude=set(found)):
            text = self.read(repo_index, path, evidence)
            if text is None:
                continue
            for number, line in enumerate(text.splitlines(), start=1):
                if not _IMPORT_LINE.search(line):
                    continue
                if any(pattern.search(line) for _, pattern in patterns):
                    evidence.usageDetected.append(UsageHit(file=path, line=number, statement=line.strip()[:limit]))
        return evidence
