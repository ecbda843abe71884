"""Test detection: test files named after, or referencing, the inferred base names."""
from __future__ import annotations

import re
from pathlib import PurePosixPath

from plancheck.collectors.base import EvidenceCollector
from plancheck.collectors.files import FileExistenceCollector
from plancheck.models import CandidateItem, Evidence
from plancheck.repo_index import RepoIndex
from plancheck.text_inference import compact, infer_terms, is_test_path, module_name, strip_test_affixes, unique


class TestFileCollector(EvidenceCollector):
    name = "tests"
    __test__ = False

    def collect(self, candidate: CandidateItem, repo_index: RepoIndex, prior: Evidence | None = None) -> Evidence:
        evidence = Evidence()
        found = list(prior.filesFound) if prior is not None else (
            FileExistenceCollector(self.settings).collect(candidate, repo_index).filesFound
        )
        terms = infer_terms(candidate.subject, self.rules)
        bases = unique([module_name(path) for path in found] + terms.names())
        if not bases:
            return evidence

        compact_bases = {compact(base) for base in bases if compact(base)}
        reference = re.compile(r"(?<![\w-])(" + "|".join(re.escape(base) for base in bases) + r")(?![\w-])")
        test_dirs = {name.lower() for name in self.rules.test_dir_names}

        for path in repo_index.all_files():
            if not is_test_path(path, self.rules):
                continue
            if compact(strip_test_affixes(path)) in compact_bases:
                evidence.testsFound.append(path)
                continue
            parents = {part.lower() for part in PurePosixPath(path).parts[:-1]}
            if not parents & test_dirs:
                continue
            text = self.read(repo_index, path, evidence)
            if text is not None and reference.search(text):
                evidence.testsFound.append(path)
        return evidence
