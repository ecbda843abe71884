"""File-existence inference: does the repository contain a file named after the task?"""
from __future__ import annotations

from pathlib import PurePosixPath

from plancheck.collectors.base import EvidenceCollector, own_file
from plancheck.models import CandidateItem, Evidence
from plancheck.repo_index import RepoIndex, normalize_rel_path
from plancheck.text_inference import (
    CandidateTerms,
    compact,
    infer_terms,
    is_build_output,
    is_test_path,
    name_variants,
    unique,
)

_INDEX_FILES = ("index.ts", "index.tsx", "index.js", "index.jsx", "__init__.py", "mod.rs")


class FileExistenceCollector(EvidenceCollector):
    name = "files"

    def collect(self, candidate: CandidateItem, repo_index: RepoIndex, prior: Evidence | None = None) -> Evidence:
        evidence = Evidence()
        terms = infer_terms(candidate.subject, self.rules)
        skip = own_file(candidate)

        found: list[str] = []
        for path in self._planned_paths(candidate):
            if repo_index.exists(path):
                found.append(path)
        found.extend(self._probe_directories(terms, repo_index))
        found.extend(self._global_stem_matches(terms, repo_index))

        for path in unique(found):
            if path == skip:
                continue
            if is_test_path(path, self.rules) or is_build_output(path, self.rules):
                continue
            evidence.filesFound.append(path)
        return evidence

    def _planned_paths(self, candidate: CandidateItem) -> list[str]:
        paths: list[str] = []
        for raw in getattr(candidate, "plannedFiles", None) or []:
            try:
                normalized = normalize_rel_path(raw)
            except ValueError:
                continue
            if normalized:
                paths.append(normalized)
        return paths

    def _probe_directories(self, terms: CandidateTerms, repo_index: RepoIndex) -> list[str]:
        names = terms.names()
        singles: list[str] = []
        for keyword in terms.keywords:
            singles.extend(name_variants([keyword]))
        singles = unique(singles)
        category_dirs = terms.category_dirs
        all_dirs = unique([*category_dirs, *self.rules.default_dirs])

        hits: list[str] = []
        for directory in all_dirs:
            prefix = directory.strip("/")
            # Single keywords are only specific enough inside a category directory.
            candidates = names + (singles if directory in category_dirs else [])
            for name in candidates:
                base = f"{prefix}/{name}" if prefix else name
                for extension in self.rules.source_extensions:
                    path = f"{base}{extension}"
                    if repo_index.exists(path):
                        hits.append(path)
                for index_file in _INDEX_FILES:
                    path = f"{base}/{index_file}"
                    if repo_index.exists(path):
                        hits.append(path)
        return hits

    def _global_stem_matches(self, terms: CandidateTerms, repo_index: RepoIndex) -> list[str]:
        wanted = set(terms.compact_names())
        if not wanted:
            return []
        extensions = set(self.rules.source_extensions)
        hits: list[str] = []
        for path in repo_index.all_files():
            pure = PurePosixPath(path)
            if pure.suffix.lower() not in extensions:
                continue
            stem = pure.name.split(".", 1)[0]
            if compact(stem) in wanted:
                hits.append(path)
        return hits
