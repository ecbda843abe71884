"""Code-pattern detection: source lines that talk about the task without being its file."""
from __future__ import annotations

import re

from plancheck.collectors.base import EvidenceCollector, own_file
from plancheck.models import CandidateItem, Evidence, PatternHit
from plancheck.repo_index import RepoIndex
from plancheck.text_inference import CandidateTerms, infer_terms, line_words

_SEPARATORS = re.compile(r"[-_]")


class CodePatternCollector(EvidenceCollector):
    name = "patterns"

    def collect(self, candidate: CandidateItem, repo_index: RepoIndex, prior: Evidence | None = None) -> Evidence:
        evidence = Evidence()
        terms = infer_terms(candidate.subject, self.rules)
        if not terms.keywords:
            return evidence

        exclude = set(prior.filesFound) if prior is not None else set()
        if own_file(candidate):
            exclude.add(own_file(candidate))

        names = terms.compact_names()
        limit = self.rules.max_pattern_matches
        for path in self.scannable_sources(repo_index, exclude):
            text = self.read(repo_index, path, evidence)
            if text is None:
                continue
            for number, line in enumerate(text.splitlines(), start=1):
                if self._matches(line, terms, names):
                    evidence.codePatterns.append(
                        PatternHit(file=path, line=number, snippet=line.strip()[: self.rules.max_statement_length])
                    )
                    if len(evidence.codePatterns) >= limit:
                        return evidence
        return evidence

    def _matches(self, line: str, terms: CandidateTerms, names: list[str]) -> bool:
        if not line.strip():
            return False
        squashed = _SEPARATORS.sub("", line.lower())
        if any(name in squashed for name in names):
            return True
        families = {terms.family_of(word) for word in line_words(line)}
        families.discard(None)
        return len(families) >= self.rules.min_keyword_hits
