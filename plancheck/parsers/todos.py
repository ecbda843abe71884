"""Scan source and markdown files for TODO-style comments and open action items."""
from __future__ import annotations

import hashlib
import logging
import re
from dataclasses import dataclass
from pathlib import PurePosixPath

from plancheck.errors import CollectionError, as_collection_error
from plancheck.models import TodoCandidate
from plancheck.repo_index import RepoIndex
from plancheck.settings import EngineSettings, TodoPattern

logger = logging.getLogger("plancheck.parsers")


def content_hash(path: str, line: int, text: str) -> str:
    digest = hashlib.sha1(f"{path}:{line}:{text.strip()}".encode("utf-8")).hexdigest()
    return digest[:12]


@dataclass
class _CompiledPattern:
    pattern: TodoPattern
    regex: re.Pattern[str]


class TodoScanner:
    def __init__(self, settings: EngineSettings | None = None):
        self.settings = settings or EngineSettings()
        scanner = self.settings.scanner
        self._code_ext = {ext.lower() for ext in scanner.code_extensions}
        self._markdown_ext = {ext.lower() for ext in scanner.markdown_extensions}
        self._patterns = [
            _CompiledPattern(pattern=pattern, regex=re.compile(pattern.regex, re.IGNORECASE if pattern.category == "markdown" else 0))
            for pattern in scanner.patterns
        ]
        self._archive = [re.compile(pattern, re.IGNORECASE) for pattern in self.settings.archival.archive_path_patterns]

    def is_scannable(self, path: str) -> bool:
        suffix = PurePosixPath(path).suffix.lower()
        return suffix in self._code_ext or suffix in self._markdown_ext

    def is_archived(self, path: str) -> bool:
        return any(pattern.search(path) for pattern in self._archive)

    def parse_text(self, path: str, text: str) -> list[TodoCandidate]:
        """Return one candidate per matching line; the first matching pattern wins."""
        is_markdown = PurePosixPath(path).suffix.lower() in self._markdown_ext
        candidates: list[TodoCandidate] = []
        for number, line in enumerate(text.splitlines(), start=1):
            for compiled in self._patterns:
                if compiled.pattern.category == "markdown" and not is_markdown:
                    continue
                match = compiled.regex.search(line)
                if not match:
                    continue
                body = (match.group(1) if match.groups() else line).strip()
                if not body:
                    continue
                candidates.append(
                    TodoCandidate(
                        file=path,
                        line=number,
                        text=body,
                        rawText=line.strip(),
                        todoType=compiled.pattern.name,
                        priority=compiled.pattern.priority,
                        category=compiled.pattern.category,
                        contentHash=content_hash(path, number, body),
                    )
                )
                break
        return candidates

    def scan(self, repo_index: RepoIndex, include_archived: bool = True) -> tuple[list[TodoCandidate], list[str]]:
        candidates: list[TodoCandidate] = []
        warnings: list[str] = []
        for path in repo_index.all_files():
            if not self.is_scannable(path):
                continue
            if not include_archived and self.is_archived(path):
                continue
            try:
                text = repo_index.read_text(path)
            except (CollectionError, OSError, UnicodeDecodeError) as exc:
                failure = as_collection_error(path, exc)
                logger.warning("Skipping %s while scanning TODOs: %s", failure.path, failure.reason)
                warnings.append(f"Skipped unreadable file {failure}")
                continue
            candidates.extend(self.parse_text(path, text))
        logger.info("Found %d TODO candidates", len(candidates))
        return candidates, warnings


def scan_todos(
    repo_index: RepoIndex,
    include_archived: bool = True,
    settings: EngineSettings | None = None,
) -> tuple[list[TodoCandidate], list[str]]:
    return TodoScanner(settings).scan(repo_index, include_archived=include_archived)
