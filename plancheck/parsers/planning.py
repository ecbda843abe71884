"""Parse planning documents (checklists in markdown) into FeatureCandidate models."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from pathlib import PurePosixPath

import yaml

from plancheck.errors import CollectionError, as_collection_error
from plancheck.models import FeatureCandidate
from plancheck.repo_index import RepoIndex
from plancheck.settings import EngineSettings

logger = logging.getLogger("plancheck.parsers")

_CHECKLIST_RE = re.compile(r"^(\s*)[-*+]\s+\[([ xX])\]\s+(.+?)\s*$")
_HEADING_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_LABELED_PATH_RE = re.compile(r"\b(?:Files?|Paths?|Location)\s*:\s*(.+)$", re.IGNORECASE)
_BACKTICK_RE = re.compile(r"`([^`\s]+)`")
_PATH_TOKEN_RE = re.compile(r"^[A-Za-z0-9_.@~+\-/\[\]]+$")
_EXTRA_PATH_EXTENSIONS = (".json", ".yaml", ".yml", ".toml", ".md", ".html", ".sql", ".sh")

# Status mapping: frontmatter statuses that mean every item in the plan is claimed done
_DONE_STATUSES = {"completed", "complete", "done", "implemented", "shipped", "finished"}


def _extract_frontmatter(text: str) -> dict:
    """Extract YAML frontmatter from a markdown file."""
    match = re.match(r"^---\s*\n(.*?)\n---", text, re.DOTALL)
    if not match:
        return {}
    try:
        loaded = yaml.safe_load(match.group(1)) or {}
    except yaml.YAMLError:
        return {}
    return loaded if isinstance(loaded, dict) else {}


def _frontmatter_line_count(text: str) -> int:
    match = re.match(r"^---\s*\n(.*?)\n---", text, re.DOTALL)
    return match.group(0).count("\n") + 1 if match else 0


@dataclass
class PlanDocument:
    path: str
    title: str
    status: str = ""
    items: list[FeatureCandidate] = field(default_factory=list)
    skipped: int = 0


class PlanParser:
    def __init__(self, settings: EngineSettings | None = None):
        self.settings = settings or EngineSettings()
        scanner = self.settings.scanner
        self._verification = [re.compile(pattern, re.IGNORECASE) for pattern in scanner.verification_patterns]
        self._path_extensions = tuple(self.settings.inference.source_extensions) + _EXTRA_PATH_EXTENSIONS

    # ── Discovery ───────────────────────────────────────────────────

    def discover(self, repo_index: RepoIndex, plan_dirs: list[str] | None = None) -> list[str]:
        """Plan files by suffix anywhere, plus markdown under the plan directories."""
        suffixes = tuple(suffix.lower() for suffix in self.settings.scanner.plan_file_suffixes)
        markdown = tuple(ext.lower() for ext in self.settings.scanner.markdown_extensions)
        dirs = [token.strip().strip("/") for token in (plan_dirs or [])]

        found: list[str] = []
        for path in repo_index.all_files():
            lowered = path.lower()
            if lowered.endswith(suffixes):
                found.append(path)
                continue
            if not lowered.endswith(markdown):
                continue
            parent = str(PurePosixPath(path).parent)
            for directory in dirs:
                if directory in ("", ".") and parent == ".":
                    found.append(path)
                    break
                if directory not in ("", ".") and (parent == directory or parent.startswith(f"{directory}/")):
                    found.append(path)
                    break
        return found

    # ── Parsing ─────────────────────────────────────────────────────

    def is_verification_step(self, text: str) -> bool:
        cleaned = text.strip().strip("*_").strip()
        return any(pattern.search(cleaned) for pattern in self._verification)

    def planned_paths(self, text: str) -> list[str]:
        paths: list[str] = []
        labeled = _LABELED_PATH_RE.search(text)
        if labeled:
            for token in re.split(r"[,\s]+", labeled.group(1)):
                candidate = token.strip("`'\"()[]<>;.")
                if self._looks_like_path(candidate) and candidate not in paths:
                    paths.append(candidate)
        for token in _BACKTICK_RE.findall(text):
            candidate = token.strip("'\"")
            if self._looks_like_path(candidate) and candidate not in paths:
                paths.append(candidate)
        return [path[2:] if path.startswith("./") else path for path in paths]

    def _looks_like_path(self, token: str) -> bool:
        if not token or not _PATH_TOKEN_RE.match(token) or token.startswith(("http", "../")):
            return False
        return token.lower().endswith(self._path_extensions)

    def parse(self, path: str, text: str, include_checked: bool = False) -> PlanDocument:
        frontmatter = _extract_frontmatter(text)
        status = str(frontmatter.get("status", "") or "").strip().lower()
        plan_done = status in _DONE_STATUSES
        title = str(frontmatter.get("title", "") or "").strip()

        lines = text.splitlines()
        start = _frontmatter_line_count(text) if frontmatter else 0
        section = ""
        document = PlanDocument(path=path, title=title, status=status)

        index = start
        while index < len(lines):
            line = lines[index]
            heading = _HEADING_RE.match(line)
            if heading:
                if not document.title and len(heading.group(1)) == 1:
                    document.title = heading.group(2)
                section = heading.group(2)
                index += 1
                continue

            item = _CHECKLIST_RE.match(line)
            if not item:
                index += 1
                continue

            indent = len(item.group(1).expandtabs(4))
            checked = item.group(2).lower() == "x"
            description = item.group(3)
            continuation: list[str] = []
            cursor = index + 1
            while cursor < len(lines):
                follower = lines[cursor]
                if not follower.strip():
                    break
                follower_indent = len(follower) - len(follower.lstrip(" \t"))
                if follower_indent <= indent or _CHECKLIST_RE.match(follower) or _HEADING_RE.match(follower):
                    break
                continuation.append(follower.strip())
                cursor += 1

            if self.is_verification_step(description):
                document.skipped += 1
            elif checked and not include_checked:
                document.skipped += 1
            else:
                planned: list[str] = []
                for chunk in [description, *continuation]:
                    for planned_path in self.planned_paths(chunk):
                        if planned_path not in planned:
                            planned.append(planned_path)
                prior = "completed" if checked or plan_done else None
                document.items.append(
                    FeatureCandidate(
                        description=_clean_description(description),
                        document=path,
                        line=index + 1,
                        checked=checked,
                        plannedFiles=planned,
                        priorStatus=prior,
                        documentTitle=document.title,
                        section=section,
                    )
                )
            index += 1

        if not document.title:
            document.title = PurePosixPath(path).stem.replace("-", " ").replace("_", " ").title()
            for candidate in document.items:
                candidate.documentTitle = document.title
        return document

    def extract(
        self,
        repo_index: RepoIndex,
        plan_dirs: list[str] | None = None,
        include_checked: bool = False,
    ) -> tuple[list[FeatureCandidate], list[str]]:
        candidates: list[FeatureCandidate] = []
        warnings: list[str] = []
        for path in self.discover(repo_index, plan_dirs):
            try:
                text = repo_index.read_text(path)
            except (CollectionError, OSError, UnicodeDecodeError) as exc:
                failure = as_collection_error(path, exc)
                logger.warning("Skipping planning document %s: %s", failure.path, failure.reason)
                warnings.append(f"Skipped unreadable planning document {failure}")
                continue
            document = self.parse(path, text, include_checked=include_checked)
            candidates.extend(document.items)
        logger.info("Extracted %d planned features from planning documents", len(candidates))
        return candidates, warnings


def _clean_description(value: str) -> str:
    cleaned = re.sub(r"\*\*|__|~~", "", value)
    cleaned = _LABELED_PATH_RE.sub("", cleaned).strip()
    return cleaned.rstrip(" -:;(") or value.strip()


def extract_feature_candidates(
    repo_index: RepoIndex,
    plan_dirs: list[str] | None = None,
    include_checked: bool = False,
    settings: EngineSettings | None = None,
) -> tuple[list[FeatureCandidate], list[str]]:
    return PlanParser(settings).extract(repo_index, plan_dirs, include_checked=include_checked)
