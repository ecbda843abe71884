"""Read-only views of a repository snapshot.

Collectors only ever talk to a ``RepoIndex``: existence checks, glob listing,
bounded text reads, per-file modification dates and the snapshot reference
time ``as_of``. ``FilesystemRepoIndex`` walks a working tree once and honours
``.gitignore``; ``InMemoryRepoIndex`` serves synthetic trees to tests.
"""
from __future__ import annotations

import logging
import os
import subprocess
import threading
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Iterable

import pathspec

from plancheck import config
from plancheck.date_utils import file_modified_iso, normalize_iso_date, utc_now_iso
from plancheck.errors import CollectionError

logger = logging.getLogger("plancheck.repo_index")

BUILTIN_EXCLUDES = (".git/", "node_modules/", ".venv/", "venv/", "__pycache__/", ".mypy_cache/", ".pytest_cache/")
READ_CACHE_ENTRIES = 4096


def normalize_rel_path(raw: str | None) -> str:
    value = str(raw or "").replace("\\", "/").strip()
    if not value:
        return ""
    value = value.lstrip("/")
    parts: list[str] = []
    for token in value.split("/"):
        clean = token.strip()
        if not clean or clean == ".":
            continue
        if clean == "..":
            raise ValueError("Path traversal is not allowed")
        parts.append(clean)
    return "/".join(parts)


def _safe_rel(raw: str | None) -> str:
    try:
        return normalize_rel_path(raw)
    except ValueError:
        return ""


def _decode_bounded(data: bytes, truncated: bool, path: str) -> str:
    if b"\x00" in data:
        raise CollectionError(path, "binary content")
    # A truncated read can split a multi-byte sequence at the tail.
    trims = range(4) if truncated else range(1)
    for trim in trims:
        chunk = data[: len(data) - trim] if trim else data
        try:
            return chunk.decode("utf-8")
        except UnicodeDecodeError:
            continue
    raise CollectionError(path, "cannot decode as UTF-8")


@lru_cache(maxsize=256)
def _compile_pattern(pattern: str) -> pathspec.PathSpec:
    return pathspec.PathSpec.from_lines("gitwildmatch", [pattern])


class RepoIndex:
    """Interface shared by every repository view."""

    as_of: str = ""

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def all_files(self) -> list[str]:
        raise NotImplementedError

    def read_text(self, path: str, max_bytes: int | None = None) -> str:
        raise NotImplementedError

    def modified_at(self, path: str) -> str:
        raise NotImplementedError

    def list_files(self, pattern: str | None = None) -> list[str]:
        """Return indexed paths matching a gitwildmatch ``pattern`` (all when empty)."""
        files = self.all_files()
        if not pattern:
            return list(files)
        spec = _compile_pattern(pattern)
        return [path for path in files if spec.match_file(path)]


class _IgnoreMatcher:
    def __init__(self, root: Path, extra_excludes: Iterable[str] = ()):
        self.root = root
        patterns: list[str] = []
        gitignore = root / ".gitignore"
        if gitignore.exists():
            try:
                lines = gitignore.read_text(encoding="utf-8", errors="ignore").splitlines()
            except OSError as exc:
                logger.warning("Cannot read %s: %s", gitignore, exc)
                lines = []
            patterns = [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]
        patterns.extend(token for token in extra_excludes if token)
        self._spec = pathspec.PathSpec.from_lines("gitwildmatch", patterns) if patterns else None

    def should_ignore(self, rel_path: str, is_dir: bool = False) -> bool:
        rel = (rel_path or "").replace("\\", "/").strip("/")
        if not rel:
            return False

        lowered = rel.lower()
        for blocked in BUILTIN_EXCLUDES:
            token = blocked.strip("/").lower()
            if lowered == token or lowered.startswith(f"{token}/") or f"/{token}/" in f"/{lowered}/":
                return True

        if self._spec is None:
            return False
        if self._spec.match_file(rel):
            return True
        return is_dir and self._spec.match_file(f"{rel}/")


class FilesystemRepoIndex(RepoIndex):
    """Snapshot of a working tree on disk.

    The tree is walked once at construction. ``as_of`` defaults to the moment
    the snapshot was taken so every age computed from this index agrees.
    """

    def __init__(
        self,
        root: str | Path,
        max_read_bytes: int | None = None,
        use_git_dates: bool | None = None,
        as_of: str | None = None,
        extra_excludes: Iterable[str] = (),
    ):
        self.root = Path(root).expanduser().resolve(strict=False)
        if not self.root.is_dir():
            raise ValueError(f"Repository root does not exist or is not a directory: {self.root}")
        self.max_read_bytes = int(max_read_bytes or config.MAX_READ_BYTES)
        self.use_git_dates = config.USE_GIT_DATES if use_git_dates is None else bool(use_git_dates)
        self.as_of = normalize_iso_date(as_of) or utc_now_iso()
        self._matcher = _IgnoreMatcher(self.root, extra_excludes)
        self._files = self._walk()
        self._file_set = set(self._files)
        self._git_dates: dict[str, str] | None = None
        self._dirty_paths: set[str] = set()
        self._git_lock = threading.Lock()
        self._read_cache: dict[tuple[str, int], str] = {}

    def _walk(self) -> list[str]:
        files: list[str] = []
        for current, dirs, names in os.walk(self.root):
            current_path = Path(current)
            rel_root = _safe_rel(str(current_path.relative_to(self.root)))

            kept_dirs = []
            for dirname in sorted(dirs):
                child_rel = f"{rel_root}/{dirname}".strip("/")
                if self._matcher.should_ignore(child_rel, is_dir=True):
                    continue
                kept_dirs.append(dirname)
            dirs[:] = kept_dirs

            for filename in sorted(names):
                rel_path = f"{rel_root}/{filename}".strip("/")
                if self._matcher.should_ignore(rel_path, is_dir=False):
                    continue
                files.append(rel_path)
        files.sort()
        return files

    def exists(self, path: str) -> bool:
        return _safe_rel(path) in self._file_set

    def all_files(self) -> list[str]:
        return self._files

    def read_text(self, path: str, max_bytes: int | None = None) -> str:
        rel = _safe_rel(path)
        if not rel or rel not in self._file_set:
            raise CollectionError(str(path), "not in repository index")
        limit = int(max_bytes or self.max_read_bytes)
        cached = self._read_cache.get((rel, limit))
        if cached is not None:
            return cached
        try:
            with open(self.root / rel, "rb") as handle:
                data = handle.read(limit + 1)
        except OSError as exc:
            raise CollectionError(rel, exc.strerror or str(exc)) from exc
        text = _decode_bounded(data[:limit], len(data) > limit, rel)
        if len(self._read_cache) < READ_CACHE_ENTRIES:
            self._read_cache[(rel, limit)] = text
        return text

    def modified_at(self, path: str) -> str:
        rel = _safe_rel(path)
        if not rel or rel not in self._file_set:
            return ""
        if self.use_git_dates:
            git_dates = self._load_git_dates()
            if rel in git_dates and rel not in self._dirty_paths:
                return git_dates[rel]
        return file_modified_iso(self.root / rel)

    def _load_git_dates(self) -> dict[str, str]:
        with self._git_lock:
            if self._git_dates is None:
                self._git_dates = self._read_git_dates()
            return self._git_dates

    def _read_git_dates(self) -> dict[str, str]:
        dates: dict[str, str] = {}
        root = str(self.root)
        try:
            repo_check = subprocess.run(
                ["git", "-C", root, "rev-parse", "--is-inside-work-tree"],
                capture_output=True,
                text=True,
                check=False,
            )
            if repo_check.returncode != 0 or repo_check.stdout.strip().lower() != "true":
                return dates
            prefix = subprocess.run(
                ["git", "-C", root, "rev-parse", "--show-prefix"],
                capture_output=True,
                text=True,
                check=False,
            ).stdout.strip()
            result = subprocess.run(
                ["git", "-C", root, "log", "--format=%ct", "--name-only", "--date-order", "--relative"],
                capture_output=True,
                text=True,
                check=False,
            )
            status = subprocess.run(
                ["git", "-C", root, "status", "--porcelain", "--untracked-files=normal", "--", "."],
                capture_output=True,
                text=True,
                check=False,
            )
        except OSError as exc:
            logger.warning("git metadata unavailable for %s: %s", root, exc)
            return dates

        if result.returncode == 0:
            current_epoch = ""
            for raw_line in result.stdout.splitlines():
                line = raw_line.strip()
                if not line:
                    continue
                if line.isdigit():
                    current_epoch = line
                    continue
                if not current_epoch:
                    continue
                normalized = _safe_rel(line)
                if normalized and normalized not in dates:
                    stamp = datetime.fromtimestamp(int(current_epoch), timezone.utc)
                    dates[normalized] = stamp.isoformat().replace("+00:00", "Z")

        if status.returncode == 0:
            for raw_line in status.stdout.splitlines():
                line = raw_line.rstrip()
                if len(line) < 4:
                    continue
                payload = line[3:].strip()
                if " -> " in payload:
                    payload = payload.split(" -> ", 1)[1].strip()
                payload = payload.strip('"')
                if prefix and payload.startswith(prefix):
                    payload = payload[len(prefix):]
                normalized = _safe_rel(payload)
                if normalized:
                    self._dirty_paths.add(normalized)
        logger.info("Loaded git dates for %d files under %s", len(dates), root)
        return dates


class InMemoryRepoIndex(RepoIndex):
    """Synthetic repository tree keyed by relative path."""

    def __init__(
        self,
        files: dict[str, str] | None = None,
        modified: dict[str, str] | None = None,
        as_of: str = "2026-01-01T00:00:00Z",
        unreadable: dict[str, str] | None = None,
        max_read_bytes: int = 256 * 1024,
    ):
        self._contents = {normalize_rel_path(path): text for path, text in (files or {}).items()}
        self._unreadable = {normalize_rel_path(path): reason for path, reason in (unreadable or {}).items()}
        self._modified = {normalize_rel_path(path): stamp for path, stamp in (modified or {}).items()}
        self._files = sorted(set(self._contents) | set(self._unreadable))
        self.as_of = normalize_iso_date(as_of)
        self.max_read_bytes = max_read_bytes

    def exists(self, path: str) -> bool:
        rel = _safe_rel(path)
        return rel in self._contents or rel in self._unreadable

    def all_files(self) -> list[str]:
        return self._files

    def read_text(self, path: str, max_bytes: int | None = None) -> str:
        rel = _safe_rel(path)
        if rel in self._unreadable:
            raise CollectionError(rel, self._unreadable[rel])
        if rel not in self._contents:
            raise CollectionError(str(path), "not in repository index")
        data = self._contents[rel].encode("utf-8")
        limit = int(max_bytes or self.max_read_bytes)
        return _decode_bounded(data[:limit], len(data) > limit, rel)

    def modified_at(self, path: str) -> str:
        return normalize_iso_date(self._modified.get(_safe_rel(path), ""))
